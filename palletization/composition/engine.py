"""
Composition calculation.

``CompositionEngine.calculate`` turns a ``CompositionRequest`` into a
``CompositionResult``:

1. Resolve products, packaging units and the pallet (request errors first)
2. Normalize quantities to base units and to physical packing items
3. Confirm stock availability when stock lines are supplied
4. Pack the items on the pallet
5. Validate totals against the effective constraints
"""

import logging
import math
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..config import DEFAULT_CONFIG, EngineConfig
from ..exceptions import IncompatibleUnits, PalletNotFound, ProductNotFound
from ..models.composition import CompositionLine, CompositionRequest
from ..models.packaging import PackagingUnit
from ..models.pallet import Pallet
from ..models.product import Product
from ..models.stock import StockLine
from ..packaging.consolidation import AvailabilityCheck, StockConsolidator
from ..packaging.conversion import ConversionEngine
from ..packaging.hierarchy import PackagingHierarchy
from .packer import CompositionPacker, PackingItem
from .pallet_selector import select_pallet
from .result_schema import CompositionResult
from .validator import CompositionValidator

logger = logging.getLogger(__name__)

ResolvedLine = Tuple[CompositionLine, Product, PackagingUnit]


def _index(records, kind: str) -> Dict:
    if isinstance(records, Mapping):
        return dict(records)
    index = {}
    for record in records:
        if record.id in index:
            raise ValueError(f"Duplicate {kind} id: {record.id}")
        index[record.id] = record
    return index


class CompositionEngine:
    """
    Calculates pallet compositions from plain product, packaging and pallet data.

    The engine holds no mutable state of its own; the same instance can serve
    concurrent calculations for different requests.

    Example:
        engine = CompositionEngine(products, hierarchy, pallets)
        result = engine.calculate(CompositionRequest(
            lines=[CompositionLine(product_id="P1", quantity=10)],
            pallet_id="PBR-1",
        ))
        if not result.is_valid:
            for violation in result.error_violations():
                print(violation.message)
    """

    def __init__(
        self,
        products: Union[Iterable[Product], Mapping[str, Product]],
        hierarchy: PackagingHierarchy,
        pallets: Union[Iterable[Pallet], Mapping[str, Pallet]],
        config: EngineConfig = DEFAULT_CONFIG,
        conversion: Optional[ConversionEngine] = None,
    ):
        """
        Initialize composition engine.

        Args:
            products: Products by id (or an iterable of products)
            hierarchy: Packaging hierarchy for all products
            pallets: Pallets by id (or an iterable of pallets)
            config: Engine configuration
            conversion: Conversion engine (one using the products' precision when None)
        """
        self.products: Dict[str, Product] = _index(products, "product")
        self.pallets: Dict[str, Pallet] = _index(pallets, "pallet")
        self.hierarchy = hierarchy
        self.config = config
        self.conversion = conversion or ConversionEngine(products=self.products, config=config)
        self.packer = CompositionPacker(config)
        self.validator = CompositionValidator(config)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_product(self, product_id: str) -> Product:
        product = self.products.get(product_id)
        if product is None or not product.is_active:
            raise ProductNotFound(f"Product not found: {product_id}")
        return product

    def get_pallet(self, pallet_id: str) -> Pallet:
        pallet = self.pallets.get(pallet_id)
        if pallet is None:
            raise PalletNotFound(f"Pallet not found: {pallet_id}")
        return pallet

    def resolve_unit(self, product: Product, unit_id: Optional[str]) -> PackagingUnit:
        """Requested unit of a line (the product's base unit when None)."""
        if unit_id is None:
            return self.hierarchy.get_base_unit(product.id)
        unit = self.hierarchy.get_unit(unit_id)
        if unit.product_id != product.id:
            raise IncompatibleUnits(
                f"Packaging unit {unit_id} belongs to product {unit.product_id}, not {product.id}"
            )
        return unit

    def resolve_lines(self, request: CompositionRequest) -> List[ResolvedLine]:
        """
        Look up every product and unit of a request.

        Raises:
            ProductNotFound, UnitNotFound, NoBaseUnit, IncompatibleUnits
        """
        resolved = []
        for line in request.lines:
            product = self.get_product(line.product_id)
            resolved.append((line, product, self.resolve_unit(product, line.packaging_unit_id)))
        return resolved

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalize(self, resolved: List[ResolvedLine]) -> List[PackingItem]:
        """Convert resolved lines into physical packing items."""
        return [
            self._packing_item(line, product, unit, sort_order)
            for sort_order, (line, product, unit) in enumerate(resolved)
        ]

    def _packing_item(
        self,
        line: CompositionLine,
        product: Product,
        unit: PackagingUnit,
        sort_order: int
    ) -> PackingItem:
        notes = []
        base_quantity = self.conversion.to_base_units(line.quantity, unit)

        physical = unit
        dimensions = unit.dimensions
        if dimensions is None and unit.is_base_unit:
            dimensions = product.dimensions
        if dimensions is None and not unit.is_base_unit:
            base_unit = self.hierarchy.get_base_unit(product.id)
            base_dimensions = base_unit.dimensions or product.dimensions
            if base_dimensions is not None:
                physical, dimensions = base_unit, base_dimensions
                notes.append(f"Unit {unit.name} has no dimensions; {product.id} packed as {base_quantity} base units")

        exact_count = base_quantity / physical.base_unit_quantity
        count = int(math.ceil(exact_count))
        if count != exact_count:
            notes.append(
                f"{product.id}: {exact_count.normalize()} x {physical.name} is not a whole number "
                f"of items; packed as {count}"
            )

        if physical.weight is not None:
            item_weight = physical.weight
        else:
            item_weight = product.weight * float(physical.base_unit_quantity)

        return PackingItem(
            product_id=product.id,
            unit_id=physical.id,
            requested_unit_id=unit.id,
            requested_quantity=line.quantity,
            base_quantity=base_quantity,
            count=count,
            base_units_per_item=physical.base_unit_quantity,
            dimensions=dimensions,
            item_weight=item_weight,
            sort_order=sort_order,
            notes=notes,
        )

    def required_base_units(self, request: CompositionRequest) -> Dict[str, Decimal]:
        """Base units needed per product, in request order."""
        required: Dict[str, Decimal] = {}
        for line, product, unit in self.resolve_lines(request):
            quantity = self.conversion.to_base_units(line.quantity, unit)
            required[product.id] = required.get(product.id, Decimal(0)) + quantity
        return required

    def check_stock(self, items: List[PackingItem], stock_lines: Iterable[StockLine]) -> List[AvailabilityCheck]:
        """Availability of every requested product in the given stock."""
        required: Dict[str, Decimal] = {}
        for item in items:
            required[item.product_id] = required.get(item.product_id, Decimal(0)) + item.base_quantity

        consolidator = StockConsolidator(stock_lines, self.hierarchy, self.conversion)
        return [consolidator.check_availability(product_id, quantity) for product_id, quantity in required.items()]

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def calculate(
        self,
        request: CompositionRequest,
        stock_lines: Optional[Iterable[StockLine]] = None,
        pallets: Optional[Iterable[Pallet]] = None,
    ) -> CompositionResult:
        """
        Calculate a composition.

        Args:
            request: Products, quantities and target pallet
            stock_lines: Current stock (availability is not checked when None)
            pallets: Current pallet records, used for lookup and auto-selection
                (the engine's pallets when None)

        Returns:
            CompositionResult; physical problems are violations, not exceptions

        Raises:
            ProductNotFound, PalletNotFound, UnitNotFound, NoBaseUnit,
            IncompatibleUnits, InvalidConstraint: malformed requests
        """
        resolved = self.resolve_lines(request)
        known = self.pallets if pallets is None else _index(pallets, "pallet")
        pallet = None
        if request.pallet_id is not None:
            pallet = known.get(request.pallet_id)
            if pallet is None:
                raise PalletNotFound(f"Pallet not found: {request.pallet_id}")

        items = self.normalize(resolved)
        if pallet is None:
            pallet = select_pallet(known.values(), items, self.config)

        constraints = self.validator.resolve_constraints(pallet, request.constraints)
        availability = self.check_stock(items, stock_lines) if stock_lines is not None else []

        packed = self.packer.pack(items, pallet, constraints.max_height)
        check = self.validator.validate(items, pallet, packed, constraints, availability)
        recommendations = self.packer.recommendations(packed, check.weight.utilization)

        result = CompositionResult(
            is_valid=check.is_valid,
            pallet_id=pallet.id,
            efficiency=packed.efficiency,
            layout=packed.layout,
            weight=check.weight,
            volume=check.volume,
            height=check.height,
            violations=check.violations,
            warnings=check.warnings,
            recommendations=recommendations,
            products=check.products,
        )
        logger.info(
            f"Composition of {len(items)} lines on pallet {pallet.id}: "
            f"{'valid' if result.is_valid else 'invalid'}, efficiency {result.efficiency:.1%}"
        )
        return result
