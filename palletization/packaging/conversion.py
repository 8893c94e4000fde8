"""Quantity conversion between packaging units.

All arithmetic is done in ``decimal.Decimal``. Converting out of base units is
the only place rounding can happen; it rounds half-up to the product's
precision and reports the loss on the returned ``ConvertedQuantity`` instead
of hiding it.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Mapping, Optional, Tuple

from ..config import DEFAULT_CONFIG, EngineConfig
from ..exceptions import IncompatibleUnits, InvalidHierarchy
from ..models.packaging import ConversionRule, PackagingUnit
from ..models.product import Product
from .hierarchy import PackagingHierarchy

logger = logging.getLogger(__name__)


@dataclass
class ConvertedQuantity:
    """
    Result of converting a quantity into a packaging unit.

    Attributes:
        unit_id: Target packaging unit
        quantity: Quantity rounded to the product's precision
        exact_quantity: Unrounded quotient
        is_exact: True when ``quantity`` loses nothing
        warning: Precision-loss message (None when exact)
    """
    unit_id: str
    quantity: Decimal
    exact_quantity: Decimal
    is_exact: bool = True
    warning: Optional[str] = None

    def __str__(self) -> str:
        suffix = "" if self.is_exact else f" (rounded from {self.exact_quantity})"
        return f"{self.quantity} x {self.unit_id}{suffix}"


def _quantum(precision: int) -> Decimal:
    return Decimal(1).scaleb(-precision)


def checked_base_quantity(unit: PackagingUnit) -> Decimal:
    """Base-unit quantity of a unit, refusing non-positive values."""
    quantity = Decimal(unit.base_unit_quantity)
    if quantity <= 0:
        raise InvalidHierarchy(
            f"Packaging unit {unit.id} has non-positive base_unit_quantity",
            {"base_unit_quantity": quantity}
        )
    return quantity


class ConversionRuleCache:
    """
    Derived cache of conversion factors per ordered unit pair.

    The cache is owned by no one: it can be dropped and rebuilt from the
    hierarchy at any time, and a rebuilt factor always equals the live one.
    """

    def __init__(self):
        self._rules: Dict[Tuple[str, str], ConversionRule] = {}
        self._by_product: Dict[str, List[Tuple[str, str]]] = {}

    def rebuild(self, hierarchy: PackagingHierarchy, product_id: str) -> int:
        """
        Regenerate every rule for a product.

        Returns:
            Number of rules stored
        """
        self.drop(product_id)
        units = hierarchy.get_hierarchy(product_id)
        keys = []
        for source in units:
            for target in units:
                if source.id == target.id:
                    continue
                factor = checked_base_quantity(source) / checked_base_quantity(target)
                rule = ConversionRule(from_unit_id=source.id, to_unit_id=target.id, factor=factor)
                self._rules[(source.id, target.id)] = rule
                keys.append((source.id, target.id))
        self._by_product[product_id] = keys
        logger.debug(f"Rebuilt {len(keys)} conversion rules for product {product_id}")
        return len(keys)

    def get(self, from_unit_id: str, to_unit_id: str) -> Optional[ConversionRule]:
        return self._rules.get((from_unit_id, to_unit_id))

    def drop(self, product_id: str) -> None:
        for key in self._by_product.pop(product_id, []):
            self._rules.pop(key, None)

    def clear(self) -> None:
        self._rules.clear()
        self._by_product.clear()

    def rules(self, product_id: str) -> List[ConversionRule]:
        return [self._rules[key] for key in self._by_product.get(product_id, [])]

    def __len__(self) -> int:
        return len(self._rules)


class ConversionEngine:
    """
    Converts quantities between units of one product's packaging tree.

    Example:
        engine = ConversionEngine(products={"P1": product})
        engine.to_base_units(Decimal("3"), box)           # Decimal("36")
        engine.from_base_units(Decimal("40"), box)        # 3.333 x box, not exact
    """

    def __init__(
        self,
        products: Optional[Mapping[str, Product]] = None,
        cache: Optional[ConversionRuleCache] = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ):
        """
        Args:
            products: Products by id, used for per-product precision
            cache: Optional conversion rule cache consulted by ``factor``
            config: Engine configuration (default precision)
        """
        self.products = dict(products or {})
        self.cache = cache
        self.config = config

    def factor(self, from_unit: PackagingUnit, to_unit: PackagingUnit) -> Decimal:
        """
        Factor converting a quantity of ``from_unit`` into ``to_unit``.

        Raises:
            IncompatibleUnits: If the units belong to different products
        """
        self._check_same_product(from_unit, to_unit)
        if from_unit.id == to_unit.id:
            return Decimal(1)

        if self.cache is not None:
            rule = self.cache.get(from_unit.id, to_unit.id)
            if rule is not None:
                return rule.factor

        return checked_base_quantity(from_unit) / checked_base_quantity(to_unit)

    def to_base_units(self, quantity: Decimal, unit: PackagingUnit) -> Decimal:
        """Exact base-unit quantity of ``quantity`` packages of ``unit``."""
        return Decimal(quantity) * checked_base_quantity(unit)

    def from_base_units(
        self,
        base_quantity: Decimal,
        unit: PackagingUnit,
        precision: Optional[int] = None,
    ) -> ConvertedQuantity:
        """
        Express a base-unit quantity in packages of ``unit``.

        Args:
            base_quantity: Quantity in base units
            unit: Target packaging unit
            precision: Decimal places (product precision when None)

        Returns:
            ConvertedQuantity, with a warning when rounding lost precision
        """
        base_quantity = Decimal(base_quantity)
        unit_quantity = checked_base_quantity(unit)
        places = precision if precision is not None else self.precision_for(unit.product_id)

        exact = base_quantity / unit_quantity
        rounded = exact.quantize(_quantum(places), rounding=ROUND_HALF_UP)
        is_exact = rounded * unit_quantity == base_quantity

        warning = None
        if not is_exact:
            warning = (
                f"{base_quantity} base units is not a whole multiple at {places} decimal places "
                f"of {unit.name}; rounded to {rounded}"
            )
            logger.warning(warning)

        return ConvertedQuantity(
            unit_id=unit.id,
            quantity=rounded,
            exact_quantity=exact,
            is_exact=is_exact,
            warning=warning,
        )

    def convert(
        self,
        quantity: Decimal,
        from_unit: PackagingUnit,
        to_unit: PackagingUnit,
        precision: Optional[int] = None,
    ) -> ConvertedQuantity:
        """Convert packages of ``from_unit`` into packages of ``to_unit``."""
        self._check_same_product(from_unit, to_unit)
        return self.from_base_units(self.to_base_units(quantity, from_unit), to_unit, precision)

    def whole_packages(self, base_quantity: Decimal, unit: PackagingUnit) -> Tuple[int, Decimal]:
        """
        Split a base-unit quantity into whole packages and a remainder.

        Returns:
            Tuple of (packages, remaining base units)
        """
        unit_quantity = checked_base_quantity(unit)
        base_quantity = Decimal(base_quantity)
        if base_quantity < 0:
            raise ValueError(f"Cannot split a negative quantity: {base_quantity}")
        packages, remainder = divmod(base_quantity, unit_quantity)
        return int(packages), remainder

    def precision_for(self, product_id: str) -> int:
        """Decimal places used for a product's converted quantities."""
        product = self.products.get(product_id)
        if product is not None and product.quantity_precision is not None:
            return product.quantity_precision
        return self.config.default_quantity_precision

    @staticmethod
    def _check_same_product(from_unit: PackagingUnit, to_unit: PackagingUnit) -> None:
        if from_unit.product_id != to_unit.product_id:
            raise IncompatibleUnits(
                "Cannot convert between units of different products",
                {
                    "from_unit": f"{from_unit.id} ({from_unit.product_id})",
                    "to_unit": f"{to_unit.id} ({to_unit.product_id})",
                }
            )
