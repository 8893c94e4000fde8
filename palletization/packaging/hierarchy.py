"""
Packaging hierarchy model.

This module keeps every product's packaging units in an arena indexed by unit
id and mirrors the parent relation in a NetworkX directed graph
(child -> parent edges). Cycle prevention is a reachability check on that
graph at insert/re-parent time.
"""

import itertools
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

import networkx as nx

from ..constants import BASE_UNIT_LEVEL, BASE_UNIT_QUANTITY
from ..exceptions import InvalidHierarchy, NoBaseUnit, UnitInUse, UnitNotFound
from ..models.composition import CompositionProductLine
from ..models.packaging import PackagingUnit, PackagingUnitSpec
from ..models.stock import StockLine

logger = logging.getLogger(__name__)


@dataclass
class PackagingNode:
    """
    A packaging unit with the finer units it contains.

    Attributes:
        unit: The packaging unit
        children: Units whose parent is this unit
    """
    unit: PackagingUnit
    children: List["PackagingNode"] = field(default_factory=list)

    def walk(self) -> Iterable[PackagingUnit]:
        """Yield this unit and every unit below it, depth first."""
        yield self.unit
        for child in self.children:
            yield from child.walk()


class PackagingHierarchy:
    """
    Arena of packaging units for all products.

    Invariants maintained per product:
    - exactly one active base unit, with base_unit_quantity == 1 and level 1
    - a unit's parent belongs to the same product and is strictly coarser
    - no unit is its own ancestor
    - barcodes are unique among active units of all products

    Example:
        hierarchy = PackagingHierarchy()
        hierarchy.add_unit("P1", PackagingUnitSpec(name="Unit", base_unit_quantity=1, is_base_unit=True))
        box = hierarchy.add_unit("P1", PackagingUnitSpec(name="Box 12", base_unit_quantity=12))
        hierarchy.get_hierarchy("P1")  # [Unit, Box 12]
    """

    def __init__(self):
        self._units: Dict[str, PackagingUnit] = {}
        self.graph = nx.DiGraph()
        self._id_sequence = itertools.count(1)

    @classmethod
    def from_units(cls, units: Iterable[PackagingUnit]) -> "PackagingHierarchy":
        """
        Build a hierarchy from already persisted unit records.

        Args:
            units: Unit records in any order

        Returns:
            Hierarchy holding the units

        Raises:
            InvalidHierarchy: If the records break a hierarchy invariant
        """
        hierarchy = cls()
        records = list(units)

        for unit in records:
            if unit.id in hierarchy._units:
                raise InvalidHierarchy(f"Duplicate packaging unit id: {unit.id}")
            hierarchy._units[unit.id] = unit
            if unit.is_active:
                hierarchy.graph.add_node(unit.id, product_id=unit.product_id)

        for unit in records:
            if not unit.is_active:
                continue
            if unit.is_base_unit and unit.base_unit_quantity != BASE_UNIT_QUANTITY:
                raise InvalidHierarchy(
                    f"Base unit {unit.id} must contain exactly 1 base unit",
                    {"base_unit_quantity": unit.base_unit_quantity}
                )
            if unit.parent_unit_id is not None:
                parent = hierarchy._units.get(unit.parent_unit_id)
                if parent is None or not parent.is_active:
                    raise InvalidHierarchy(
                        f"Unit {unit.id} references missing parent {unit.parent_unit_id}"
                    )
                if parent.product_id != unit.product_id:
                    raise InvalidHierarchy(
                        f"Unit {unit.id} and its parent {parent.id} belong to different products"
                    )
                hierarchy.graph.add_edge(unit.id, parent.id)

        if not nx.is_directed_acyclic_graph(hierarchy.graph):
            cycle = [edge[0] for edge in nx.find_cycle(hierarchy.graph)]
            raise InvalidHierarchy("Packaging parent relation contains a cycle", {"cycle": cycle})

        base_counts: Dict[str, int] = {}
        barcodes: Dict[str, str] = {}
        for unit in hierarchy._active_units():
            if unit.is_base_unit:
                base_counts[unit.product_id] = base_counts.get(unit.product_id, 0) + 1
            if unit.barcode:
                if unit.barcode in barcodes:
                    raise InvalidHierarchy(
                        f"Barcode {unit.barcode} used by units {barcodes[unit.barcode]} and {unit.id}"
                    )
                barcodes[unit.barcode] = unit.id
        for product_id, count in base_counts.items():
            if count > 1:
                raise InvalidHierarchy(f"Product {product_id} has {count} base units")

        logger.info(f"Loaded {len(records)} packaging units for {len(hierarchy.products())} products")
        return hierarchy

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_unit(self, product_id: str, spec: PackagingUnitSpec) -> PackagingUnit:
        """
        Add a packaging unit to a product.

        Args:
            product_id: Owning product
            spec: Unit definition

        Returns:
            The stored PackagingUnit

        Raises:
            InvalidHierarchy: Second base unit, non-positive quantity, cycle,
                parent not coarser, barcode collision or id collision
            NoBaseUnit: Non-base unit added before the product has a base unit
            UnitNotFound: Declared parent does not exist
        """
        quantity = spec.base_unit_quantity
        if quantity <= 0:
            raise InvalidHierarchy(
                f"base_unit_quantity must be positive for unit '{spec.name}'",
                {"product_id": product_id, "base_unit_quantity": quantity}
            )

        unit_id = spec.id or self._next_id(product_id)
        if unit_id in self._units:
            raise InvalidHierarchy(f"Packaging unit id already exists: {unit_id}")

        if spec.is_base_unit:
            existing = self._find_base_unit(product_id)
            if existing is not None:
                raise InvalidHierarchy(
                    f"Product {product_id} already has a base unit",
                    {"base_unit_id": existing.id}
                )
            if quantity != BASE_UNIT_QUANTITY:
                raise InvalidHierarchy(
                    f"Base unit must contain exactly 1 base unit, got {quantity}",
                    {"product_id": product_id}
                )
            if spec.level is not None and spec.level != BASE_UNIT_LEVEL:
                raise InvalidHierarchy(f"Base unit must be at level {BASE_UNIT_LEVEL}, got {spec.level}")
            level = BASE_UNIT_LEVEL
        else:
            self.get_base_unit(product_id)
            if spec.level is not None and spec.level <= BASE_UNIT_LEVEL:
                raise InvalidHierarchy(
                    f"Level {spec.level} is reserved for the base unit",
                    {"product_id": product_id, "unit": spec.name}
                )
            level = spec.level if spec.level is not None else self._derive_level(product_id, quantity)

        self._check_barcode(spec.barcode)
        if spec.parent_unit_id is not None:
            self._check_parent(unit_id, product_id, quantity, spec.parent_unit_id)

        unit = PackagingUnit(
            id=unit_id,
            product_id=product_id,
            name=spec.name,
            base_unit_quantity=quantity,
            is_base_unit=spec.is_base_unit,
            parent_unit_id=spec.parent_unit_id,
            level=level,
            barcode=spec.barcode,
            dimensions=spec.dimensions,
            weight=spec.weight,
        )
        self._units[unit_id] = unit
        self.graph.add_node(unit_id, product_id=product_id)
        if unit.parent_unit_id is not None:
            self.graph.add_edge(unit_id, unit.parent_unit_id)

        logger.info(f"Added packaging unit {unit}")
        return unit

    def set_parent(self, unit_id: str, parent_unit_id: Optional[str]) -> PackagingUnit:
        """
        Attach a unit to a coarser parent (or detach it with None).

        Raises:
            UnitNotFound: Unit or parent does not exist
            InvalidHierarchy: Parent would create a cycle, is of another
                product, or is not coarser than the unit
        """
        unit = self.get_unit(unit_id)
        if parent_unit_id is not None:
            self._check_parent(unit.id, unit.product_id, unit.base_unit_quantity, parent_unit_id)

        if unit.parent_unit_id is not None and self.graph.has_edge(unit.id, unit.parent_unit_id):
            self.graph.remove_edge(unit.id, unit.parent_unit_id)
        if parent_unit_id is not None:
            self.graph.add_edge(unit.id, parent_unit_id)

        updated = unit.model_copy(update={"parent_unit_id": parent_unit_id})
        self._units[unit.id] = updated
        logger.debug(f"Unit {unit.id} parent set to {parent_unit_id}")
        return updated

    def update_barcode(self, unit_id: str, barcode: Optional[str]) -> PackagingUnit:
        """Change a unit's barcode, keeping barcodes globally unique."""
        unit = self.get_unit(unit_id)
        if barcode != unit.barcode:
            self._check_barcode(barcode, ignore_unit_id=unit.id)
        updated = unit.model_copy(update={"barcode": barcode})
        self._units[unit.id] = updated
        return updated

    def remove_unit(
        self,
        unit_id: str,
        stock_lines: Iterable[StockLine] = (),
        composition_lines: Iterable[CompositionProductLine] = (),
    ) -> PackagingUnit:
        """
        Deactivate a packaging unit.

        Args:
            unit_id: Unit to remove
            stock_lines: Current stock lines (checked for references)
            composition_lines: Current composition product lines (checked for references)

        Returns:
            The deactivated unit record

        Raises:
            UnitNotFound: Unknown or already removed unit
            UnitInUse: Active stock or composition lines reference the unit
            InvalidHierarchy: Active units still have it as parent, or it is
                the base unit of a product with other active units
        """
        unit = self.get_unit(unit_id)

        stock_refs = [line.id for line in stock_lines if line.references_unit(unit_id)]
        composition_refs = sum(1 for line in composition_lines if line.references_unit(unit_id))
        if stock_refs or composition_refs:
            raise UnitInUse(
                f"Packaging unit {unit_id} is still referenced",
                {"stock_lines": len(stock_refs), "composition_lines": composition_refs}
            )

        children = [child for child in self.graph.predecessors(unit_id)]
        if children:
            raise InvalidHierarchy(
                f"Packaging unit {unit_id} is the parent of active units",
                {"children": sorted(children)}
            )

        if unit.is_base_unit:
            others = [u.id for u in self._product_units(unit.product_id) if u.id != unit_id]
            if others:
                raise InvalidHierarchy(
                    f"Base unit {unit_id} cannot be removed while other units exist",
                    {"units": others}
                )

        removed = unit.model_copy(update={"is_active": False})
        self._units[unit_id] = removed
        self.graph.remove_node(unit_id)
        logger.info(f"Removed packaging unit {unit_id} from product {unit.product_id}")
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_unit(self, unit_id: str, include_inactive: bool = False) -> PackagingUnit:
        """Get a unit by id (active only unless ``include_inactive``)."""
        unit = self._units.get(unit_id)
        if unit is None or (not unit.is_active and not include_inactive):
            raise UnitNotFound(f"Packaging unit not found: {unit_id}")
        return unit

    def get_base_unit(self, product_id: str) -> PackagingUnit:
        """
        Get the base unit of a product.

        Raises:
            NoBaseUnit: If the product has no active base unit
        """
        unit = self._find_base_unit(product_id)
        if unit is None:
            raise NoBaseUnit(f"Product {product_id} has no base unit")
        return unit

    def get_hierarchy(self, product_id: str) -> List[PackagingUnit]:
        """Active units of a product ordered by level (finest first)."""
        return sorted(
            self._product_units(product_id),
            key=lambda u: (u.level, u.base_unit_quantity, u.id)
        )

    def get_by_barcode(self, barcode: str) -> PackagingUnit:
        """Find the active unit carrying a barcode."""
        for unit in self._active_units():
            if unit.barcode == barcode:
                return unit
        raise UnitNotFound(f"No packaging unit with barcode {barcode}")

    def get_tree(self, product_id: str) -> List[PackagingNode]:
        """
        Build the nested packaging tree of a product.

        Roots are units without a parent; each node lists the finer units
        whose parent it is.

        Returns:
            Root nodes ordered by level then id
        """
        nodes = {unit.id: PackagingNode(unit=unit) for unit in self.get_hierarchy(product_id)}
        roots = []
        for unit_id, node in nodes.items():
            parent_id = node.unit.parent_unit_id
            if parent_id is not None and parent_id in nodes:
                nodes[parent_id].children.append(node)
            else:
                roots.append(node)
        return roots

    def ancestors(self, unit_id: str) -> List[PackagingUnit]:
        """Coarser units above a unit, nearest first."""
        self.get_unit(unit_id)
        chain = []
        current = unit_id
        while True:
            parents = list(self.graph.successors(current))
            if not parents:
                return chain
            current = parents[0]
            chain.append(self._units[current])

    def products(self) -> List[str]:
        """Product ids with at least one active unit."""
        return sorted({unit.product_id for unit in self._active_units()})

    def __contains__(self, unit_id: str) -> bool:
        unit = self._units.get(unit_id)
        return unit is not None and unit.is_active

    def __len__(self) -> int:
        return sum(1 for _ in self._active_units())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _active_units(self) -> Iterable[PackagingUnit]:
        return (unit for unit in self._units.values() if unit.is_active)

    def _product_units(self, product_id: str) -> List[PackagingUnit]:
        return [unit for unit in self._active_units() if unit.product_id == product_id]

    def _find_base_unit(self, product_id: str) -> Optional[PackagingUnit]:
        for unit in self._product_units(product_id):
            if unit.is_base_unit:
                return unit
        return None

    def _derive_level(self, product_id: str, quantity: Decimal) -> int:
        finer = {u.base_unit_quantity for u in self._product_units(product_id) if u.base_unit_quantity < quantity}
        return len(finer) + 1

    def _next_id(self, product_id: str) -> str:
        while True:
            candidate = f"{product_id}-U{next(self._id_sequence)}"
            if candidate not in self._units:
                return candidate

    def _check_barcode(self, barcode: Optional[str], ignore_unit_id: Optional[str] = None) -> None:
        if not barcode:
            return
        for unit in self._active_units():
            if unit.barcode == barcode and unit.id != ignore_unit_id:
                raise InvalidHierarchy(
                    f"Barcode {barcode} already used by packaging unit {unit.id}",
                    {"product_id": unit.product_id}
                )

    def _check_parent(self, unit_id: str, product_id: str, quantity: Decimal, parent_unit_id: str) -> None:
        if parent_unit_id == unit_id:
            raise InvalidHierarchy(f"Packaging unit {unit_id} cannot be its own parent")

        parent = self._units.get(parent_unit_id)
        if parent is None or not parent.is_active:
            raise UnitNotFound(f"Parent packaging unit not found: {parent_unit_id}")

        if parent.product_id != product_id:
            raise InvalidHierarchy(
                f"Parent {parent_unit_id} belongs to product {parent.product_id}, not {product_id}"
            )

        if unit_id in self.graph and nx.has_path(self.graph, parent_unit_id, unit_id):
            raise InvalidHierarchy(
                f"Setting {parent_unit_id} as parent of {unit_id} would create a cycle",
                {"product_id": product_id}
            )

        if parent.base_unit_quantity <= quantity:
            raise InvalidHierarchy(
                f"Parent {parent_unit_id} ({parent.base_unit_quantity}) must be coarser than "
                f"{quantity} base units",
                {"product_id": product_id}
            )
