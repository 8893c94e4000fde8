"""
Stock consolidation across packaging units.

Stock lines record quantities in whatever packaging they were counted in.
The consolidator brings them to a common base-unit total and re-expresses
that total as whole packages of any unit. It never mutates stock lines.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

import pandas as pd

from ..exceptions import IncompatibleUnits
from ..models.stock import StockLine
from .conversion import ConversionEngine, checked_base_quantity
from .hierarchy import PackagingHierarchy

logger = logging.getLogger(__name__)


@dataclass
class ConsolidatedStock:
    """
    Base-unit stock total of one product.

    Attributes:
        product_id: Product
        total_base_units: Sum of all active lines in base units
        locations_count: Distinct locations holding the product
        lines_count: Active stock lines counted
    """
    product_id: str
    total_base_units: Decimal
    locations_count: int
    lines_count: int

    def __str__(self) -> str:
        return (
            f"{self.product_id}: {self.total_base_units} base units "
            f"in {self.locations_count} locations ({self.lines_count} lines)"
        )


@dataclass
class PackagingStock:
    """
    Stock of one product expressed in whole packages of one unit.

    Invariant: available_packages * base_unit_quantity + remaining_base_units
    == total_base_units
    """
    product_id: str
    unit_id: str
    unit_name: str
    base_unit_quantity: Decimal
    available_packages: int
    remaining_base_units: Decimal
    total_base_units: Decimal


@dataclass
class AvailabilityCheck:
    """Whether stock covers a required base-unit quantity."""
    product_id: str
    required: Decimal
    available: Decimal

    @property
    def shortfall(self) -> Decimal:
        return max(self.required - self.available, Decimal(0))

    @property
    def is_available(self) -> bool:
        return self.available >= self.required

    def __str__(self) -> str:
        if self.is_available:
            return f"{self.product_id}: {self.required} of {self.available} available"
        return f"{self.product_id}: short {self.shortfall} ({self.available} of {self.required})"


@dataclass
class PickingStep:
    """One packaging unit's share of a picking plan."""
    unit_id: str
    unit_name: str
    packages: int
    base_units: Decimal


@dataclass
class PickingPlan:
    """
    Greedy largest-package-first plan for picking a base-unit quantity.

    Attributes:
        product_id: Product
        requested: Requested base units
        steps: Packages to pick per unit, largest unit first
        remaining: Requested base units the plan could not cover
    """
    product_id: str
    requested: Decimal
    steps: List[PickingStep] = field(default_factory=list)
    remaining: Decimal = Decimal(0)

    @property
    def total_planned(self) -> Decimal:
        return self.requested - self.remaining

    @property
    def can_fulfill(self) -> bool:
        return self.remaining == 0


class StockConsolidator:
    """
    Read-only aggregation of stock lines into base-unit totals.

    Example:
        consolidator = StockConsolidator(stock_lines, hierarchy)
        consolidator.consolidate("P1").total_base_units     # Decimal("150")
        consolidator.by_packaging("P1", "BOX12").available_packages  # 12
    """

    def __init__(
        self,
        stock_lines: Iterable[StockLine],
        hierarchy: PackagingHierarchy,
        conversion: Optional[ConversionEngine] = None,
    ):
        """
        Args:
            stock_lines: Stock lines (inactive lines are ignored)
            hierarchy: Packaging hierarchy the lines' units belong to
            conversion: Conversion engine (a plain one when None)
        """
        self.stock_lines = [line for line in stock_lines if line.is_active]
        self.hierarchy = hierarchy
        self.conversion = conversion or ConversionEngine()

    def lines_for(self, product_id: str) -> List[StockLine]:
        return [line for line in self.stock_lines if line.product_id == product_id]

    def base_quantity(self, line: StockLine) -> Decimal:
        """
        Quantity of a stock line in base units.

        Raises:
            UnitNotFound: The line's unit does not exist
            IncompatibleUnits: The line's unit belongs to another product
        """
        if line.unit_id is None:
            return line.quantity

        unit = self.hierarchy.get_unit(line.unit_id)
        if unit.product_id != line.product_id:
            raise IncompatibleUnits(
                f"Stock line {line.id} records product {line.product_id} in a unit of {unit.product_id}",
                {"unit_id": unit.id}
            )
        if unit.is_base_unit:
            return line.quantity

        base_unit = self.hierarchy.get_base_unit(line.product_id)
        return line.quantity * self.conversion.factor(unit, base_unit)

    def consolidate(self, product_id: str) -> ConsolidatedStock:
        """Sum every active line of a product in base units."""
        lines = self.lines_for(product_id)
        total = sum((self.base_quantity(line) for line in lines), Decimal(0))
        locations = {line.location_id for line in lines}
        logger.debug(f"Consolidated {len(lines)} stock lines for {product_id}: {total} base units")
        return ConsolidatedStock(
            product_id=product_id,
            total_base_units=total,
            locations_count=len(locations),
            lines_count=len(lines),
        )

    def by_packaging(self, product_id: str, unit_id: str) -> PackagingStock:
        """
        Express a product's total stock as whole packages of one unit.

        Raises:
            UnitNotFound: Unknown unit
            IncompatibleUnits: The unit belongs to another product
            InvalidHierarchy: The unit's base_unit_quantity is not positive
        """
        unit = self.hierarchy.get_unit(unit_id)
        if unit.product_id != product_id:
            raise IncompatibleUnits(
                f"Packaging unit {unit_id} belongs to product {unit.product_id}, not {product_id}"
            )
        unit_quantity = checked_base_quantity(unit)
        total = self.consolidate(product_id).total_base_units
        packages, remainder = self.conversion.whole_packages(total, unit)
        return PackagingStock(
            product_id=product_id,
            unit_id=unit.id,
            unit_name=unit.name,
            base_unit_quantity=unit_quantity,
            available_packages=packages,
            remaining_base_units=remainder,
            total_base_units=total,
        )

    def by_packaging_all(self, product_id: str) -> List[PackagingStock]:
        """``by_packaging`` for every active unit of a product, finest first."""
        return [self.by_packaging(product_id, unit.id) for unit in self.hierarchy.get_hierarchy(product_id)]

    def check_availability(self, product_id: str, required_base_units: Decimal) -> AvailabilityCheck:
        total = self.consolidate(product_id).total_base_units
        return AvailabilityCheck(
            product_id=product_id,
            required=Decimal(required_base_units),
            available=total,
        )

    def packages_by_unit(self, product_id: str) -> Dict[str, Decimal]:
        """
        Packages recorded per packaging unit (lines without a unit count as base units).

        Raises:
            UnitNotFound: A line's unit does not exist
            IncompatibleUnits: A line's unit belongs to another product
        """
        recorded: Dict[str, Decimal] = {}
        for line in self.lines_for(product_id):
            if line.unit_id is None:
                unit_id = self.hierarchy.get_base_unit(product_id).id
            else:
                unit = self.hierarchy.get_unit(line.unit_id)
                if unit.product_id != product_id:
                    raise IncompatibleUnits(
                        f"Stock line {line.id} records product {product_id} in a unit of {unit.product_id}",
                        {"unit_id": unit.id}
                    )
                unit_id = unit.id
            recorded[unit_id] = recorded.get(unit_id, Decimal(0)) + line.quantity
        return recorded

    def plan_picking(self, product_id: str, requested_base_units: Decimal) -> PickingPlan:
        """
        Plan picking a base-unit quantity using the largest packages first.

        Each unit contributes as many whole packages as fit in what is still
        requested, capped by the packages recorded in that unit. Packages are
        never opened to serve a finer unit.

        Args:
            product_id: Product to pick
            requested_base_units: Quantity to pick in base units

        Returns:
            PickingPlan (``can_fulfill`` is False when stock falls short)
        """
        requested = Decimal(requested_base_units)
        recorded = self.packages_by_unit(product_id)
        plan = PickingPlan(product_id=product_id, requested=requested, remaining=requested)

        units = sorted(
            self.hierarchy.get_hierarchy(product_id),
            key=lambda u: (-u.base_unit_quantity, u.id)
        )
        for unit in units:
            if plan.remaining <= 0:
                break
            unit_quantity = checked_base_quantity(unit)
            in_stock = int(recorded.get(unit.id, Decimal(0)))
            packages = min(int(plan.remaining // unit_quantity), in_stock)
            if packages <= 0:
                continue
            used = packages * unit_quantity
            plan.steps.append(PickingStep(
                unit_id=unit.id,
                unit_name=unit.name,
                packages=packages,
                base_units=used,
            ))
            plan.remaining -= used

        if not plan.can_fulfill:
            logger.info(f"Picking plan for {product_id} is short {plan.remaining} base units")
        return plan

    def summary_frame(self, product_id: str) -> pd.DataFrame:
        """
        Stock of a product per location.

        Returns:
            DataFrame with columns location_id, lines, base_units
        """
        rows: Dict[str, Dict] = {}
        for line in self.lines_for(product_id):
            row = rows.setdefault(line.location_id, {
                "location_id": line.location_id,
                "lines": 0,
                "base_units": Decimal(0),
            })
            row["lines"] += 1
            row["base_units"] += self.base_quantity(line)

        df = pd.DataFrame(list(rows.values()), columns=["location_id", "lines", "base_units"])
        return df.sort_values("location_id").reset_index(drop=True)
