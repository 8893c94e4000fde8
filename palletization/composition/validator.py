"""
Composition constraint validation.

Checks normalized packing items against a pallet's weight, volume and height
limits. Malformed constraints are request errors (``InvalidConstraint``);
everything physical is reported as ``Violation`` data.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..config import DEFAULT_CONFIG, EngineConfig
from ..constants import CM3_PER_M3
from ..exceptions import InvalidConstraint
from ..models.composition import ConstraintOverrides
from ..models.pallet import Pallet
from ..packaging.consolidation import AvailabilityCheck
from .packer import PackedLayout, PackingItem
from .result_schema import (
    ConstraintUsage,
    ProductBreakdown,
    Severity,
    Violation,
    ViolationType,
)

logger = logging.getLogger(__name__)


@dataclass
class EffectiveConstraints:
    """Limits a composition is checked against.

    Attributes:
        max_weight: kg
        max_height: cm above the deck
        max_volume: m³
    """
    max_weight: float
    max_height: float
    max_volume: float


@dataclass
class ConstraintCheck:
    """
    Outcome of validating one packed composition.

    Attributes:
        weight: Weight total against its limit
        volume: Volume total against its limit
        height: Stack height against its limit
        violations: Errors and warnings by constraint type
        warnings: Plain warning messages
        products: Per-line breakdown
    """
    weight: ConstraintUsage
    volume: ConstraintUsage
    height: ConstraintUsage
    violations: List[Violation] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    products: List[ProductBreakdown] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not any(v.severity == Severity.ERROR for v in self.violations)


class CompositionValidator:
    """
    Validates packing items against a pallet's physical limits.

    Steps:
    1. Resolve effective constraints from the pallet and overrides
    2. Check each line's footprint against the pallet
    3. Total weight, volume and (packed) stack height
    4. Compare totals against limits (error above, warning in the band)
    """

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG):
        self.config = config

    def resolve_constraints(
        self,
        pallet: Pallet,
        overrides: Optional[ConstraintOverrides] = None
    ) -> EffectiveConstraints:
        """
        Combine the pallet's own limits with request overrides.

        Raises:
            InvalidConstraint: If an override is non-positive or looser than the pallet
        """
        max_weight = pallet.max_weight
        max_height = pallet.stack_height_limit(self.config.default_max_stack_height)
        max_volume = pallet.usable_volume_m3(self.config.default_max_stack_height)

        if overrides is None:
            return EffectiveConstraints(max_weight=max_weight, max_height=max_height, max_volume=max_volume)

        weight = self._check_override("max_weight", overrides.max_weight, max_weight, pallet)
        height = self._check_override("max_height", overrides.max_height, max_height, pallet)
        volume = self._check_override("max_volume", overrides.max_volume, max_volume, pallet)

        if overrides.max_height is not None and overrides.max_volume is None:
            volume = pallet.footprint_area * height / CM3_PER_M3

        return EffectiveConstraints(max_weight=weight, max_height=height, max_volume=volume)

    @staticmethod
    def _check_override(name: str, value: Optional[float], limit: float, pallet: Pallet) -> float:
        if value is None:
            return limit
        if value <= 0:
            raise InvalidConstraint(f"{name} override must be positive, got {value}", {"pallet_id": pallet.id})
        if value > limit:
            raise InvalidConstraint(
                f"{name} override {value:g} exceeds pallet {pallet.id} limit {limit:g}",
                {"pallet_id": pallet.id}
            )
        return value

    def validate(
        self,
        items: List[PackingItem],
        pallet: Pallet,
        packed: PackedLayout,
        constraints: EffectiveConstraints,
        availability: Iterable[AvailabilityCheck] = (),
    ) -> ConstraintCheck:
        """
        Check packed items against effective constraints.

        Args:
            items: Normalized packing items (request order)
            pallet: Target pallet
            packed: Packer output for the same items
            constraints: Effective limits
            availability: Stock checks per product (shortfalls become stock errors)

        Returns:
            ConstraintCheck with totals, violations and per-line breakdown
        """
        violations: List[Violation] = []
        warnings: List[str] = []

        products = []
        for item in items:
            products.append(self._check_line(item, pallet, packed, violations))

        for check in availability:
            if check.is_available:
                continue
            message = (
                f"Insufficient stock for product {check.product_id}: "
                f"{check.available} of {check.required} base units available"
            )
            violations.append(Violation(
                type=ViolationType.STOCK,
                severity=Severity.ERROR,
                message=message,
                affected_products=[check.product_id],
            ))
            for breakdown in products:
                if breakdown.product_id == check.product_id:
                    breakdown.issues.append(f"Short {check.shortfall} base units in stock")

        weight = self._usage(sum(item.total_weight for item in items), constraints.max_weight)
        volume = self._usage(sum(item.total_volume_m3 for item in items), constraints.max_volume)
        height = self._usage(packed.layout.stack_height, constraints.max_height)

        all_products = sorted({item.product_id for item in items})
        self._compare(ViolationType.WEIGHT, weight, "kg", all_products, violations, warnings)
        self._compare(ViolationType.VOLUME, volume, "m³", all_products, violations, warnings)

        unplaced = sorted({line.item.product_id for line in packed.lines if line.footprint_fits and line.unplaced})
        self._compare(ViolationType.HEIGHT, height, "cm", unplaced or all_products, violations, warnings)

        if packed.layout.placed_items and packed.efficiency < self.config.low_efficiency_warning:
            warnings.append(f"Low space efficiency: {packed.efficiency:.1%}")

        if packed.layout.layers > self.config.max_stable_layers:
            warnings.append(
                f"{packed.layout.layers} layers exceed {self.config.max_stable_layers}; check load stability"
            )

        for item in items:
            warnings.extend(item.notes)

        check = ConstraintCheck(
            weight=weight,
            volume=volume,
            height=height,
            violations=violations,
            warnings=warnings,
            products=products,
        )
        if not check.is_valid:
            logger.info(
                f"Composition on pallet {pallet.id} has "
                f"{sum(1 for v in violations if v.severity == Severity.ERROR)} error violations"
            )
        return check

    def _check_line(
        self,
        item: PackingItem,
        pallet: Pallet,
        packed: PackedLayout,
        violations: List[Violation]
    ) -> ProductBreakdown:
        """Per-line breakdown; footprint misfits add a compatibility error."""
        line = packed.line_for(item)
        issues = list(item.notes)

        if item.dimensions is None:
            issues.append(f"No dimensions known for unit {item.unit_id}; the item cannot be placed")
            violations.append(Violation(
                type=ViolationType.COMPATIBILITY,
                severity=Severity.ERROR,
                message=f"Product {item.product_id} has no dimensions for unit {item.unit_id}",
                affected_products=[item.product_id],
            ))
        elif not line.footprint_fits:
            issues.append(
                f"Footprint {item.dimensions.width:g}x{item.dimensions.length:g}cm exceeds pallet "
                f"{pallet.width:g}x{pallet.length:g}cm"
            )
            violations.append(Violation(
                type=ViolationType.COMPATIBILITY,
                severity=Severity.ERROR,
                message=(
                    f"Product {item.product_id} ({item.dimensions}) does not fit "
                    f"the footprint of pallet {pallet.id}"
                ),
                affected_products=[item.product_id],
            ))
        elif line.unplaced:
            issues.append(f"{line.unplaced} of {line.requested} items exceed the height limit")

        return ProductBreakdown(
            product_id=item.product_id,
            unit_id=item.requested_unit_id,
            quantity=item.requested_quantity,
            base_quantity=item.base_quantity,
            total_weight=item.total_weight,
            total_volume=item.total_volume_m3,
            efficiency=line.efficiency if line.footprint_fits else 0.0,
            can_fit=line.can_fit,
            issues=issues,
        )

    @staticmethod
    def _usage(total: float, limit: float) -> ConstraintUsage:
        return ConstraintUsage(total=total, limit=limit, utilization=total / limit)

    def _compare(
        self,
        violation_type: ViolationType,
        usage: ConstraintUsage,
        unit: str,
        affected: List[str],
        violations: List[Violation],
        warnings: List[str],
    ) -> None:
        """Error above the limit; warning from the warning band up to the limit."""
        label = violation_type.value.capitalize()
        if usage.exceeded:
            violations.append(Violation(
                type=violation_type,
                severity=Severity.ERROR,
                message=f"{label} {usage.total:g}{unit} exceeds limit {usage.limit:g}{unit}",
                affected_products=affected,
            ))
        elif usage.utilization >= self.config.warning_utilization:
            message = f"{label} utilization {usage.utilization:.1%} is close to the limit"
            violations.append(Violation(
                type=violation_type,
                severity=Severity.WARNING,
                message=message,
                affected_products=affected,
            ))
            warnings.append(message)
