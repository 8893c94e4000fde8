"""Pydantic schema for composition results.

This module defines the closed interface between the composition engine and
its consumers (lifecycle manager, reports, persistence). Every field is named
and typed; unknown fields are rejected so the result never degrades into a
freeform document.

Design Principles:
1. Fail Fast: a malformed result raises ValidationError where it is built
2. Closed Shape: extra="forbid" on every model
3. Data, not exceptions: physical infeasibility is reported as violations
"""

from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.product import Dimensions


class ViolationType(str, Enum):
    """Constraint a violation refers to."""
    WEIGHT = "weight"
    VOLUME = "volume"
    HEIGHT = "height"
    COMPATIBILITY = "compatibility"
    STOCK = "stock"


class Severity(str, Enum):
    """Errors block validity; warnings are informational."""
    ERROR = "error"
    WARNING = "warning"


# ============================================================================
# Layout
# ============================================================================

class Position(BaseModel):
    """Corner of a placed item, in cm from the pallet origin (z = 0 on the deck)."""
    x: float = Field(..., ge=0)
    y: float = Field(..., ge=0)
    z: float = Field(..., ge=0)

    model_config = ConfigDict(extra="forbid")


class PlacedItem(BaseModel):
    """One physical item placed on the pallet."""
    product_id: str
    unit_id: str
    quantity: Decimal = Field(..., gt=0, description="Base units contained in the item")
    position: Position
    dimensions: Dimensions = Field(..., description="Placed orientation")
    layer: int = Field(..., ge=1)

    model_config = ConfigDict(extra="forbid")


class Layout(BaseModel):
    """Packed arrangement.

    ``total_items`` counts every requested physical item; ``placed_items``
    counts those in ``arrangement``.
    """
    layers: int = Field(default=0, ge=0)
    items_per_layer: List[int] = Field(default_factory=list)
    total_items: int = Field(default=0, ge=0)
    placed_items: int = Field(default=0, ge=0)
    stack_height: float = Field(default=0.0, ge=0, description="Height the full arrangement needs (cm)")
    arrangement: List[PlacedItem] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def check_counts(self) -> "Layout":
        """Placed items reconcile with the arrangement and the requested total."""
        if self.placed_items != len(self.arrangement):
            raise ValueError(
                f"placed_items ({self.placed_items}) != len(arrangement) ({len(self.arrangement)})"
            )
        if self.placed_items > self.total_items:
            raise ValueError(f"placed_items ({self.placed_items}) > total_items ({self.total_items})")
        if sum(self.items_per_layer) != self.placed_items:
            raise ValueError("items_per_layer does not add up to placed_items")
        return self

    @property
    def unplaced_items(self) -> int:
        return self.total_items - self.placed_items


# ============================================================================
# Constraints and violations
# ============================================================================

class ConstraintUsage(BaseModel):
    """Total against limit for one constraint."""
    total: float = Field(..., ge=0)
    limit: float = Field(..., gt=0)
    utilization: float = Field(..., ge=0, description="total / limit")

    model_config = ConfigDict(extra="forbid")

    @property
    def exceeded(self) -> bool:
        return self.total > self.limit


class Violation(BaseModel):
    """A constraint violation or warning."""
    type: ViolationType
    severity: Severity
    message: str
    affected_products: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class ProductBreakdown(BaseModel):
    """Per-line figures of a composition."""
    product_id: str
    unit_id: str
    quantity: Decimal = Field(..., description="Requested quantity in unit_id packages")
    base_quantity: Decimal = Field(..., description="Requested quantity in base units")
    total_weight: float = Field(default=0.0, ge=0)
    total_volume: float = Field(default=0.0, ge=0, description="m³")
    efficiency: float = Field(default=0.0, ge=0, le=1, description="Placed share of the line's items")
    can_fit: bool = True
    issues: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


# ============================================================================
# Result
# ============================================================================

class CompositionResult(BaseModel):
    """Complete outcome of a composition calculation.

    A result with error violations is still complete: ``is_valid`` is False
    and ``violations`` says why.
    """
    is_valid: bool
    pallet_id: str
    efficiency: float = Field(..., ge=0, le=1)
    layout: Layout
    weight: ConstraintUsage
    volume: ConstraintUsage
    height: ConstraintUsage
    violations: List[Violation] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    products: List[ProductBreakdown] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def check_validity_matches_violations(self) -> "CompositionResult":
        """is_valid must be True exactly when there are no error violations."""
        has_errors = any(v.severity == Severity.ERROR for v in self.violations)
        if self.is_valid == has_errors:
            raise ValueError(
                f"is_valid={self.is_valid} contradicts {len(self.error_violations())} error violations"
            )
        return self

    def error_violations(self) -> List[Violation]:
        return [v for v in self.violations if v.severity == Severity.ERROR]

    def warning_violations(self) -> List[Violation]:
        return [v for v in self.violations if v.severity == Severity.WARNING]

    def violations_of(self, violation_type: ViolationType) -> List[Violation]:
        return [v for v in self.violations if v.type == violation_type]

    def product(self, product_id: str) -> Optional[ProductBreakdown]:
        """First breakdown line of a product (None when absent)."""
        for line in self.products:
            if line.product_id == product_id:
                return line
        return None

    def summary(self) -> str:
        """Multi-line human readable summary."""
        status = "VALID" if self.is_valid else f"INVALID ({len(self.error_violations())} errors)"
        lines = [
            f"Composition on pallet {self.pallet_id}: {status}",
            f"  Efficiency: {self.efficiency:.1%}",
            f"  Items: {self.layout.placed_items}/{self.layout.total_items} placed "
            f"in {self.layout.layers} layers",
            f"  Weight: {self.weight.total:.1f}/{self.weight.limit:.1f} kg ({self.weight.utilization:.1%})",
            f"  Volume: {self.volume.total:.3f}/{self.volume.limit:.3f} m³ ({self.volume.utilization:.1%})",
            f"  Height: {self.height.total:.1f}/{self.height.limit:.1f} cm ({self.height.utilization:.1%})",
        ]
        for violation in self.violations:
            lines.append(f"  [{violation.severity.value}] {violation.type.value}: {violation.message}")
        for warning in self.warnings:
            lines.append(f"  warning: {warning}")
        return "\n".join(lines)
