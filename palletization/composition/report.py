"""Composition report generation.

Summarizes a stored composition result as utilization metrics, prioritized
recommendations and a per-product table for the reporting layer.
"""

from datetime import datetime
from enum import Enum
from typing import List

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from ..config import DEFAULT_CONFIG, EngineConfig
from ..exceptions import InvalidTransition
from .result_schema import CompositionResult, ProductBreakdown, Severity


class RecommendationType(str, Enum):
    OPTIMIZATION = "optimization"
    ALTERNATIVE = "alternative"
    WARNING = "warning"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecommendationItem(BaseModel):
    """A typed recommendation with a priority."""
    type: RecommendationType
    priority: Priority
    message: str
    action_required: bool = False

    model_config = ConfigDict(extra="forbid")


class ReportMetrics(BaseModel):
    """Utilization figures of a composition (fractions, 1.0 = at the limit)."""
    space_utilization: float = Field(..., ge=0)
    weight_utilization: float = Field(..., ge=0)
    height_utilization: float = Field(..., ge=0)
    overall_efficiency: float = Field(..., ge=0, le=1)

    model_config = ConfigDict(extra="forbid")


class CompositionReport(BaseModel):
    """Report over one stored composition result."""
    composition_id: str
    composition_name: str
    status: str
    pallet_id: str
    generated_at: datetime = Field(default_factory=datetime.now)
    is_valid: bool
    metrics: ReportMetrics
    recommendations: List[RecommendationItem] = Field(default_factory=list)
    products: List[ProductBreakdown] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    def product_frame(self) -> pd.DataFrame:
        """Per-product table of the composition."""
        columns = [
            "product_id", "unit_id", "quantity", "base_quantity",
            "total_weight", "total_volume", "efficiency", "can_fit", "issues",
        ]
        rows = []
        for line in self.products:
            row = line.model_dump(include=set(columns))
            row["issues"] = "; ".join(line.issues)
            rows.append(row)
        return pd.DataFrame(rows, columns=columns)

    def critical(self) -> List[RecommendationItem]:
        return [r for r in self.recommendations if r.priority == Priority.CRITICAL]


def _recommendations(result: CompositionResult, config: EngineConfig) -> List[RecommendationItem]:
    items = []
    for violation in result.violations:
        if violation.severity == Severity.ERROR:
            items.append(RecommendationItem(
                type=RecommendationType.WARNING,
                priority=Priority.CRITICAL,
                message=violation.message,
                action_required=True,
            ))
        else:
            items.append(RecommendationItem(
                type=RecommendationType.WARNING,
                priority=Priority.HIGH,
                message=violation.message,
            ))

    for message in result.recommendations:
        items.append(RecommendationItem(
            type=RecommendationType.OPTIMIZATION,
            priority=Priority.MEDIUM,
            message=message,
        ))

    if result.is_valid and result.efficiency < config.recommendation_efficiency:
        items.append(RecommendationItem(
            type=RecommendationType.ALTERNATIVE,
            priority=Priority.LOW,
            message="A smaller pallet could carry this load with less empty space",
        ))
    return items


def build_report(composition, config: EngineConfig = DEFAULT_CONFIG) -> CompositionReport:
    """
    Build a report for a saved composition.

    Args:
        composition: Composition with a stored result
        config: Engine configuration (recommendation thresholds)

    Returns:
        CompositionReport

    Raises:
        InvalidTransition: If the composition has not been validated yet
    """
    result = composition.result
    if result is None:
        raise InvalidTransition(f"Composition {composition.id} has no result; validate it first")

    metrics = ReportMetrics(
        space_utilization=result.volume.utilization,
        weight_utilization=result.weight.utilization,
        height_utilization=result.height.utilization,
        overall_efficiency=result.efficiency,
    )
    return CompositionReport(
        composition_id=composition.id,
        composition_name=composition.name,
        status=composition.status.value,
        pallet_id=result.pallet_id,
        is_valid=result.is_valid,
        metrics=metrics,
        recommendations=_recommendations(result, config),
        products=list(result.products),
    )
