"""Packaging hierarchy, unit conversion and stock consolidation."""

from .hierarchy import PackagingHierarchy, PackagingNode
from .conversion import ConversionEngine, ConversionRuleCache, ConvertedQuantity
from .consolidation import (
    StockConsolidator,
    ConsolidatedStock,
    PackagingStock,
    AvailabilityCheck,
    PickingPlan,
    PickingStep,
)

__all__ = [
    "PackagingHierarchy",
    "PackagingNode",
    "ConversionEngine",
    "ConversionRuleCache",
    "ConvertedQuantity",
    "StockConsolidator",
    "ConsolidatedStock",
    "PackagingStock",
    "AvailabilityCheck",
    "PickingPlan",
    "PickingStep",
]
