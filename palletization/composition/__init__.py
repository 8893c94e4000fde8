"""Pallet composition: packing, validation, lifecycle and reporting."""

from .result_schema import (
    CompositionResult,
    ConstraintUsage,
    Layout,
    PlacedItem,
    Position,
    ProductBreakdown,
    Severity,
    Violation,
    ViolationType,
)
from .packer import CompositionPacker, PackedLayout, PackedLine, PackingItem, LayerStats
from .validator import CompositionValidator, ConstraintCheck, EffectiveConstraints
from .pallet_selector import select_pallet, pallet_accepts
from .engine import CompositionEngine
from .inventory import InventoryGateway, InMemoryInventory, StockMovement
from .report import CompositionReport, RecommendationItem, ReportMetrics, build_report
from .lifecycle import Composition, CompositionLifecycleManager, CompositionPage

__all__ = [
    # Result schema
    "CompositionResult",
    "ConstraintUsage",
    "Layout",
    "PlacedItem",
    "Position",
    "ProductBreakdown",
    "Severity",
    "Violation",
    "ViolationType",
    # Calculation
    "CompositionPacker",
    "PackedLayout",
    "PackedLine",
    "PackingItem",
    "LayerStats",
    "CompositionValidator",
    "ConstraintCheck",
    "EffectiveConstraints",
    "select_pallet",
    "pallet_accepts",
    "CompositionEngine",
    # Lifecycle
    "InventoryGateway",
    "InMemoryInventory",
    "StockMovement",
    "Composition",
    "CompositionLifecycleManager",
    "CompositionPage",
    # Reporting
    "CompositionReport",
    "RecommendationItem",
    "ReportMetrics",
    "build_report",
]
