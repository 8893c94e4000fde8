"""Packaging hierarchy and pallet composition engine.

Models each product's packaging units as a tree with base-unit conversion
factors, consolidates stock recorded in mixed units, and decides whether a
bundle of products fits a pallet within its weight, volume and height limits.
"""

__version__ = "1.0.0"

from .config import EngineConfig, DEFAULT_CONFIG
from .exceptions import CompositionEngineError
from .packaging import PackagingHierarchy, ConversionEngine, ConversionRuleCache, StockConsolidator
from .composition import (
    CompositionEngine,
    CompositionLifecycleManager,
    CompositionResult,
    InMemoryInventory,
)

__all__ = [
    "EngineConfig",
    "DEFAULT_CONFIG",
    "CompositionEngineError",
    "PackagingHierarchy",
    "ConversionEngine",
    "ConversionRuleCache",
    "StockConsolidator",
    "CompositionEngine",
    "CompositionLifecycleManager",
    "CompositionResult",
    "InMemoryInventory",
]
