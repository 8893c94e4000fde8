"""Data models for the packaging and composition engine."""

from .product import Product, Dimensions
from .packaging import PackagingUnit, PackagingUnitSpec, ConversionRule
from .pallet import Pallet, PalletStatus
from .stock import StockLine
from .composition import (
    CompositionStatus,
    ConstraintOverrides,
    CompositionLine,
    CompositionRequest,
    CompositionProductLine,
)

__all__ = [
    # Products and packaging
    "Product",
    "Dimensions",
    "PackagingUnit",
    "PackagingUnitSpec",
    "ConversionRule",
    # Carriers and stock
    "Pallet",
    "PalletStatus",
    "StockLine",
    # Compositions
    "CompositionStatus",
    "ConstraintOverrides",
    "CompositionLine",
    "CompositionRequest",
    "CompositionProductLine",
]
