"""Pallet data model."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from ..constants import CM3_PER_M3


class PalletStatus(str, Enum):
    """Physical status of a pallet carrier."""
    AVAILABLE = "available"
    IN_USE = "in_use"
    DEFECTIVE = "defective"
    RECOVERY = "recovery"
    DISCARDED = "discarded"


class Pallet(BaseModel):
    """
    Physical pallet carrier.

    Attributes:
        id: Unique pallet identifier
        code: Printed pallet code
        pallet_type: Pallet standard (PBR, Europeu, Chep, ...)
        width: Deck width in cm (x axis)
        length: Deck length in cm (y axis)
        height: Height of the pallet itself in cm
        max_weight: Maximum load weight in kg
        max_stack_height: Maximum load height above the deck in cm
            (engine default when None)
        status: Current pallet status
    """
    id: str
    code: str = ""
    pallet_type: str = "PBR"
    width: float = Field(..., gt=0)
    length: float = Field(..., gt=0)
    height: float = Field(default=15.0, ge=0)
    max_weight: float = Field(..., gt=0)
    max_stack_height: Optional[float] = Field(None, gt=0)
    status: PalletStatus = PalletStatus.AVAILABLE

    @property
    def footprint_area(self) -> float:
        return self.width * self.length

    def stack_height_limit(self, default: float) -> float:
        """Load height limit, falling back to ``default`` when undeclared."""
        return self.max_stack_height if self.max_stack_height is not None else default

    def usable_volume_m3(self, default_stack_height: float) -> float:
        """Volume of the load envelope above the deck (m³)."""
        return self.footprint_area * self.stack_height_limit(default_stack_height) / CM3_PER_M3

    def is_available(self) -> bool:
        return self.status == PalletStatus.AVAILABLE

    def __str__(self) -> str:
        return (
            f"Pallet {self.code or self.id} ({self.pallet_type}) "
            f"{self.width:g}x{self.length:g}cm, max {self.max_weight:g}kg"
        )
