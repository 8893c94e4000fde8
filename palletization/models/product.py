"""Product data model with physical characteristics."""

from typing import Optional
from pydantic import BaseModel, Field

from ..constants import CM3_PER_M3


class Dimensions(BaseModel):
    """
    Outer dimensions of a physical item in centimetres.

    ``width`` runs along the pallet's x axis and ``length`` along its y axis
    when the item is placed without rotation.
    """
    width: float = Field(..., description="Width in cm", gt=0)
    length: float = Field(..., description="Length in cm", gt=0)
    height: float = Field(..., description="Height in cm", gt=0)

    @property
    def footprint_area(self) -> float:
        """Area covered on the pallet deck (cm²)."""
        return self.width * self.length

    @property
    def volume_cm3(self) -> float:
        return self.width * self.length * self.height

    @property
    def volume_m3(self) -> float:
        return self.volume_cm3 / CM3_PER_M3

    def rotated(self) -> "Dimensions":
        """Same item turned 90 degrees on the deck."""
        return Dimensions(width=self.length, length=self.width, height=self.height)

    def fits_within(self, width: float, length: float) -> bool:
        """Check if the footprint fits inside a width x length rectangle."""
        return self.width <= width and self.length <= length

    def __str__(self) -> str:
        return f"{self.width:g}x{self.length:g}x{self.height:g}cm"


class Product(BaseModel):
    """
    Represents a stocked product.

    Weight and dimensions describe one base unit (the finest packaging
    granularity). Coarser packaging units may carry their own measurements.

    Attributes:
        id: Unique product identifier
        name: Product name
        sku: Stock keeping unit code
        weight: Weight of one base unit in kg
        dimensions: Dimensions of one base unit (None when unknown)
        category: Optional product category
        quantity_precision: Decimal places kept when converting out of base units
        is_active: Whether the product can be used in new compositions
    """
    id: str = Field(..., description="Unique product identifier")
    name: str = Field(..., description="Product name")
    sku: str = Field(default="", description="SKU code")
    weight: float = Field(default=0.0, description="Weight per base unit (kg)", ge=0)
    dimensions: Optional[Dimensions] = Field(
        None,
        description="Dimensions of one base unit"
    )
    category: Optional[str] = None
    quantity_precision: Optional[int] = Field(
        None,
        description="Decimal places for converted quantities (engine default when None)",
        ge=0,
        le=12
    )
    is_active: bool = True

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"
