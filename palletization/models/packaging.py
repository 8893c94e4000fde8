"""Packaging unit data models.

A product's packaging units form a tree: the base unit (a single item) at
level 1 and coarser packagings (box, master carton, pallet-load) above it,
each declaring how many base units one package contains.
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .product import Dimensions


class PackagingUnitSpec(BaseModel):
    """
    Input record for adding a packaging unit to a product.

    Hierarchy invariants (positive quantity, single base unit, acyclic
    parents) are checked by ``PackagingHierarchy.add_unit`` so they surface as
    ``InvalidHierarchy`` rather than as model validation errors.
    """
    name: str = Field(..., min_length=1)
    base_unit_quantity: Decimal = Field(..., description="Base units in one package")
    is_base_unit: bool = False
    id: Optional[str] = Field(None, description="Explicit id (generated when None)")
    parent_unit_id: Optional[str] = Field(None, description="Coarser unit containing this one")
    level: Optional[int] = Field(None, ge=1, description="Depth from the base unit (derived when None)")
    barcode: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    weight: Optional[float] = Field(None, ge=0, description="Weight of one package (kg)")


class PackagingUnit(BaseModel):
    """
    A packaging unit owned by exactly one product.

    Attributes:
        id: Unique unit identifier
        product_id: Owning product
        name: Human name (e.g., "Caixa 12 unidades")
        base_unit_quantity: Base units contained in one package (> 0)
        is_base_unit: True for the product's finest unit
        parent_unit_id: Coarser unit of the same product (relation, not ownership)
        level: Depth from the base unit (base unit = 1)
        barcode: Globally unique barcode among active units
        dimensions: Outer dimensions of one package
        weight: Weight of one package in kg, packaging included
        is_active: False once removed (soft delete)
    """
    id: str
    product_id: str
    name: str
    base_unit_quantity: Decimal = Field(..., gt=0)
    is_base_unit: bool = False
    parent_unit_id: Optional[str] = None
    level: int = Field(default=1, ge=1)
    barcode: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    weight: Optional[float] = Field(None, ge=0)
    is_active: bool = True

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        kind = "base" if self.is_base_unit else f"level {self.level}"
        return f"{self.name} ({self.id}, {self.base_unit_quantity} base units, {kind})"


class ConversionRule(BaseModel):
    """Cached conversion factor for an ordered pair of units."""
    from_unit_id: str
    to_unit_id: str
    factor: Decimal = Field(..., gt=0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_distinct_units(self) -> "ConversionRule":
        """A unit never converts to itself."""
        if self.from_unit_id == self.to_unit_id:
            raise ValueError(f"Conversion rule from unit {self.from_unit_id} to itself")
        return self
