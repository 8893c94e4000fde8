"""Composition request models.

A composition request asks whether a bundle of products can be arranged on a
pallet. Quantities are expressed in any packaging unit of each product.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class CompositionStatus(str, Enum):
    """Lifecycle state of a saved composition."""
    DRAFT = "draft"
    VALIDATED = "validated"
    APPROVED = "approved"
    EXECUTED = "executed"


class ConstraintOverrides(BaseModel):
    """Optional tighter limits for one request.

    Values are checked against the pallet's own limits by the validator.
    """
    max_weight: Optional[float] = Field(None, description="kg")
    max_height: Optional[float] = Field(None, description="cm above the deck")
    max_volume: Optional[float] = Field(None, description="m³")

    model_config = ConfigDict(frozen=True)


class CompositionLine(BaseModel):
    """One product/quantity entry of a composition request."""
    product_id: str
    quantity: Decimal = Field(..., gt=0)
    packaging_unit_id: Optional[str] = Field(
        None,
        description="Unit the quantity is expressed in (base unit when None)"
    )

    model_config = ConfigDict(frozen=True)


class CompositionRequest(BaseModel):
    """
    Bundle of products to compose on a pallet.

    Attributes:
        lines: Requested products and quantities
        pallet_id: Target pallet (selected automatically when None)
        constraints: Optional overrides, never looser than the pallet's limits
    """
    lines: List[CompositionLine] = Field(..., min_length=1)
    pallet_id: Optional[str] = None
    constraints: Optional[ConstraintOverrides] = None

    model_config = ConfigDict(frozen=True)

    def product_ids(self) -> List[str]:
        """Distinct product ids in request order."""
        seen = []
        for line in self.lines:
            if line.product_id not in seen:
                seen.append(line.product_id)
        return seen


@dataclass
class CompositionProductLine:
    """Denormalized product row owned by a saved composition.

    Attributes:
        product_id: Product
        unit_id: Packaging unit the quantity is expressed in
        quantity: Quantity in ``unit_id`` packages
        base_quantity: Quantity in base units
        layer: First pallet layer holding this product (1-based, None before packing)
        sort_order: Position of the line in the request
        weight: Total weight of the line (kg)
        volume: Total volume of the line (m³)
        is_active: False once the owning composition is deleted
    """
    product_id: str
    unit_id: str
    quantity: Decimal
    base_quantity: Decimal
    sort_order: int
    layer: Optional[int] = None
    weight: float = 0.0
    volume: float = 0.0
    is_active: bool = True

    def references_unit(self, unit_id: str) -> bool:
        return self.is_active and self.unit_id == unit_id
