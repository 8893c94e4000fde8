"""Stock line data model.

Stock is recorded against arbitrary packaging units. Lines are never edited
in place: a change retires the old line and appends a new one.
"""

from dataclasses import dataclass, replace
from datetime import date as Date
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class StockLine:
    """Represents a physical holding of a product at a location.

    Attributes:
        id: Unique stock line identifier
        product_id: Product held
        location_id: UCP or position holding the stock
        quantity: Quantity in ``unit_id`` packages (base units when unit_id is None)
        unit_id: Packaging unit the quantity was recorded in
        lot: Optional lot code
        expiry_date: Optional expiry date
        is_active: False once the line has been superseded
    """
    id: str
    product_id: str
    location_id: str
    quantity: Decimal
    unit_id: Optional[str] = None
    lot: Optional[str] = None
    expiry_date: Optional[Date] = None
    is_active: bool = True

    def __post_init__(self):
        """Validate stock line."""
        if not isinstance(self.quantity, Decimal):
            object.__setattr__(self, "quantity", Decimal(str(self.quantity)))
        if self.quantity < 0:
            raise ValueError(f"Stock quantity cannot be negative: {self.quantity}")

    def retired(self) -> "StockLine":
        """Return a superseded copy of this line."""
        return replace(self, is_active=False)

    def references_unit(self, unit_id: str) -> bool:
        return self.is_active and self.unit_id == unit_id
