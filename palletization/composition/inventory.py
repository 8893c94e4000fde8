"""
Inventory gateway used by composition execution.

Stock deduction and pallet occupancy belong to the surrounding warehouse
application. ``InventoryGateway`` is the seam the lifecycle manager calls;
``InMemoryInventory`` implements it for tests and embedding.
"""

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import date as Date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from ..exceptions import PalletNotFound, PalletUnavailable, StockUnavailable
from ..models.pallet import Pallet, PalletStatus
from ..models.stock import StockLine
from ..packaging.consolidation import StockConsolidator
from ..packaging.hierarchy import PackagingHierarchy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockMovement:
    """
    Base units taken from one stock line by an execution.

    Attributes:
        product_id: Product moved
        location_id: Location the stock was taken from
        base_quantity: Base units taken
        source_line_id: Stock line the units came from
        reference: Composition that consumed the stock
        lot: Lot of the source line
        expiry_date: Expiry of the source line
        leftover_line_id: Line holding what was left of the source line
    """
    product_id: str
    location_id: str
    base_quantity: Decimal
    source_line_id: Optional[str] = None
    reference: Optional[str] = None
    lot: Optional[str] = None
    expiry_date: Optional[Date] = None
    leftover_line_id: Optional[str] = None


class InventoryGateway(ABC):
    """Stock and pallet occupancy operations owned by the warehouse application."""

    @abstractmethod
    def stock_lines(self) -> List[StockLine]:
        """Current active stock lines."""

    @abstractmethod
    def consume_stock(self, product_id: str, base_quantity: Decimal, reference: str) -> List[StockMovement]:
        """
        Deduct base units of a product.

        Raises:
            StockUnavailable: If stock no longer covers the quantity
        """

    @abstractmethod
    def return_stock(self, movements: Iterable[StockMovement], target_location_id: Optional[str] = None) -> None:
        """Put consumed stock back (at its origin, or at ``target_location_id``)."""

    @abstractmethod
    def restore_stock(self, movements: Iterable[StockMovement]) -> None:
        """Undo a consumption so the stock lines read as they did before it."""

    @abstractmethod
    def pallets(self) -> List[Pallet]:
        """Current pallet records with their occupancy status."""

    @abstractmethod
    def allocate_pallet(self, pallet_id: str, ucp_id: str, reference: str) -> None:
        """
        Mark a pallet as carrying a UCP.

        Raises:
            PalletNotFound: Unknown pallet
            PalletUnavailable: Pallet is not available
        """

    @abstractmethod
    def release_pallet(self, pallet_id: str, reference: str) -> None:
        """Free a pallet allocated to ``reference``."""


class InMemoryInventory(InventoryGateway):
    """
    Thread-safe in-memory inventory.

    Consumed lines are retired and, when partially used, replaced by a new
    base-unit line with the leftover quantity. Lines are picked earliest
    expiry first, then by location and id.
    """

    def __init__(
        self,
        hierarchy: PackagingHierarchy,
        stock_lines: Iterable[StockLine] = (),
        pallets: Iterable[Pallet] = (),
    ):
        self.hierarchy = hierarchy
        self._lines: List[StockLine] = list(stock_lines)
        self._pallets: Dict[str, Pallet] = {pallet.id: pallet for pallet in pallets}
        self._allocations: Dict[str, Tuple[str, str]] = {}
        self._lock = threading.Lock()
        self._line_sequence = itertools.count(1)

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    def stock_lines(self) -> List[StockLine]:
        with self._lock:
            return [line for line in self._lines if line.is_active]

    def all_lines(self) -> List[StockLine]:
        """Every line including retired ones, in append order."""
        with self._lock:
            return list(self._lines)

    def add_stock(self, line: StockLine) -> None:
        with self._lock:
            self._lines.append(line)

    def consume_stock(self, product_id: str, base_quantity: Decimal, reference: str) -> List[StockMovement]:
        required = Decimal(base_quantity)
        with self._lock:
            active = [line for line in self._lines if line.is_active and line.product_id == product_id]
            consolidator = StockConsolidator(active, self.hierarchy)
            available = consolidator.consolidate(product_id).total_base_units
            if available < required:
                raise StockUnavailable(
                    f"Insufficient stock for product {product_id}",
                    {"required": required, "available": available, "reference": reference}
                )

            movements = []
            remaining = required
            for line in sorted(active, key=self._picking_order):
                if remaining <= 0:
                    break
                line_quantity = consolidator.base_quantity(line)
                if line_quantity <= 0:
                    continue
                taken = min(line_quantity, remaining)
                self._retire(line)
                leftover_id = None
                if taken < line_quantity:
                    leftover_id = self._next_line_id()
                    self._lines.append(StockLine(
                        id=leftover_id,
                        product_id=product_id,
                        location_id=line.location_id,
                        quantity=line_quantity - taken,
                        lot=line.lot,
                        expiry_date=line.expiry_date,
                    ))
                movements.append(StockMovement(
                    product_id=product_id,
                    location_id=line.location_id,
                    base_quantity=taken,
                    source_line_id=line.id,
                    reference=reference,
                    lot=line.lot,
                    expiry_date=line.expiry_date,
                    leftover_line_id=leftover_id,
                ))
                remaining -= taken

        logger.info(f"Consumed {required} base units of {product_id} for {reference} from {len(movements)} lines")
        return movements

    def return_stock(self, movements: Iterable[StockMovement], target_location_id: Optional[str] = None) -> None:
        with self._lock:
            count = 0
            for movement in movements:
                self._lines.append(StockLine(
                    id=self._next_line_id(),
                    product_id=movement.product_id,
                    location_id=target_location_id or movement.location_id,
                    quantity=movement.base_quantity,
                    lot=movement.lot,
                    expiry_date=movement.expiry_date,
                ))
                count += 1
        logger.info(f"Returned {count} stock movements")

    def restore_stock(self, movements: Iterable[StockMovement]) -> None:
        """
        Undo a consumption: reactivate the source lines and drop the leftovers.

        A movement whose leftover line was consumed in the meantime is put
        back as a new line at its origin instead.
        """
        with self._lock:
            restored = 0
            for movement in reversed(list(movements)):
                leftover_index = self._active_index(movement.leftover_line_id)
                source_index = self._retired_index(movement.source_line_id)
                if source_index is None or (movement.leftover_line_id and leftover_index is None):
                    self._lines.append(StockLine(
                        id=self._next_line_id(),
                        product_id=movement.product_id,
                        location_id=movement.location_id,
                        quantity=movement.base_quantity,
                        lot=movement.lot,
                        expiry_date=movement.expiry_date,
                    ))
                    continue
                self._lines[source_index] = replace(self._lines[source_index], is_active=True)
                if leftover_index is not None:
                    del self._lines[leftover_index]
                restored += 1
        logger.info(f"Restored {restored} consumed stock lines")

    # ------------------------------------------------------------------
    # Pallets
    # ------------------------------------------------------------------

    def pallet(self, pallet_id: str) -> Pallet:
        with self._lock:
            return self._get_pallet(pallet_id)

    def pallets(self) -> List[Pallet]:
        with self._lock:
            return list(self._pallets.values())

    def allocation(self, pallet_id: str) -> Optional[Tuple[str, str]]:
        """(ucp_id, reference) a pallet is allocated to, if any."""
        with self._lock:
            return self._allocations.get(pallet_id)

    def allocate_pallet(self, pallet_id: str, ucp_id: str, reference: str) -> None:
        with self._lock:
            pallet = self._get_pallet(pallet_id)
            if not pallet.is_available():
                raise PalletUnavailable(
                    f"Pallet {pallet_id} is {pallet.status.value}",
                    {"reference": reference, "allocated_to": self._allocations.get(pallet_id)}
                )
            self._pallets[pallet_id] = pallet.model_copy(update={"status": PalletStatus.IN_USE})
            self._allocations[pallet_id] = (ucp_id, reference)
        logger.info(f"Allocated pallet {pallet_id} to UCP {ucp_id} ({reference})")

    def release_pallet(self, pallet_id: str, reference: str) -> None:
        with self._lock:
            pallet = self._get_pallet(pallet_id)
            allocation = self._allocations.get(pallet_id)
            if allocation is None or allocation[1] != reference:
                raise PalletUnavailable(
                    f"Pallet {pallet_id} is not allocated to {reference}",
                    {"allocated_to": allocation}
                )
            del self._allocations[pallet_id]
            self._pallets[pallet_id] = pallet.model_copy(update={"status": PalletStatus.AVAILABLE})
        logger.info(f"Released pallet {pallet_id} ({reference})")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_pallet(self, pallet_id: str) -> Pallet:
        pallet = self._pallets.get(pallet_id)
        if pallet is None:
            raise PalletNotFound(f"Pallet not found: {pallet_id}")
        return pallet

    def _active_index(self, line_id: Optional[str]) -> Optional[int]:
        for index, line in enumerate(self._lines):
            if line.id == line_id and line.is_active:
                return index
        return None

    def _retired_index(self, line_id: Optional[str]) -> Optional[int]:
        for index, line in enumerate(self._lines):
            if line.id == line_id and not line.is_active:
                return index
        return None

    def _retire(self, line: StockLine) -> None:
        index = self._lines.index(line)
        self._lines[index] = line.retired()

    def _next_line_id(self) -> str:
        existing = {line.id for line in self._lines}
        while True:
            candidate = f"SL-{next(self._line_sequence):06d}"
            if candidate not in existing:
                return candidate

    @staticmethod
    def _picking_order(line: StockLine):
        return (line.expiry_date is None, line.expiry_date or Date.min, line.location_id, line.id)
