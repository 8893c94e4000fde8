"""
Composition lifecycle management.

Saved compositions move through

    draft --validate--> validated --approve--> approved --execute--> executed
    executed --disassemble--> draft

Every edit or transition names the version it last observed. A stale
version, or a composition already being changed by someone else, fails
immediately with ``ConcurrentModification``. Changes are made on a working
copy and published only when the whole transition succeeds.
"""

import copy
import itertools
import logging
import math
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Set

from ..constants import DEFAULT_PAGE_SIZE
from ..exceptions import (
    CompositionNotFound,
    ConcurrentModification,
    InvalidTransition,
    StockUnavailable,
)
from ..models.composition import CompositionProductLine, CompositionRequest, CompositionStatus
from ..packaging.consolidation import StockConsolidator
from .engine import CompositionEngine
from .inventory import InventoryGateway, StockMovement
from .report import CompositionReport, build_report
from .result_schema import CompositionResult

logger = logging.getLogger(__name__)


@dataclass
class Composition:
    """
    A saved, named composition.

    Attributes:
        id: Composition identifier
        name: Display name
        request: Originating request
        status: Lifecycle state
        version: Optimistic concurrency counter (starts at 1)
        description: Optional description
        pallet_id: Requested or selected pallet
        result: Last computed result
        lines: Denormalized product lines of the last result
        created_by: Creating user
        created_at: Creation timestamp
        updated_at: Last change timestamp
        approved_by: Approving user
        approved_at: Approval timestamp
        target_ucp_id: UCP assembled by the last execution
        executed_at: Last execution timestamp
        movements: Stock consumed by the last execution
        is_active: False once deleted
    """
    id: str
    name: str
    request: CompositionRequest
    status: CompositionStatus = CompositionStatus.DRAFT
    version: int = 1
    description: Optional[str] = None
    pallet_id: Optional[str] = None
    result: Optional[CompositionResult] = None
    lines: List[CompositionProductLine] = field(default_factory=list)
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    target_ucp_id: Optional[str] = None
    executed_at: Optional[datetime] = None
    movements: List[StockMovement] = field(default_factory=list)
    is_active: bool = True

    def __str__(self) -> str:
        return f"Composition {self.id} '{self.name}' ({self.status.value}, v{self.version})"


@dataclass
class CompositionPage:
    """One page of a composition listing."""
    items: List[Composition]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


class CompositionLifecycleManager:
    """
    Stores compositions and governs their state transitions.

    Only ``execute`` and ``disassemble`` touch the inventory gateway; both
    apply their side effects all-or-nothing.

    Example:
        manager = CompositionLifecycleManager(engine, inventory)
        draft = manager.create("Mixed load", request)
        validated = manager.validate(draft.id, draft.version)
        approved = manager.approve(validated.id, validated.version, approved_by="ana")
        executed = manager.execute(approved.id, approved.version, target_ucp_id="UCP-7")
    """

    def __init__(self, engine: CompositionEngine, inventory: InventoryGateway):
        self.engine = engine
        self.inventory = inventory
        self._compositions: Dict[str, Composition] = {}
        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()
        self._id_sequence = itertools.count(1)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, composition_id: str) -> Composition:
        """Snapshot of an active composition."""
        with self._lock:
            return copy.deepcopy(self._require(composition_id))

    def list_compositions(
        self,
        status: Optional[CompositionStatus] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> CompositionPage:
        """
        Active compositions, newest first.

        Args:
            status: Only compositions in this state
            page: 1-based page number
            limit: Page size
        """
        if page < 1 or limit < 1:
            raise ValueError(f"page and limit must be positive, got page={page}, limit={limit}")

        with self._lock:
            matching = [
                c for c in self._compositions.values()
                if c.is_active and (status is None or c.status == status)
            ]
            matching.sort(key=lambda c: (c.created_at, c.id), reverse=True)
            start = (page - 1) * limit
            items = [copy.deepcopy(c) for c in matching[start:start + limit]]
        return CompositionPage(items=items, total=len(matching), page=page, limit=limit)

    def active_product_lines(self) -> List[CompositionProductLine]:
        """Product lines of every active composition (packaging units in use)."""
        with self._lock:
            return [
                copy.copy(line)
                for composition in self._compositions.values() if composition.is_active
                for line in composition.lines if line.is_active
            ]

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        request: CompositionRequest,
        description: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Composition:
        """Save a new draft composition at version 1."""
        with self._lock:
            composition_id = f"CMP-{next(self._id_sequence):05d}"
            composition = Composition(
                id=composition_id,
                name=name,
                request=request,
                description=description,
                pallet_id=request.pallet_id,
                created_by=created_by,
            )
            self._compositions[composition_id] = composition
            snapshot = copy.deepcopy(composition)
        logger.info(f"Created {snapshot}")
        return snapshot

    def update_request(self, composition_id: str, expected_version: int, request: CompositionRequest) -> Composition:
        """
        Replace the request of a draft or validated composition.

        A validated composition falls back to draft; the stored result is cleared.
        """
        with self._lease(composition_id, expected_version) as composition:
            self._require_status(composition, "update", CompositionStatus.DRAFT, CompositionStatus.VALIDATED)
            composition.request = request
            composition.pallet_id = request.pallet_id
            composition.result = None
            composition.lines = []
            composition.status = CompositionStatus.DRAFT
        return self.get(composition_id)

    def delete(self, composition_id: str, expected_version: int) -> Composition:
        """Soft-delete a composition that is not executed."""
        with self._lease(composition_id, expected_version) as composition:
            if composition.status == CompositionStatus.EXECUTED:
                raise InvalidTransition(
                    f"Composition {composition_id} is executed; disassemble it before deleting"
                )
            composition.is_active = False
            for line in composition.lines:
                line.is_active = False

        with self._lock:
            deleted = copy.deepcopy(self._compositions[composition_id])
        logger.info(f"Deleted composition {composition_id}")
        return deleted

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def validate(self, composition_id: str, expected_version: int) -> Composition:
        """
        Recalculate against current stock and pallet occupancy.

        The composition becomes ``validated`` when the result is valid and
        stays (or falls back to) ``draft`` otherwise. The result is stored
        either way.
        """
        with self._lease(composition_id, expected_version) as composition:
            self._require_status(composition, "validate", CompositionStatus.DRAFT, CompositionStatus.VALIDATED)
            pallets = {**self.engine.pallets, **{pallet.id: pallet for pallet in self.inventory.pallets()}}
            result = self.engine.calculate(
                composition.request,
                stock_lines=self.inventory.stock_lines(),
                pallets=pallets,
            )
            composition.result = result
            composition.pallet_id = result.pallet_id
            composition.lines = self._product_lines(result)
            composition.status = CompositionStatus.VALIDATED if result.is_valid else CompositionStatus.DRAFT

        if not result.is_valid:
            logger.warning(
                f"Composition {composition_id} failed validation with "
                f"{len(result.error_violations())} error violations"
            )
        return self.get(composition_id)

    def approve(self, composition_id: str, expected_version: int, approved_by: Optional[str] = None) -> Composition:
        with self._lease(composition_id, expected_version) as composition:
            self._require_status(composition, "approve", CompositionStatus.VALIDATED)
            composition.status = CompositionStatus.APPROVED
            composition.approved_by = approved_by
            composition.approved_at = datetime.now()
        logger.info(f"Composition {composition_id} approved by {approved_by}")
        return self.get(composition_id)

    def execute(self, composition_id: str, expected_version: int, target_ucp_id: str) -> Composition:
        """
        Assemble an approved composition.

        Deducts stock and allocates the pallet to ``target_ucp_id``. Either
        both happen or neither does.

        Raises:
            InvalidTransition: Composition is not approved
            StockUnavailable: Current stock no longer covers the composition
            PalletUnavailable: The pallet is occupied
            ConcurrentModification: Stale version or a transition in flight
        """
        with self._lease(composition_id, expected_version) as composition:
            self._require_status(composition, "execute", CompositionStatus.APPROVED)
            required = self.engine.required_base_units(composition.request)

            consolidator = StockConsolidator(
                self.inventory.stock_lines(), self.engine.hierarchy, self.engine.conversion
            )
            shortfalls = [
                check for check in
                (consolidator.check_availability(product_id, quantity) for product_id, quantity in required.items())
                if not check.is_available
            ]
            if shortfalls:
                raise StockUnavailable(
                    f"Stock no longer covers composition {composition_id}",
                    {check.product_id: f"short {check.shortfall} base units" for check in shortfalls}
                )

            movements: List[StockMovement] = []
            try:
                for product_id, quantity in required.items():
                    movements.extend(self.inventory.consume_stock(product_id, quantity, reference=composition_id))
                self.inventory.allocate_pallet(composition.pallet_id, target_ucp_id, reference=composition_id)
            except Exception:
                if movements:
                    self.inventory.restore_stock(movements)
                logger.warning(f"Execution of composition {composition_id} rolled back")
                raise

            composition.movements = movements
            composition.target_ucp_id = target_ucp_id
            composition.executed_at = datetime.now()
            composition.status = CompositionStatus.EXECUTED

        logger.info(f"Composition {composition_id} executed onto UCP {target_ucp_id}")
        return self.get(composition_id)

    def disassemble(
        self,
        composition_id: str,
        expected_version: int,
        target_location_id: Optional[str] = None,
    ) -> Composition:
        """
        Undo an execution: free the pallet and return the consumed stock.

        Args:
            composition_id: Executed composition
            expected_version: Version last observed by the caller
            target_location_id: Location receiving the stock (origin locations when None)
        """
        with self._lease(composition_id, expected_version) as composition:
            self._require_status(composition, "disassemble", CompositionStatus.EXECUTED)
            self.inventory.release_pallet(composition.pallet_id, reference=composition_id)
            try:
                self.inventory.return_stock(composition.movements, target_location_id)
            except Exception:
                self.inventory.allocate_pallet(
                    composition.pallet_id, composition.target_ucp_id, reference=composition_id
                )
                logger.warning(f"Disassembly of composition {composition_id} rolled back")
                raise

            composition.movements = []
            composition.target_ucp_id = None
            composition.approved_by = None
            composition.approved_at = None
            composition.status = CompositionStatus.DRAFT

        logger.info(f"Composition {composition_id} disassembled")
        return self.get(composition_id)

    def report(self, composition_id: str) -> CompositionReport:
        """Build a report for a composition with a stored result."""
        return build_report(self.get(composition_id), self.engine.config)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, composition_id: str) -> Composition:
        composition = self._compositions.get(composition_id)
        if composition is None or not composition.is_active:
            raise CompositionNotFound(f"Composition not found: {composition_id}")
        return composition

    @contextmanager
    def _lease(self, composition_id: str, expected_version: int) -> Iterator[Composition]:
        """
        Hold the composition exclusively for one edit or transition.

        Yields a working copy; it replaces the stored composition with the
        version bumped only if the block completes.
        """
        with self._lock:
            current = self._require(composition_id)
            if composition_id in self._in_flight:
                raise ConcurrentModification(
                    f"Composition {composition_id} is being modified by another actor"
                )
            if current.version != expected_version:
                raise ConcurrentModification(
                    f"Composition {composition_id} was modified by another actor",
                    {"expected_version": expected_version, "current_version": current.version}
                )
            self._in_flight.add(composition_id)
            working = copy.deepcopy(current)

        try:
            yield working
            with self._lock:
                working.version = current.version + 1
                working.updated_at = datetime.now()
                self._compositions[composition_id] = working
        finally:
            with self._lock:
                self._in_flight.discard(composition_id)

    @staticmethod
    def _require_status(composition: Composition, action: str, *allowed: CompositionStatus) -> None:
        if composition.status not in allowed:
            raise InvalidTransition(
                f"Cannot {action} composition {composition.id} in status {composition.status.value}",
                {"allowed": ", ".join(status.value for status in allowed)}
            )

    @staticmethod
    def _product_lines(result: CompositionResult) -> List[CompositionProductLine]:
        first_layers: Dict[str, int] = {}
        for placed in result.layout.arrangement:
            if placed.product_id not in first_layers or placed.layer < first_layers[placed.product_id]:
                first_layers[placed.product_id] = placed.layer

        return [
            CompositionProductLine(
                product_id=breakdown.product_id,
                unit_id=breakdown.unit_id,
                quantity=breakdown.quantity,
                base_quantity=breakdown.base_quantity,
                sort_order=sort_order,
                layer=first_layers.get(breakdown.product_id),
                weight=breakdown.total_weight,
                volume=breakdown.total_volume,
            )
            for sort_order, breakdown in enumerate(result.products)
        ]
