"""
Session Ledger -- the aggregate behind one open-ended venue session.

Responsibility:
    Tracks a session's individuals, consumed items and elapsed time, and
    exposes the mutations that the front desk performs while the session
    is running: add individual, remove individuals, add items, reduce an
    item's quantity on partial exit, advance time, close.

Architecture position:
    Engines -- pure aggregate, no I/O of its own.  Stock is reserved through
    an injected ``StockReserver`` (the services layer supplies
    StockReservationGuard); time arrives as explicit deltas.

Invariants enforced:
    - NON_EMPTY_OPEN_SESSION: an open session always has an individual.
    - SINGLE_MAIN_CLIENT: exactly one main client, fixed at creation; it may
      leave only together with everybody else.
    - SETTLED_BEFORE_CLOSE: the last individual cannot leave, and the
      session cannot be terminated, while item quantities remain.
    - MONOTONIC_ELAPSED_TIME: negative deltas are rejected.
    - Closed is terminal: every mutation raises InvalidStateError.
    - Every rejected operation leaves the ledger unchanged.  Multi-part
      operations (batch add, exit) validate completely before mutating.

Failure modes:
    - InvalidStateError, InvalidArgumentError, InvariantViolationError,
      IndividualNotFoundError, SessionItemNotFoundError.
    - InsufficientStockError / ProductNotFoundError / StoreUnavailableError
      propagate from the stock reserver with the ledger unchanged.

Usage:
    ledger = SessionLedger.start(
        branch_id=branch_id,
        main_client_name="Omar",
        started_at=clock.now(),
        stock_reserver=guard,
    )
    ledger.add_individual()                    # "فرد 2"
    ledger.add_item(product_id, 2, Decimal("15"))
    ledger.advance_time(3661)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from uuid import UUID, uuid4

from venue_kernel.domain.dtos import ItemType
from venue_kernel.domain.naming import NamingStrategy, default_individual_name
from venue_kernel.domain.values import (
    ZERO,
    non_negative_seconds,
    positive_quantity,
    price_amount,
    to_decimal,
)
from venue_kernel.exceptions import (
    IndividualNotFoundError,
    InvalidArgumentError,
    InvalidStateError,
    InvariantViolationError,
    SessionItemNotFoundError,
)
from venue_kernel.invariants import KernelInvariant
from venue_kernel.logging_config import get_logger

logger = get_logger("engines.ledger")


class SessionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ExitReason(str, Enum):
    """Early-exit feedback collected when a session is closed."""

    ERRAND = "errand"
    PRICING = "pricing"
    CROWDED = "crowded"
    HOT_WEATHER = "hot_weather"
    HELP_YOURSELF = "help_yourself"
    OTHER = "other"


class StockReserver(Protocol):
    """All-or-nothing stock decrement for a batch of product quantities."""

    def reserve_batch(self, quantities: Mapping[UUID, int]) -> Any:
        ...


@dataclass(frozen=True)
class Individual:
    """A person occupying the session."""

    id: UUID
    name: str
    is_main_client: bool = False

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Individual name must be non-empty")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "is_main_client": self.is_main_client}


@dataclass(frozen=True)
class SessionItem:
    """
    A product or service consumed in the session.

    ``unit_price`` is snapshotted when the item is added and does not follow
    later product price changes.  Quantity is never increased in place.
    """

    id: UUID
    product_id: UUID | None
    quantity: int
    unit_price: Decimal
    individual_name: str | None = None
    is_split: bool = False
    item_type: ItemType = ItemType.PRODUCT
    name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "item_type", ItemType(self.item_type))
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))
        if self.quantity <= 0:
            raise ValueError("quantity must be positive")
        if self.unit_price < ZERO:
            raise ValueError("unit_price must be non-negative")

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "item_type": self.item_type.value,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
            "individual_name": self.individual_name,
            "is_split": self.is_split,
        }


@dataclass(frozen=True)
class ItemLine:
    """One requested addition in an add-items batch."""

    product_id: UUID | None
    quantity: int
    unit_price: Decimal
    individual_name: str | None = None
    item_type: ItemType = ItemType.PRODUCT
    name: str | None = None


@dataclass(frozen=True)
class SessionSnapshot:
    """Frozen, plain view of the ledger state."""

    id: UUID
    branch_id: UUID
    client_id: UUID | None
    status: SessionStatus
    started_at: datetime
    elapsed_seconds: Decimal
    individuals: tuple[Individual, ...]
    items: tuple[SessionItem, ...]
    exit_reasons: tuple[ExitReason, ...] = ()
    exit_note: str | None = None
    booking_id: UUID | None = None

    @property
    def is_open(self) -> bool:
        return self.status == SessionStatus.OPEN

    @property
    def main_client(self) -> Individual:
        return next(i for i in self.individuals if i.is_main_client)

    def find_individual(self, individual_id: UUID) -> Individual | None:
        return next((i for i in self.individuals if i.id == individual_id), None)

    def find_item(self, item_id: UUID) -> SessionItem | None:
        return next((i for i in self.items if i.id == item_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "client_id": self.client_id,
            "booking_id": self.booking_id,
            "status": self.status.value,
            "started_at": self.started_at,
            "elapsed_seconds": self.elapsed_seconds,
            "individuals": [i.to_dict() for i in self.individuals],
            "items": [i.to_dict() for i in self.items],
            "exit_reasons": [r.value for r in self.exit_reasons],
            "exit_note": self.exit_note,
        }


@dataclass(frozen=True)
class ExitResult:
    """What an applied exit removed from the ledger."""

    removed_individuals: tuple[Individual, ...]
    settled_items: tuple[SessionItem, ...]
    closed: bool


@dataclass
class _ExitPlan:
    exiting: list[Individual]
    remaining: list[Individual]
    reductions: list[tuple[SessionItem, int]] = field(default_factory=list)


def normalize_exit_reasons(
    reasons: Iterable[ExitReason | str],
    note: str | None,
) -> tuple[ExitReason, ...]:
    """Validate early-exit feedback.  ``other`` requires a note."""
    try:
        normalized = tuple(dict.fromkeys(ExitReason(r) for r in reasons))
    except ValueError as exc:
        raise InvalidArgumentError("exit_reasons", list(reasons), str(exc)) from None
    if ExitReason.OTHER in normalized and not (note and note.strip()):
        raise InvalidArgumentError("exit_note", note, "required when reason is 'other'")
    return normalized


class SessionLedger:
    """
    Mutable aggregate for one session.

    Not thread-safe: callers serialize mutations per session
    (SessionService holds a per-session lock).
    """

    def __init__(
        self,
        session_id: UUID,
        branch_id: UUID,
        main_client: Individual,
        started_at: datetime,
        client_id: UUID | None = None,
        stock_reserver: StockReserver | None = None,
        naming: NamingStrategy = default_individual_name,
        id_factory: Callable[[], UUID] = uuid4,
        booking_id: UUID | None = None,
    ):
        if not main_client.is_main_client:
            raise ValueError("The first individual of a session must be the main client")
        self.id = session_id
        self.branch_id = branch_id
        self.client_id = client_id
        self.started_at = started_at
        self.booking_id = booking_id
        self._stock_reserver = stock_reserver
        self._naming = naming
        self._new_id = id_factory
        self._individuals: list[Individual] = [main_client]
        self._items: list[SessionItem] = []
        self._elapsed = ZERO
        self._status = SessionStatus.OPEN
        self._exit_reasons: tuple[ExitReason, ...] = ()
        self._exit_note: str | None = None

    @classmethod
    def start(
        cls,
        branch_id: UUID,
        main_client_name: str,
        started_at: datetime,
        client_id: UUID | None = None,
        stock_reserver: StockReserver | None = None,
        naming: NamingStrategy = default_individual_name,
        id_factory: Callable[[], UUID] = uuid4,
        session_id: UUID | None = None,
        booking_id: UUID | None = None,
    ) -> SessionLedger:
        """Open a session whose first individual is the main client."""
        if not main_client_name or not main_client_name.strip():
            raise InvalidArgumentError("main_client_name", main_client_name, "must be non-empty")
        main = Individual(id=id_factory(), name=main_client_name.strip(), is_main_client=True)
        ledger = cls(
            session_id=session_id or id_factory(),
            branch_id=branch_id,
            main_client=main,
            started_at=started_at,
            client_id=client_id,
            stock_reserver=stock_reserver,
            naming=naming,
            id_factory=id_factory,
            booking_id=booking_id,
        )
        logger.info(
            "session_started",
            extra={"session_id": str(ledger.id), "branch_id": str(branch_id)},
        )
        return ledger

    # -- read side ---------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_open(self) -> bool:
        return self._status == SessionStatus.OPEN

    @property
    def elapsed_seconds(self) -> Decimal:
        return self._elapsed

    @property
    def individuals(self) -> tuple[Individual, ...]:
        return tuple(self._individuals)

    @property
    def items(self) -> tuple[SessionItem, ...]:
        return tuple(self._items)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            id=self.id,
            branch_id=self.branch_id,
            client_id=self.client_id,
            status=self._status,
            started_at=self.started_at,
            elapsed_seconds=self._elapsed,
            individuals=tuple(self._individuals),
            items=tuple(self._items),
            exit_reasons=self._exit_reasons,
            exit_note=self._exit_note,
            booking_id=self.booking_id,
        )

    # -- guards ------------------------------------------------------------

    def _require_open(self, operation: str) -> None:
        if self._status != SessionStatus.OPEN:
            raise InvalidStateError("session", str(self.id), self._status.value, operation)

    def _item_index(self, item_id: UUID) -> int:
        for idx, item in enumerate(self._items):
            if item.id == item_id:
                return idx
        raise SessionItemNotFoundError(str(item_id))

    def _plan_exit(
        self,
        individual_ids: Iterable[UUID],
        item_quantities: Mapping[UUID, int] | None,
    ) -> _ExitPlan:
        ids = list(dict.fromkeys(individual_ids))
        if not ids:
            raise InvalidArgumentError("individual_ids", ids, "must not be empty")

        by_id = {i.id: i for i in self._individuals}
        for individual_id in ids:
            if individual_id not in by_id:
                raise IndividualNotFoundError(str(individual_id))

        exiting = [by_id[i] for i in ids]
        exiting_set = set(ids)
        remaining = [i for i in self._individuals if i.id not in exiting_set]

        if remaining and any(i.is_main_client for i in exiting):
            raise InvariantViolationError(
                KernelInvariant.SINGLE_MAIN_CLIENT,
                "the main client can only leave together with every other individual",
            )

        plan = _ExitPlan(exiting=exiting, remaining=remaining)
        settled_units: dict[UUID, int] = {}
        for item_id, quantity in (item_quantities or {}).items():
            item = self._items[self._item_index(item_id)]
            positive_quantity("quantity", quantity)
            if quantity > item.quantity:
                raise InvalidArgumentError(
                    "quantity", quantity, f"exceeds remaining quantity {item.quantity}"
                )
            plan.reductions.append((item, quantity))
            settled_units[item.id] = quantity

        if not remaining:
            unsettled = [
                i for i in self._items if settled_units.get(i.id, 0) < i.quantity
            ]
            if unsettled:
                raise InvariantViolationError(
                    KernelInvariant.SETTLED_BEFORE_CLOSE,
                    f"{len(unsettled)} item(s) remain unsettled",
                )
        return plan

    # -- mutations ---------------------------------------------------------

    def link_booking(self, booking_id: UUID) -> None:
        """Attach the session to a private booking.  Relinking replaces the old link."""
        self._require_open("link a booking to")
        if not isinstance(booking_id, UUID):
            raise InvalidArgumentError("booking_id", booking_id, "must be a UUID")
        previous = self.booking_id
        self.booking_id = booking_id
        logger.info(
            "session_booking_linked",
            extra={
                "session_id": str(self.id),
                "booking_id": str(booking_id),
                "previous_booking_id": str(previous) if previous else None,
            },
        )

    def add_individual(self, name: str | None = None) -> Individual:
        """Append an individual; a blank name is filled by the naming strategy."""
        self._require_open("add individual to")
        label = name.strip() if name and name.strip() else self._naming(len(self._individuals))
        individual = Individual(id=self._new_id(), name=label)
        self._individuals.append(individual)
        logger.info(
            "individual_added",
            extra={"session_id": str(self.id), "individual_id": str(individual.id)},
        )
        return individual

    def remove_individuals(self, individual_ids: Iterable[UUID]) -> tuple[Individual, ...]:
        """
        Remove individuals.  Removing the last one closes the session, which
        is only allowed once every item is settled.
        """
        self._require_open("remove individuals from")
        plan = self._plan_exit(individual_ids, None)
        return self._apply_plan(plan, (), None).removed_individuals

    def add_items(self, lines: Iterable[ItemLine]) -> tuple[SessionItem, ...]:
        """
        Add a batch of items, all or nothing.

        Stock for product lines is reserved in one batch before the ledger
        changes.  A rejected reservation leaves the ledger untouched.
        """
        self._require_open("add items to")
        lines = list(lines)
        if not lines:
            raise InvalidArgumentError("lines", lines, "must not be empty")

        validated: list[ItemLine] = []
        demand: dict[UUID, int] = {}
        for line in lines:
            quantity = positive_quantity("quantity", line.quantity)
            unit_price = price_amount("unit_price", line.unit_price)
            item_type = ItemType(line.item_type)
            if item_type == ItemType.TIME_ENTRY:
                raise InvalidArgumentError("item_type", item_type.value, "not a session item")
            if item_type == ItemType.PRODUCT:
                if line.product_id is None:
                    raise InvalidArgumentError("product_id", None, "required for product items")
                demand[line.product_id] = demand.get(line.product_id, 0) + quantity
            validated.append(replace(line, unit_price=unit_price, item_type=item_type))

        if demand and self._stock_reserver is not None:
            self._stock_reserver.reserve_batch(demand)

        added = tuple(
            SessionItem(
                id=self._new_id(),
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                individual_name=line.individual_name,
                item_type=line.item_type,
                name=line.name,
            )
            for line in validated
        )
        self._items.extend(added)
        logger.info(
            "session_items_added",
            extra={
                "session_id": str(self.id),
                "item_count": len(added),
                "reserved_products": len(demand),
            },
        )
        return added

    def add_item(
        self,
        product_id: UUID | None,
        quantity: int,
        unit_price: Decimal,
        individual_name: str | None = None,
        item_type: ItemType = ItemType.PRODUCT,
        name: str | None = None,
    ) -> SessionItem:
        (item,) = self.add_items([
            ItemLine(
                product_id=product_id,
                quantity=quantity,
                unit_price=unit_price,
                individual_name=individual_name,
                item_type=item_type,
                name=name,
            )
        ])
        return item

    def reduce_item_quantity(self, item_id: UUID, quantity: int) -> SessionItem:
        """
        Take ``quantity`` units off an item and return the settled slice.

        The slice carries ``is_split=True``.  An item reduced to zero leaves
        the ledger.  Requests above the remaining quantity are rejected.
        """
        self._require_open("reduce item on")
        idx = self._item_index(item_id)
        item = self._items[idx]
        positive_quantity("quantity", quantity)
        if quantity > item.quantity:
            raise InvalidArgumentError(
                "quantity", quantity, f"exceeds remaining quantity {item.quantity}"
            )
        return self._reduce(idx, quantity)

    def _reduce(self, idx: int, quantity: int) -> SessionItem:
        item = self._items[idx]
        settled = replace(item, id=self._new_id(), quantity=quantity, is_split=True)
        if quantity == item.quantity:
            del self._items[idx]
        else:
            self._items[idx] = replace(item, quantity=item.quantity - quantity)
        return settled

    def validate_exit(
        self,
        individual_ids: Iterable[UUID],
        item_quantities: Mapping[UUID, int] | None = None,
    ) -> None:
        """Dry run of ``apply_exit``: raises what it would raise, changes nothing."""
        self._require_open("exit from")
        self._plan_exit(individual_ids, item_quantities)

    def apply_exit(
        self,
        individual_ids: Iterable[UUID],
        item_quantities: Mapping[UUID, int] | None = None,
        reasons: Iterable[ExitReason | str] = (),
        note: str | None = None,
    ) -> ExitResult:
        """
        Remove the exiting individuals and settle item quantities together.

        Items settled in the same exit count as settled when deciding whether
        the last individual may leave.  ``reasons``/``note`` are recorded when
        the exit closes the session.
        """
        self._require_open("exit from")
        plan = self._plan_exit(individual_ids, item_quantities)
        exit_reasons = normalize_exit_reasons(reasons, note)
        return self._apply_plan(plan, exit_reasons, note)

    def _apply_plan(
        self,
        plan: _ExitPlan,
        reasons: tuple[ExitReason, ...],
        note: str | None,
    ) -> ExitResult:
        settled = tuple(
            self._reduce(self._item_index(item.id), quantity)
            for item, quantity in plan.reductions
        )
        self._individuals = plan.remaining
        closed = not plan.remaining
        if closed:
            self._close(reasons, note)
        logger.info(
            "session_exit_applied",
            extra={
                "session_id": str(self.id),
                "exiting_count": len(plan.exiting),
                "settled_item_count": len(settled),
                "closed": closed,
            },
        )
        return ExitResult(
            removed_individuals=tuple(plan.exiting),
            settled_items=settled,
            closed=closed,
        )

    def advance_time(self, delta_seconds: int | float | Decimal) -> Decimal:
        """Move elapsed time forward; returns the new elapsed seconds."""
        self._require_open("advance time on")
        delta = non_negative_seconds("delta_seconds", delta_seconds)
        self._elapsed += delta
        return self._elapsed

    def close(
        self,
        reasons: Iterable[ExitReason | str] = (),
        note: str | None = None,
    ) -> None:
        """Explicit termination.  Refused while item quantities remain."""
        self._require_open("close")
        exit_reasons = normalize_exit_reasons(reasons, note)
        if self._items:
            raise InvariantViolationError(
                KernelInvariant.SETTLED_BEFORE_CLOSE,
                f"{len(self._items)} item(s) remain unsettled",
            )
        self._close(exit_reasons, note)

    def _close(self, reasons: tuple[ExitReason, ...], note: str | None) -> None:
        self._status = SessionStatus.CLOSED
        self._exit_reasons = reasons
        self._exit_note = note
        logger.info(
            "session_closed",
            extra={
                "session_id": str(self.id),
                "elapsed_seconds": self._elapsed,
                "exit_reasons": [r.value for r in reasons],
            },
        )
