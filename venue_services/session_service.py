"""
SessionService -- caller-facing operations on running venue sessions.

Responsibility:
    Accepts the front desk's payloads (start, add individual, add items,
    add ad hoc service, link a booking, preview/commit a partial exit,
    close, read a snapshot), drives the SessionLedger and the pure engines,
    and persists the invoices each exit produces.

Architecture position:
    Services -- imperative shell.  Holds the live ledgers in memory, keyed
    by session id.  Billing settings come from ``venue_config``; stock from
    StockReservationGuard; invoices from InvoiceService inside a
    ``store_scope`` unit of work.

Invariants enforced:
    - One mutation in flight per session: a second concurrent caller gets
      SessionBusyError instead of interleaving.  Reads (snapshot, tick,
      exit preview) wait for the mutation in flight instead.
    - Exit commit order: validate the whole exit against the ledger, write
      the invoice and commit it, then apply the exit to the ledger.  A
      failed invoice write leaves the ledger untouched.
    - Elapsed time is read from the injected clock's monotonic source.
    - A session's ledger, lock and clock reading are dropped once it
      closes.  The final snapshots of the most recent ``closed_retention``
      sessions stay readable; mutating one raises InvalidStateError.

Failure modes:
    - SessionNotFoundError, ClientNotFoundError, ProductNotFoundError.
    - Everything the ledger, settlement and stock guard raise propagates
      unchanged.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from venue_config import get_branch_billing
from venue_config.schema import BranchBillingConfig
from venue_engines.ledger import (
    ExitReason,
    Individual,
    ItemLine,
    SessionItem,
    SessionLedger,
    SessionSnapshot,
    normalize_exit_reasons,
)
from venue_engines.settlement import ExitSettlement, compute_exit
from venue_kernel.domain.clock import Clock, SystemClock
from venue_kernel.domain.dtos import Invoice, ItemType
from venue_kernel.domain.naming import NamingStrategy, default_individual_name
from venue_kernel.domain.values import ZERO, positive_quantity
from venue_kernel.exceptions import (
    ClientNotFoundError,
    InvalidArgumentError,
    InvalidStateError,
    ProductNotFoundError,
    SessionBusyError,
    SessionNotFoundError,
)
from venue_kernel.logging_config import LogContext, get_logger
from venue_kernel.services.record_store import SYSTEM_ACTOR_ID, store_scope
from venue_services.invoice_service import InvoiceService
from venue_services.stock_guard import StockReservationGuard

logger = get_logger("services.session")

BillingResolver = Callable[[UUID], BranchBillingConfig]


@dataclass(frozen=True)
class ExitCommit:
    """Outcome of a committed exit: what was owed, the invoice, the ledger after."""

    settlement: ExitSettlement
    invoice: Invoice
    snapshot: SessionSnapshot

    def to_dict(self) -> dict[str, Any]:
        return {
            "settlement": self.settlement.to_dict(),
            "invoice_id": self.invoice.id,
            "invoice_number": self.invoice.invoice_number,
            "invoice_total": self.invoice.total_amount,
            "session": self.snapshot.to_dict(),
        }


class SessionService:
    """
    Session operations for one process.

    Open ledgers live in memory.  Each public mutation takes the session's
    lock without blocking; reads wait for it.  A closed session leaves only
    its final snapshot behind, for the last ``closed_retention`` of them.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        stock_guard: StockReservationGuard | None = None,
        billing_resolver: BillingResolver = get_branch_billing,
        naming: NamingStrategy = default_individual_name,
        actor_id: UUID = SYSTEM_ACTOR_ID,
        closed_retention: int = 256,
    ):
        if closed_retention < 0:
            raise ValueError("closed_retention must be non-negative")
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._stock_guard = stock_guard or StockReservationGuard(
            session_factory, clock=self._clock, actor_id=actor_id,
        )
        self._billing_resolver = billing_resolver
        self._naming = naming
        self._actor_id = actor_id
        self._ledgers: dict[UUID, SessionLedger] = {}
        self._locks: dict[UUID, threading.Lock] = {}
        self._last_reading: dict[UUID, Decimal] = {}
        self._closed: OrderedDict[UUID, SessionSnapshot] = OrderedDict()
        self._closed_retention = closed_retention
        self._registry_lock = threading.Lock()

    # -- plumbing ----------------------------------------------------------

    def _ledger(self, session_id: UUID, operation: str) -> SessionLedger:
        with self._registry_lock:
            ledger = self._ledgers.get(session_id)
            closed = self._closed.get(session_id)
        if ledger is not None:
            return ledger
        if closed is not None:
            raise InvalidStateError("session", str(session_id), closed.status.value, operation)
        raise SessionNotFoundError(str(session_id))

    @contextmanager
    def _locked(
        self,
        session_id: UUID,
        operation: str,
        wait: bool = False,
    ) -> Iterator[SessionLedger]:
        ledger = self._ledger(session_id, operation)
        with self._registry_lock:
            lock = self._locks.setdefault(session_id, threading.Lock())
        if not lock.acquire(blocking=wait):
            logger.warning("session_busy", extra={"session_id": str(session_id)})
            raise SessionBusyError(str(session_id))
        try:
            # The lock holder may have closed and evicted the session meanwhile.
            ledger = self._ledger(session_id, operation)
            with LogContext.bind(session_id=str(session_id), branch_id=str(ledger.branch_id)):
                yield ledger
        finally:
            lock.release()

    def _sync_time(self, ledger: SessionLedger) -> None:
        if not ledger.is_open:
            return
        reading = self._clock.monotonic()
        delta = reading - self._last_reading[ledger.id]
        if delta > ZERO:
            ledger.advance_time(delta)
            self._last_reading[ledger.id] = reading

    def _evict(self, ledger: SessionLedger) -> None:
        with self._registry_lock:
            self._ledgers.pop(ledger.id, None)
            self._locks.pop(ledger.id, None)
            self._last_reading.pop(ledger.id, None)
            if self._closed_retention:
                self._closed[ledger.id] = ledger.snapshot()
                while len(self._closed) > self._closed_retention:
                    self._closed.popitem(last=False)
        logger.info("session_evicted", extra={"session_id": str(ledger.id)})

    @property
    def open_session_count(self) -> int:
        with self._registry_lock:
            return len(self._ledgers)

    # -- start -------------------------------------------------------------

    def start_session(
        self,
        branch_id: UUID,
        client_id: UUID | None = None,
        adhoc_name: str | None = None,
        adhoc_phone: str | None = None,
        initial_individuals_count: int = 1,
        initial_individual_names: Sequence[str | None] = (),
        booking_id: UUID | None = None,
    ) -> SessionSnapshot:
        """
        Open a session for a registered client or a walk-in.

        Exactly one of ``client_id`` and ``adhoc_name`` is given.  A walk-in
        is registered as a client of the branch.  The main client counts
        toward ``initial_individuals_count``; ``initial_individual_names``
        names the others, and blanks get the default name.
        """
        if (client_id is None) == (adhoc_name is None or not adhoc_name.strip()):
            raise InvalidArgumentError(
                "client", {"client_id": client_id, "adhoc_name": adhoc_name},
                "exactly one of client_id and adhoc_name is required",
            )
        count = positive_quantity("initial_individuals_count", initial_individuals_count)
        names = list(initial_individual_names)
        if len(names) > count - 1:
            raise InvalidArgumentError(
                "initial_individual_names", names,
                f"at most {count - 1} name(s) for {count} individual(s)",
            )
        if booking_id is not None and not isinstance(booking_id, UUID):
            raise InvalidArgumentError("booking_id", booking_id, "must be a UUID")

        with store_scope(self._session_factory, actor_id=self._actor_id) as store:
            if client_id is not None:
                client = store.get("client", client_id)
                if client is None or client["branch_id"] != branch_id:
                    raise ClientNotFoundError(str(client_id))
            else:
                client = store.create("client", {
                    "branch_id": branch_id,
                    "name": adhoc_name.strip(),
                    "phone": adhoc_phone.strip() if adhoc_phone else None,
                })

        ledger = SessionLedger.start(
            branch_id=branch_id,
            main_client_name=client["name"],
            started_at=self._clock.now(),
            client_id=client["id"],
            stock_reserver=self._stock_guard,
            naming=self._naming,
            booking_id=booking_id,
        )
        for idx in range(count - 1):
            ledger.add_individual(names[idx] if idx < len(names) else None)

        with self._registry_lock:
            self._ledgers[ledger.id] = ledger
            self._last_reading[ledger.id] = self._clock.monotonic()

        logger.info(
            "session_registered",
            extra={
                "session_id": str(ledger.id),
                "branch_id": str(branch_id),
                "client_id": str(client["id"]),
                "individual_count": count,
                "walk_in": client_id is None,
            },
        )
        return ledger.snapshot()

    # -- running session ---------------------------------------------------

    def get_snapshot(self, session_id: UUID) -> SessionSnapshot:
        """Current state; the final state for a recently closed session."""
        try:
            with self._locked(session_id, "read", wait=True) as ledger:
                self._sync_time(ledger)
                return ledger.snapshot()
        except InvalidStateError:
            with self._registry_lock:
                closed = self._closed.get(session_id)
            if closed is None:
                raise
            return closed

    def tick(self, session_id: UUID) -> SessionSnapshot:
        """Bring the session's elapsed time up to the clock."""
        return self.get_snapshot(session_id)

    def advance_time(
        self,
        session_id: UUID,
        delta_seconds: int | float | Decimal,
    ) -> SessionSnapshot:
        """Explicit time advance, for sessions not driven by the clock."""
        with self._locked(session_id, "advance time on") as ledger:
            ledger.advance_time(delta_seconds)
            return ledger.snapshot()

    def add_individual(self, session_id: UUID, name: str | None = None) -> Individual:
        with self._locked(session_id, "add individual to") as ledger:
            self._sync_time(ledger)
            return ledger.add_individual(name)

    def link_booking(self, session_id: UUID, booking_id: UUID) -> SessionSnapshot:
        """Link the running session to a private booking; its exit invoices carry it."""
        with self._locked(session_id, "link a booking to") as ledger:
            ledger.link_booking(booking_id)
            return ledger.snapshot()

    def add_items(
        self,
        session_id: UUID,
        lines: Iterable[Mapping[str, Any]],
    ) -> tuple[SessionItem, ...]:
        """
        Add products by id, all or nothing.

        Each line is ``{product_id, quantity, individual_name?}``.  The unit
        price is the product's current price, snapshotted on the item.
        """
        lines = list(lines)
        with self._locked(session_id, "add items to") as ledger:
            item_lines = []
            with store_scope(self._session_factory, actor_id=self._actor_id) as store:
                for line in lines:
                    product_id = line.get("product_id")
                    if product_id is None:
                        raise InvalidArgumentError("product_id", None, "required")
                    product = store.get("product", product_id)
                    if product is None or product["branch_id"] != ledger.branch_id \
                            or not product["is_active"]:
                        raise ProductNotFoundError(str(product_id))
                    item_lines.append(ItemLine(
                        product_id=product_id,
                        quantity=line.get("quantity"),
                        unit_price=product["price"],
                        individual_name=line.get("individual_name"),
                        item_type=ItemType.PRODUCT,
                        name=product["name"],
                    ))
            return ledger.add_items(item_lines)

    def add_service(
        self,
        session_id: UUID,
        name: str,
        quantity: int,
        unit_price: Decimal,
        individual_name: str | None = None,
    ) -> SessionItem:
        """Add an ad hoc service line; no stock is involved."""
        if not name or not name.strip():
            raise InvalidArgumentError("name", name, "must be non-empty")
        with self._locked(session_id, "add items to") as ledger:
            return ledger.add_item(
                product_id=None,
                quantity=quantity,
                unit_price=unit_price,
                individual_name=individual_name,
                item_type=ItemType.SERVICE,
                name=name.strip(),
            )

    # -- exits -------------------------------------------------------------

    def _billing(self, ledger: SessionLedger) -> BranchBillingConfig:
        return self._billing_resolver(ledger.branch_id)

    def preview_exit(
        self,
        session_id: UUID,
        exiting_individual_ids: Iterable[UUID],
        exiting_item_quantities: Mapping[UUID, int] | None = None,
    ) -> ExitSettlement:
        """What the exiting cohort owes right now.  Changes nothing."""
        with self._locked(session_id, "preview an exit from", wait=True) as ledger:
            self._sync_time(ledger)
            return compute_exit(
                ledger.snapshot(),
                list(exiting_individual_ids),
                dict(exiting_item_quantities or {}),
                self._billing(ledger).pricing,
            )

    def commit_exit(
        self,
        session_id: UUID,
        exiting_individual_ids: Iterable[UUID],
        exiting_item_quantities: Mapping[UUID, int] | None = None,
        reasons: Iterable[ExitReason | str] = (),
        note: str | None = None,
    ) -> ExitCommit:
        """
        Settle and remove the exiting cohort, issuing its invoice.

        ``reasons``/``note`` are recorded when the exit empties the session.
        """
        ids = list(exiting_individual_ids)
        quantities = dict(exiting_item_quantities or {})
        with self._locked(session_id, "commit an exit from") as ledger:
            self._sync_time(ledger)
            return self._commit(ledger, ids, quantities, tuple(reasons), note)

    def close_session(
        self,
        session_id: UUID,
        reasons: Iterable[ExitReason | str] = (),
        note: str | None = None,
    ) -> ExitCommit:
        """Settle everybody and everything left in one invoice and close."""
        with self._locked(session_id, "close") as ledger:
            self._sync_time(ledger)
            ids = [i.id for i in ledger.individuals]
            quantities = {item.id: item.quantity for item in ledger.items}
            return self._commit(ledger, ids, quantities, tuple(reasons), note)

    def _commit(
        self,
        ledger: SessionLedger,
        ids: list[UUID],
        quantities: dict[UUID, int],
        reasons: tuple[ExitReason | str, ...],
        note: str | None,
    ) -> ExitCommit:
        billing = self._billing(ledger)
        settlement = compute_exit(ledger.snapshot(), ids, quantities, billing.pricing)
        ledger.validate_exit(ids, quantities)
        normalize_exit_reasons(reasons, note)

        with store_scope(self._session_factory, actor_id=self._actor_id) as store:
            invoice = InvoiceService(
                store.session, clock=self._clock, actor_id=self._actor_id,
            ).create_settlement_invoice(
                branch_id=ledger.branch_id,
                client_id=ledger.client_id,
                settlement=settlement,
                tax_rate=billing.tax_rate,
                booking_id=ledger.booking_id,
            )

        ledger.apply_exit(ids, quantities, reasons=reasons, note=note)
        logger.info(
            "session_exit_committed",
            extra={
                "session_id": str(ledger.id),
                "invoice_id": str(invoice.id),
                "total": settlement.total,
                "closed": not ledger.is_open,
            },
        )
        snapshot = ledger.snapshot()
        if not ledger.is_open:
            self._evict(ledger)
        return ExitCommit(settlement=settlement, invoice=invoice, snapshot=snapshot)
