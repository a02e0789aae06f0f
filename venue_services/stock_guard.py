"""
StockReservationGuard -- all-or-nothing product stock decrement.

Responsibility:
    Checks that a product has enough stock for a requested quantity and
    decrements it, atomically with respect to every other reservation of
    the same product.  Session ledgers reserve through this guard before
    adding product items.

Architecture position:
    Services -- imperative shell.  Owns its own unit of work: each
    reservation (or batch) runs in a dedicated transaction from the session
    factory and commits before returning, so the decrement is visible to
    competing sessions immediately.

Invariants enforced:
    - NO_OVERSELL: stock never goes negative.  The check-then-decrement for
      a product runs under a process-wide per-product lock and a row lock
      (``SELECT ... FOR UPDATE``) on backends that support one.
    - Batches lock products in sorted id order, so two batches never wait
      on each other in opposite orders.
    - All-or-nothing: every line of a batch is checked before any stock is
      decremented, inside one transaction.

Failure modes:
    - InvalidArgumentError: quantity is not a positive integer.
    - ProductNotFoundError: unknown or inactive product.
    - InsufficientStockError: stock on hand is below the request.  Stock is
      unchanged.
    - StoreUnavailableError: the record store could not be reached.  This
      says nothing about stock levels and is never reported as a shortage.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from venue_kernel.domain.clock import Clock, SystemClock
from venue_kernel.domain.values import positive_quantity
from venue_kernel.exceptions import InsufficientStockError, ProductNotFoundError
from venue_kernel.logging_config import get_logger
from venue_kernel.services.record_store import SYSTEM_ACTOR_ID, RecordStore, store_scope

logger = get_logger("services.stock_guard")

_product_locks: dict[UUID, threading.Lock] = {}
_registry_lock = threading.Lock()


def _lock_for(product_id: UUID) -> threading.Lock:
    with _registry_lock:
        lock = _product_locks.get(product_id)
        if lock is None:
            lock = _product_locks[product_id] = threading.Lock()
        return lock


@dataclass(frozen=True)
class Reservation:
    """Stock taken for one product."""

    product_id: UUID
    quantity: int
    remaining_stock: int
    reserved_at: datetime


class StockReservationGuard:
    """
    Serialized stock reservation.

    Satisfies the ledger's ``StockReserver`` protocol through
    ``reserve_batch``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._actor_id = actor_id

    def reserve(self, product_id: UUID, quantity: int) -> Reservation:
        """Reserve ``quantity`` units of one product."""
        (reservation,) = self.reserve_batch({product_id: quantity})
        return reservation

    def reserve_batch(self, quantities: Mapping[UUID, int]) -> tuple[Reservation, ...]:
        """
        Reserve several products at once, all or nothing.

        Returns:
            One Reservation per product, in sorted product order.
        """
        for product_id, quantity in quantities.items():
            positive_quantity(f"quantity[{product_id}]", quantity)
        if not quantities:
            return ()

        ordered = sorted(quantities.items(), key=lambda kv: str(kv[0]))

        with ExitStack() as stack:
            for product_id, _ in ordered:
                stack.enter_context(_lock_for(product_id))
            with store_scope(self._session_factory, actor_id=self._actor_id) as store:
                checked = [
                    (self._check(store, product_id, quantity), quantity)
                    for product_id, quantity in ordered
                ]
                reservations = tuple(
                    self._decrement(store, record, quantity)
                    for record, quantity in checked
                )

        logger.info(
            "stock_reserved",
            extra={
                "products": [str(r.product_id) for r in reservations],
                "quantities": [r.quantity for r in reservations],
            },
        )
        return reservations

    def _check(self, store: RecordStore, product_id: UUID, quantity: int) -> dict:
        record = store.get("product", product_id, for_update=True)
        if record is None or not record["is_active"]:
            logger.warning(
                "stock_reservation_rejected",
                extra={"product_id": str(product_id), "reason": "product_not_found"},
            )
            raise ProductNotFoundError(str(product_id))
        available = int(record["stock_quantity"])
        if available < quantity:
            logger.warning(
                "stock_reservation_rejected",
                extra={
                    "product_id": str(product_id),
                    "reason": "insufficient_stock",
                    "requested": quantity,
                    "available": available,
                },
            )
            raise InsufficientStockError(str(product_id), quantity, available)
        return record

    def _decrement(self, store: RecordStore, record: dict, quantity: int) -> Reservation:
        remaining = int(record["stock_quantity"]) - quantity
        store.update("product", record["id"], {"stock_quantity": remaining})
        return Reservation(
            product_id=record["id"],
            quantity=quantity,
            remaining_stock=remaining,
            reserved_at=self._clock.now(),
        )
