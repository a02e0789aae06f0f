"""
Settlement Calculator -- what a partial exit owes.

Pure functions with deterministic behavior. No I/O.

Given a session snapshot, the individuals leaving and the item quantities
they take with them, ``compute_exit`` projects the amount due.  The exiting
cohort is billed for the full elapsed duration at its own headcount: time
is not prorated across the people who stay.  ``time_allocation`` (the
cohort's share of the headcount before the exit) is reported for display
and never used in the arithmetic.

The projection is read-only.  Committing it is a second step: the caller
reviews the settlement, then applies the same selection to the ledger and
issues an invoice.

Usage:
    settlement = compute_exit(
        ledger.snapshot(),
        exiting_individual_ids={guest.id},
        exiting_item_quantities={tea.id: 1},
        pricing=pricing,
    )
    settlement.total
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from venue_engines.ledger import SessionSnapshot
from venue_engines.pricing import SessionPricing, time_cost
from venue_engines.tracer import traced_engine
from venue_kernel.domain.dtos import ItemType
from venue_kernel.domain.values import ZERO, quantize_amount
from venue_kernel.exceptions import InvalidExitError, InvalidStateError
from venue_kernel.logging_config import get_logger

logger = get_logger("engines.settlement")

_FOUR_PLACES = Decimal("0.0001")


@dataclass(frozen=True)
class ExitItemLine:
    """One settled item slice in an exit."""

    item_id: UUID
    product_id: UUID | None
    item_type: ItemType
    name: str | None
    individual_name: str | None
    quantity: int
    unit_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "product_id": self.product_id,
            "item_type": self.item_type.value,
            "name": self.name,
            "individual_name": self.individual_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
        }


@dataclass(frozen=True)
class ExitSettlement:
    """Projected amount owed by an exiting cohort."""

    session_id: UUID
    exiting_individual_ids: tuple[UUID, ...]
    exiting_names: tuple[str, ...]
    exiting_count: int
    elapsed_seconds: Decimal
    time_cost: Decimal
    items_cost: Decimal
    total: Decimal
    time_allocation: Decimal
    lines: tuple[ExitItemLine, ...] = ()
    closes_session: bool = False

    @property
    def item_quantities(self) -> dict[UUID, int]:
        return {line.item_id: line.quantity for line in self.lines}

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "exiting_individual_ids": list(self.exiting_individual_ids),
            "exiting_names": list(self.exiting_names),
            "exiting_count": self.exiting_count,
            "elapsed_seconds": self.elapsed_seconds,
            "time_cost": self.time_cost,
            "items_cost": self.items_cost,
            "total": self.total,
            "time_allocation": self.time_allocation,
            "lines": [line.to_dict() for line in self.lines],
            "closes_session": self.closes_session,
        }


@traced_engine(
    "settlement", "1.0",
    fingerprint_fields=("exiting_individual_ids", "exiting_item_quantities", "pricing"),
)
def compute_exit(
    session: SessionSnapshot,
    exiting_individual_ids: Iterable[UUID],
    exiting_item_quantities: Mapping[UUID, int] | None,
    pricing: SessionPricing,
) -> ExitSettlement:
    """
    Project the cost of a partial (or full) exit.

    Preconditions:
        - ``session`` is open.
        - ``exiting_individual_ids`` is a non-empty subset of the session's
          individuals.  The main client is included only when everybody
          leaves.
        - every item quantity is an int with ``0 < qty <= remaining``.

    Returns:
        ExitSettlement with ``total = time_cost + items_cost``.

    Raises:
        InvalidStateError: session is closed.
        InvalidExitError: any selection rule above is broken.
    """
    sid = str(session.id)
    if not session.is_open:
        raise InvalidStateError("session", sid, session.status.value, "compute exit for")

    ids = tuple(dict.fromkeys(exiting_individual_ids))
    if not ids:
        raise InvalidExitError(sid, "no exiting individuals selected")

    exiting = []
    for individual_id in ids:
        individual = session.find_individual(individual_id)
        if individual is None:
            raise InvalidExitError(sid, f"individual {individual_id} is not in the session")
        exiting.append(individual)

    before = len(session.individuals)
    full_closure = len(ids) == before
    if not full_closure and any(i.is_main_client for i in exiting):
        raise InvalidExitError(
            sid, "the main client can only exit together with every other individual"
        )

    lines: list[ExitItemLine] = []
    items_cost = ZERO
    for item_id, quantity in (exiting_item_quantities or {}).items():
        item = session.find_item(item_id)
        if item is None:
            raise InvalidExitError(sid, f"item {item_id} is not in the session")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidExitError(sid, f"quantity for item {item_id} must be a positive integer")
        if quantity > item.quantity:
            raise InvalidExitError(
                sid,
                f"quantity {quantity} for item {item_id} exceeds remaining {item.quantity}",
            )
        line = ExitItemLine(
            item_id=item.id,
            product_id=item.product_id,
            item_type=item.item_type,
            name=item.name,
            individual_name=item.individual_name,
            quantity=quantity,
            unit_price=item.unit_price,
        )
        lines.append(line)
        items_cost += line.total_price

    cohort_time_cost = time_cost(len(ids), session.elapsed_seconds, pricing)
    items_cost = quantize_amount(items_cost)
    total = quantize_amount(cohort_time_cost + items_cost)
    allocation = (Decimal(len(ids)) / Decimal(before)).quantize(
        _FOUR_PLACES, rounding=ROUND_HALF_UP
    )

    logger.debug(
        "exit_settlement_computed",
        extra={
            "session_id": sid,
            "exiting_count": len(ids),
            "time_cost": cohort_time_cost,
            "items_cost": items_cost,
            "total": total,
        },
    )

    return ExitSettlement(
        session_id=session.id,
        exiting_individual_ids=ids,
        exiting_names=tuple(i.name for i in exiting),
        exiting_count=len(ids),
        elapsed_seconds=session.elapsed_seconds,
        time_cost=cohort_time_cost,
        items_cost=items_cost,
        total=total,
        time_allocation=allocation,
        lines=tuple(lines),
        closes_session=full_closure,
    )
