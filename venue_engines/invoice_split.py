"""
Invoice Splitter -- move invoice lines onto a new, independent invoice.

Pure functions with deterministic behavior. No I/O.

A split takes one or more lines off an invoice and places them on a new
invoice for the same client and branch.  Lines are moved, never copied:
each moved line keeps its quantity, unit price and attribution, is marked
``is_split`` and is re-owned by the new invoice.  The new invoice carries
no tax and starts pending; the original keeps its tax and loses the moved
amount.

Invariant (SPLIT_SUM_PRESERVATION):
    original_after.amount + new_invoice.amount == original_before.amount
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from uuid import UUID

from venue_engines.tracer import traced_engine
from venue_kernel.domain.dtos import Invoice, InvoiceItem, PaymentStatus
from venue_kernel.domain.values import ZERO
from venue_kernel.exceptions import (
    AlreadySplitError,
    InvalidArgumentError,
    InvariantViolationError,
    InvoiceItemNotFoundError,
)
from venue_kernel.invariants import KernelInvariant
from venue_kernel.logging_config import get_logger

logger = get_logger("engines.invoice_split")


@dataclass(frozen=True)
class SplitResult:
    updated_original: Invoice
    new_invoice: Invoice

    @property
    def moved_items(self) -> tuple[InvoiceItem, ...]:
        return self.new_invoice.items


def split_invoice_number(original_number: str, prior_splits: int) -> str:
    """``{orig}-SPLIT`` for the first split, ``{orig}-SPLIT-{n}`` for the n-th."""
    if prior_splits < 0:
        raise ValueError("prior_splits must be non-negative")
    if prior_splits == 0:
        return f"{original_number}-SPLIT"
    return f"{original_number}-SPLIT-{prior_splits + 1}"


@traced_engine("invoice_split", "1.0", fingerprint_fields=("item_ids", "new_invoice_id"))
def split_items(
    invoice: Invoice,
    item_ids: Iterable[UUID],
    new_invoice_id: UUID,
    new_invoice_number: str,
) -> SplitResult:
    """
    Move several lines onto one new invoice.

    Raises:
        InvalidArgumentError: no item ids given.
        InvoiceItemNotFoundError: an id is not a line of ``invoice``.
        AlreadySplitError: a line was already moved by an earlier split.
    """
    ids = list(dict.fromkeys(item_ids))
    if not ids:
        raise InvalidArgumentError("item_ids", ids, "must not be empty")

    moving: list[InvoiceItem] = []
    for item_id in ids:
        item = invoice.find_item(item_id)
        if item is None:
            raise InvoiceItemNotFoundError(str(item_id), str(invoice.id))
        if item.is_split:
            raise AlreadySplitError(str(item_id), str(invoice.id))
        moving.append(item)

    moved = tuple(item.moved_to(new_invoice_id) for item in moving)
    moved_total = sum((item.total_price for item in moved), ZERO)
    moved_ids = set(ids)

    new_invoice = Invoice(
        id=new_invoice_id,
        branch_id=invoice.branch_id,
        client_id=invoice.client_id,
        invoice_number=new_invoice_number,
        amount=moved_total,
        tax_amount=ZERO,
        payment_status=PaymentStatus.PENDING,
        items=moved,
        split_from_invoice_id=invoice.id,
    )
    updated_original = replace(
        invoice,
        amount=invoice.amount - moved_total,
        items=tuple(i for i in invoice.items if i.id not in moved_ids),
    )

    if updated_original.amount + new_invoice.amount != invoice.amount:
        raise InvariantViolationError(
            KernelInvariant.SPLIT_SUM_PRESERVATION,
            f"{updated_original.amount} + {new_invoice.amount} != {invoice.amount}",
        )

    logger.info(
        "invoice_split",
        extra={
            "invoice_id": str(invoice.id),
            "new_invoice_id": str(new_invoice_id),
            "moved_count": len(moved),
            "moved_total": moved_total,
        },
    )
    return SplitResult(updated_original=updated_original, new_invoice=new_invoice)


def split_item(
    invoice: Invoice,
    item_id: UUID,
    new_invoice_id: UUID,
    new_invoice_number: str,
) -> SplitResult:
    """Move a single line onto a new invoice."""
    return split_items(invoice, [item_id], new_invoice_id, new_invoice_number)
