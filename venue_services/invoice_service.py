"""
InvoiceService -- persist invoices, their lines, splits and payments.

Responsibility:
    The write side for invoices.  Creates invoices (directly or from an
    exit settlement), appends lines, persists the Invoice Splitter's
    result, and records payments with the derived payment status.

Architecture position:
    Services -- imperative shell.  Pure decisions come from
    ``venue_engines`` (split, payment status); this class loads records,
    calls the engine, and writes the result through the RecordStore.
    Flush-only: the caller's ``store_scope``/``session_scope`` commits.

Invariants enforced:
    - INVOICE_AMOUNT_CONSISTENCY: ``amount`` equals the sum of line totals
      and ``total_amount = amount + tax_amount`` after every write.
    - SPLIT_SUM_PRESERVATION: delegated to ``venue_engines.invoice_split``.
    - Invoice numbers come from the branch's locked sequence counter.

Failure modes:
    - InvoiceNotFoundError, InvoiceItemNotFoundError, AlreadySplitError.
    - InvalidArgumentError for empty line lists or bad payments.
    - StoreUnavailableError from the record store.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from venue_engines.invoice_split import SplitResult, split_invoice_number, split_items
from venue_engines.payment import derive_payment_status, resolve_balance_action, total_tendered
from venue_engines.settlement import ExitSettlement
from venue_kernel.domain.clock import Clock, SystemClock
from venue_kernel.domain.dtos import (
    Invoice,
    InvoiceItem,
    ItemType,
    PaymentLine,
    PaymentStatus,
    RemainingBalanceAction,
)
from venue_kernel.domain.values import (
    ZERO,
    non_negative_amount,
    positive_quantity,
    price_amount,
    quantize_amount,
    to_decimal,
)
from venue_kernel.exceptions import (
    InvalidArgumentError,
    InvariantViolationError,
    InvoiceNotFoundError,
)
from venue_kernel.invariants import KernelInvariant
from venue_kernel.logging_config import get_logger
from venue_kernel.services.base import BaseService
from venue_kernel.services.record_store import SYSTEM_ACTOR_ID, RecordStore
from venue_kernel.services.sequence_service import SequenceService

logger = get_logger("services.invoice")


@dataclass(frozen=True)
class InvoiceLineInput:
    """A line to put on an invoice."""

    item_type: ItemType
    quantity: int
    unit_price: Decimal
    related_id: UUID | None = None
    individual_name: str | None = None


class InvoiceService(BaseService):
    """
    Invoice write operations.

    All public methods return ``Invoice`` DTOs, never ORM rows.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._store = RecordStore(session, actor_id=actor_id)
        self._sequences = SequenceService(session)

    # -- reads -------------------------------------------------------------

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        record = self._store.get("invoice", invoice_id)
        if record is None:
            raise InvoiceNotFoundError(str(invoice_id))
        items = self._store.list("invoice_item", {"invoice_id": invoice_id})
        return Invoice.from_records(record, items)

    def total_paid(self, invoice_id: UUID) -> Decimal:
        payments = self._store.list("payment", {"invoice_id": invoice_id})
        return sum((to_decimal(p["amount"]) for p in payments), ZERO)

    # -- creation ----------------------------------------------------------

    def _validated_lines(self, lines: Iterable[InvoiceLineInput]) -> list[InvoiceLineInput]:
        validated = []
        for line in lines:
            validated.append(InvoiceLineInput(
                item_type=ItemType(line.item_type),
                quantity=positive_quantity("quantity", line.quantity),
                unit_price=price_amount("unit_price", line.unit_price),
                related_id=line.related_id,
                individual_name=line.individual_name,
            ))
        if not validated:
            raise InvalidArgumentError("items", [], "an invoice needs at least one line")
        return validated

    def _write_line(self, invoice_id: UUID, line: InvoiceLineInput) -> None:
        item = InvoiceItem(
            id=uuid4(),
            invoice_id=invoice_id,
            item_type=line.item_type,
            quantity=line.quantity,
            unit_price=line.unit_price,
            related_id=line.related_id,
            individual_name=line.individual_name,
        )
        self._store.create("invoice_item", item.to_record())

    def create_invoice(
        self,
        branch_id: UUID,
        client_id: UUID | None,
        items: Sequence[InvoiceLineInput],
        tax_amount: Decimal = ZERO,
        booking_id: UUID | None = None,
        notes: str | None = None,
    ) -> Invoice:
        """
        Create a pending invoice whose amount is the sum of ``items``.

        Raises:
            InvalidArgumentError: no lines, bad quantity, negative or sub-cent
                unit price, negative tax.
        """
        lines = self._validated_lines(items)
        tax = quantize_amount(non_negative_amount("tax_amount", tax_amount))
        amount = quantize_amount(sum((line.unit_price * line.quantity for line in lines), ZERO))
        invoice_number = self._sequences.next_invoice_number(
            branch_id, self._clock.now().date()
        )

        invoice = Invoice(
            id=uuid4(),
            branch_id=branch_id,
            client_id=client_id,
            invoice_number=invoice_number,
            amount=amount,
            tax_amount=tax,
            booking_id=booking_id,
            notes=notes,
        )
        self._store.create("invoice", invoice.to_record())
        for line in lines:
            self._write_line(invoice.id, line)

        logger.info(
            "invoice_created",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice_number,
                "branch_id": str(branch_id),
                "amount": amount,
                "tax_amount": tax,
                "line_count": len(lines),
            },
        )
        return self.get_invoice(invoice.id)

    def create_settlement_invoice(
        self,
        branch_id: UUID,
        client_id: UUID | None,
        settlement: ExitSettlement,
        tax_rate: Decimal = ZERO,
        booking_id: UUID | None = None,
        notes: str | None = None,
    ) -> Invoice:
        """
        Invoice an exit settlement.

        One ``time_entry`` line (quantity 1, unit price = the cohort's time
        cost, attributed to the exiting names) plus one line per settled
        item.  Tax is ``amount x tax_rate``.
        ``booking_id`` links the invoice to the private booking the session
        ran under.
        """
        lines = [
            InvoiceLineInput(
                item_type=ItemType.TIME_ENTRY,
                quantity=1,
                unit_price=settlement.time_cost,
                related_id=client_id,
                individual_name=", ".join(settlement.exiting_names) or None,
            )
        ]
        for line in settlement.lines:
            lines.append(InvoiceLineInput(
                item_type=line.item_type,
                quantity=line.quantity,
                unit_price=line.unit_price,
                related_id=line.product_id,
                individual_name=line.individual_name,
            ))
        amount = quantize_amount(sum((line.unit_price * line.quantity for line in lines), ZERO))
        tax = quantize_amount(amount * to_decimal(tax_rate))
        return self.create_invoice(
            branch_id=branch_id,
            client_id=client_id,
            items=lines,
            tax_amount=tax,
            booking_id=booking_id,
            notes=notes,
        )

    # -- mutation ----------------------------------------------------------

    def _refresh_totals(
        self,
        invoice_id: UUID,
        amount: Decimal,
        tax_amount: Decimal,
        requested_action: RemainingBalanceAction | str | None = None,
    ) -> None:
        total = quantize_amount(amount + tax_amount)
        status = derive_payment_status(total, self.total_paid(invoice_id))
        self._store.update("invoice", invoice_id, {
            "amount": quantize_amount(amount),
            "total_amount": total,
            "payment_status": status.value,
            "remaining_balance_action": resolve_balance_action(status, requested_action).value,
        })

    def add_item(self, invoice_id: UUID, line: InvoiceLineInput) -> Invoice:
        """Append a line; amount and total grow by the line total."""
        invoice = self.get_invoice(invoice_id)
        (validated,) = self._validated_lines([line])
        self._write_line(invoice_id, validated)
        new_amount = invoice.amount + validated.unit_price * validated.quantity
        self._refresh_totals(
            invoice_id, new_amount, invoice.tax_amount, invoice.remaining_balance_action,
        )
        logger.info(
            "invoice_item_added",
            extra={"invoice_id": str(invoice_id), "item_type": validated.item_type.value},
        )
        updated = self.get_invoice(invoice_id)
        self._check_consistency(updated)
        return updated

    def split_items(self, invoice_id: UUID, item_ids: Iterable[UUID]) -> SplitResult:
        """
        Move lines onto a new invoice numbered ``{orig}-SPLIT[-n]``.

        The original's payment status is recomputed against its payments;
        the new invoice starts pending.
        """
        invoice = self.get_invoice(invoice_id)
        prior = len(self._store.list("invoice", {"split_from_invoice_id": invoice_id}))
        result = split_items(
            invoice,
            list(item_ids),
            uuid4(),
            split_invoice_number(invoice.invoice_number, prior),
        )

        new_invoice = result.new_invoice
        self._store.create("invoice", new_invoice.to_record())
        for item in new_invoice.items:
            self._store.update("invoice_item", item.id, {
                "invoice_id": new_invoice.id,
                "is_split": True,
            })
        original = result.updated_original
        self._refresh_totals(
            original.id, original.amount, original.tax_amount,
            original.remaining_balance_action,
        )

        logger.info(
            "invoice_split_persisted",
            extra={
                "invoice_id": str(invoice_id),
                "new_invoice_id": str(new_invoice.id),
                "new_invoice_number": new_invoice.invoice_number,
                "moved_count": len(new_invoice.items),
            },
        )
        persisted = SplitResult(
            updated_original=self.get_invoice(original.id),
            new_invoice=self.get_invoice(new_invoice.id),
        )
        self._check_consistency(persisted.updated_original)
        self._check_consistency(persisted.new_invoice)
        return persisted

    def split_item(self, invoice_id: UUID, item_id: UUID) -> SplitResult:
        return self.split_items(invoice_id, [item_id])

    def record_payment(
        self,
        invoice_id: UUID,
        payments: Sequence[PaymentLine],
        remaining_balance_action: RemainingBalanceAction | str | None = None,
    ) -> Invoice:
        """
        Record tendered amounts and derive the payment status.

        ``remaining_balance_action`` is kept only when the invoice ends up
        overpaid.

        Raises:
            InvalidArgumentError: empty batch or a non-positive amount.
        """
        invoice = self.get_invoice(invoice_id)
        tendered = total_tendered(payments)
        for payment in payments:
            self._store.create("payment", {
                "invoice_id": invoice_id,
                "method": payment.method.value,
                "amount": payment.amount,
                "transaction_id": payment.transaction_id,
                "notes": payment.notes,
            })
        self._refresh_totals(
            invoice_id, invoice.amount, invoice.tax_amount, remaining_balance_action,
        )
        updated = self.get_invoice(invoice_id)
        logger.info(
            "payment_recorded",
            extra={
                "invoice_id": str(invoice_id),
                "tendered": tendered,
                "payment_count": len(payments),
                "payment_status": updated.payment_status.value,
            },
        )
        if updated.payment_status == PaymentStatus.OVERPAID:
            logger.info(
                "invoice_overpaid",
                extra={
                    "invoice_id": str(invoice_id),
                    "remaining_balance_action": updated.remaining_balance_action.value,
                },
            )
        return updated

    def _check_consistency(self, invoice: Invoice) -> None:
        if quantize_amount(invoice.amount) != quantize_amount(invoice.items_total):
            raise InvariantViolationError(
                KernelInvariant.INVOICE_AMOUNT_CONSISTENCY,
                f"invoice {invoice.id} amount {invoice.amount} != lines {invoice.items_total}",
            )
