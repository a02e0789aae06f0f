"""
Module: venue_kernel.models.invoice
Responsibility: ORM persistence for invoices, their line items, and the
    payments recorded against them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (branch_id, invoice_number) is unique (uq_invoice_branch_number).
    - total_amount = amount + tax_amount is maintained by InvoiceService.
    - invoice_items.invoice_id is the single owner of a line.  Splitting
      reassigns it; lines are never copied between invoices.

Failure modes:
    - IntegrityError on duplicate invoice numbers within a branch.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from venue_kernel.db.base import TrackedBase, UUIDString


class InvoiceModel(TrackedBase):
    """An invoice issued to a client of a branch."""

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("branch_id", "invoice_number", name="uq_invoice_branch_number"),
        Index("idx_invoice_branch", "branch_id"),
        Index("idx_invoice_client", "client_id"),
        Index("idx_invoice_split_from", "split_from_invoice_id"),
    )

    branch_id: Mapped[UUID] = mapped_column(nullable=False)

    client_id: Mapped[UUID | None] = mapped_column(nullable=True)

    booking_id: Mapped[UUID | None] = mapped_column(nullable=True)

    invoice_number: Mapped[str] = mapped_column(String(80), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    tax_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    # PaymentStatus enum stored as string
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    remaining_balance_action: Mapped[str] = mapped_column(
        String(20), nullable=False, default="none",
    )

    split_from_invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.invoice_number} total={self.total_amount}>"


class InvoiceItemModel(TrackedBase):
    """A line on an invoice: time entry, product, or service."""

    __tablename__ = "invoice_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_item_quantity_positive"),
        Index("idx_invoice_item_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=False,
    )

    # ItemType enum stored as string
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Product id for product lines, client id for time entries
    related_id: Mapped[UUID | None] = mapped_column(nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    total_price: Mapped[Decimal] = mapped_column(nullable=False)

    individual_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    is_split: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class PaymentModel(TrackedBase):
    """A tendered amount toward an invoice."""

    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("idx_payment_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=False,
    )

    # PaymentMethod enum stored as string
    method: Mapped[str] = mapped_column(String(20), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
