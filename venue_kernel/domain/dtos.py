"""
Invoice DTOs -- immutable invoice, line item, and payment records.

Responsibility:
    Carries invoice data between the record store, the pure engines, and
    callers.  Services convert store records to these DTOs before handing
    them to engines, and back to plain field-keyed dicts at the boundary.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.

Invariants enforced:
    - ``InvoiceItem.total_price == quantity * unit_price`` (checked at
      construction).
    - ``Invoice.total_amount == amount + tax_amount`` (derived, never stored
      independently in the DTO).

Failure modes:
    - ValueError on construction with a mismatched total or negative values.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from venue_kernel.domain.values import ZERO, to_decimal


class ItemType(str, Enum):
    """Kinds of invoice line."""

    TIME_ENTRY = "time_entry"
    PRODUCT = "product"
    SERVICE = "service"


class PaymentStatus(str, Enum):
    """Settlement state of an invoice against its recorded payments."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERPAID = "overpaid"


class PaymentMethod(str, Enum):
    CASH = "cash"
    VISA = "visa"
    WALLET = "wallet"


class RemainingBalanceAction(str, Enum):
    """What happens to an overpayment."""

    NONE = "none"
    ACCOUNT_CREDIT = "account_credit"
    TIPS = "tips"


@dataclass(frozen=True)
class InvoiceItem:
    """
    A single invoice line.

    ``total_price`` may be omitted and is then derived; when given it must
    equal ``quantity * unit_price``.
    """

    id: UUID
    invoice_id: UUID
    item_type: ItemType
    quantity: int
    unit_price: Decimal
    total_price: Decimal | None = None
    related_id: UUID | None = None
    individual_name: str | None = None
    is_split: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "item_type", ItemType(self.item_type))
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))
        if self.quantity <= 0:
            raise ValueError("quantity must be positive")
        if self.unit_price < ZERO:
            raise ValueError("unit_price must be non-negative")
        expected = self.unit_price * self.quantity
        if self.total_price is None:
            object.__setattr__(self, "total_price", expected)
        else:
            object.__setattr__(self, "total_price", to_decimal(self.total_price))
            if self.total_price != expected:
                raise ValueError(
                    f"total_price {self.total_price} != quantity * unit_price {expected}"
                )

    def moved_to(self, invoice_id: UUID) -> InvoiceItem:
        """Copy of this line owned by another invoice and marked split."""
        return replace(self, invoice_id=invoice_id, is_split=True)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "item_type": self.item_type.value,
            "related_id": self.related_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
            "individual_name": self.individual_name,
            "is_split": self.is_split,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> InvoiceItem:
        return cls(
            id=record["id"],
            invoice_id=record["invoice_id"],
            item_type=ItemType(record["item_type"]),
            related_id=record.get("related_id"),
            quantity=int(record["quantity"]),
            unit_price=to_decimal(record["unit_price"]),
            total_price=to_decimal(record["total_price"]),
            individual_name=record.get("individual_name"),
            is_split=bool(record.get("is_split", False)),
        )


@dataclass(frozen=True)
class Invoice:
    """
    Immutable invoice with its owned line items.

    ``amount`` is the pre-tax total; ``total_amount`` adds ``tax_amount``.
    """

    id: UUID
    branch_id: UUID
    client_id: UUID | None
    invoice_number: str
    amount: Decimal
    tax_amount: Decimal = ZERO
    payment_status: PaymentStatus = PaymentStatus.PENDING
    items: tuple[InvoiceItem, ...] = field(default_factory=tuple)
    booking_id: UUID | None = None
    split_from_invoice_id: UUID | None = None
    remaining_balance_action: RemainingBalanceAction = RemainingBalanceAction.NONE
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "tax_amount", to_decimal(self.tax_amount))
        object.__setattr__(self, "payment_status", PaymentStatus(self.payment_status))
        object.__setattr__(
            self, "remaining_balance_action",
            RemainingBalanceAction(self.remaining_balance_action),
        )
        object.__setattr__(self, "items", tuple(self.items))
        if self.tax_amount < ZERO:
            raise ValueError("tax_amount must be non-negative")

    @property
    def total_amount(self) -> Decimal:
        return self.amount + self.tax_amount

    @property
    def items_total(self) -> Decimal:
        """Sum of line totals currently owned by this invoice."""
        return sum((item.total_price for item in self.items), ZERO)

    @property
    def is_consistent(self) -> bool:
        """True when ``amount`` equals the sum of owned line totals."""
        return self.amount == self.items_total

    def find_item(self, item_id: UUID) -> InvoiceItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def to_record(self) -> dict[str, Any]:
        """Plain record without items (items are stored separately)."""
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "client_id": self.client_id,
            "booking_id": self.booking_id,
            "invoice_number": self.invoice_number,
            "amount": self.amount,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
            "payment_status": self.payment_status.value,
            "remaining_balance_action": self.remaining_balance_action.value,
            "split_from_invoice_id": self.split_from_invoice_id,
            "notes": self.notes,
        }

    @classmethod
    def from_records(
        cls,
        record: dict[str, Any],
        item_records: list[dict[str, Any]],
    ) -> Invoice:
        return cls(
            id=record["id"],
            branch_id=record["branch_id"],
            client_id=record.get("client_id"),
            booking_id=record.get("booking_id"),
            invoice_number=record["invoice_number"],
            amount=to_decimal(record["amount"]),
            tax_amount=to_decimal(record["tax_amount"]),
            payment_status=PaymentStatus(record["payment_status"]),
            remaining_balance_action=RemainingBalanceAction(
                record.get("remaining_balance_action") or "none"
            ),
            split_from_invoice_id=record.get("split_from_invoice_id"),
            notes=record.get("notes"),
            items=tuple(InvoiceItem.from_record(r) for r in item_records),
        )


@dataclass(frozen=True)
class PaymentLine:
    """One tendered amount toward an invoice."""

    method: PaymentMethod
    amount: Decimal
    transaction_id: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", PaymentMethod(self.method))
        object.__setattr__(self, "amount", to_decimal(self.amount))
