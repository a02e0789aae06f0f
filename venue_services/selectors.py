"""
Module: venue_services.selectors
Responsibility: Read-only queries for the back office: products at or below
    their minimum stock level, and the time/product/service breakdown of an
    invoice.
Architecture position: Services > Selectors.  Reads through RecordStore and
    never adds, flushes or commits.

Invariants enforced:
    - Read-only: the caller owns the session and its transaction.
    - Results are frozen dataclasses, not ORM rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from venue_kernel.domain.dtos import Invoice, ItemType
from venue_kernel.domain.values import ZERO, quantize_amount
from venue_kernel.services.record_store import RecordStore


@dataclass(frozen=True)
class LowStockProduct:
    product_id: UUID
    name: str
    category: str | None
    stock_quantity: int
    min_stock_level: int

    @property
    def shortfall(self) -> int:
        """Units needed to get back above the minimum level."""
        return self.min_stock_level - self.stock_quantity + 1


@dataclass(frozen=True)
class InvoiceBreakdown:
    invoice_id: UUID
    time_cost: Decimal
    products_cost: Decimal
    services_cost: Decimal
    tax_amount: Decimal
    total_amount: Decimal

    @property
    def items_cost(self) -> Decimal:
        return self.products_cost + self.services_cost


def invoice_breakdown(invoice: Invoice) -> InvoiceBreakdown:
    """Split an invoice's amount into time, product and service cost."""
    totals = {item_type: ZERO for item_type in ItemType}
    for item in invoice.items:
        totals[item.item_type] += item.total_price
    return InvoiceBreakdown(
        invoice_id=invoice.id,
        time_cost=quantize_amount(totals[ItemType.TIME_ENTRY]),
        products_cost=quantize_amount(totals[ItemType.PRODUCT]),
        services_cost=quantize_amount(totals[ItemType.SERVICE]),
        tax_amount=quantize_amount(invoice.tax_amount),
        total_amount=quantize_amount(invoice.total_amount),
    )


class BillingSelector:
    """Back-office read queries over the record store."""

    def __init__(self, session: Session):
        self.session = session
        self._store = RecordStore(session)

    def list_low_stock(self, branch_id: UUID) -> list[LowStockProduct]:
        """Active products of the branch with stock at or below their minimum."""
        products = self._store.list(
            "product", {"branch_id": branch_id, "is_active": True}, order_by="name",
        )
        return [
            LowStockProduct(
                product_id=p["id"],
                name=p["name"],
                category=p["category"],
                stock_quantity=p["stock_quantity"],
                min_stock_level=p["min_stock_level"],
            )
            for p in products
            if p["stock_quantity"] <= p["min_stock_level"]
        ]
