"""
Module: venue_kernel.models.product
Responsibility: ORM persistence for sellable products and their stock levels.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - stock_quantity >= 0 (CHECK constraint).  The only code path that
      decrements stock is StockReservationGuard, under a per-product lock.
    - price is a snapshot source only; session items copy it at add time.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from venue_kernel.db.base import TrackedBase


class ProductModel(TrackedBase):
    """A product a branch sells into sessions (drinks, snacks, services)."""

    __tablename__ = "products"

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_product_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_product_price_non_negative"),
        Index("idx_product_branch", "branch_id"),
        Index("idx_product_active", "is_active"),
    )

    branch_id: Mapped[UUID] = mapped_column(nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    price: Mapped[Decimal] = mapped_column(nullable=False)

    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    min_stock_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<ProductModel {self.name} stock={self.stock_quantity}>"
