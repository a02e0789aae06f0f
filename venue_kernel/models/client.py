"""
Module: venue_kernel.models.client
Responsibility: ORM persistence for branch clients.  Sessions reference a
    client as their main individual; invoices are issued to a client.
"""

from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from venue_kernel.db.base import TrackedBase


class ClientModel(TrackedBase):
    """A registered or walk-in client of a branch."""

    __tablename__ = "clients"

    __table_args__ = (
        Index("idx_client_branch", "branch_id"),
        Index("idx_client_phone", "phone"),
    )

    branch_id: Mapped[UUID] = mapped_column(nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<ClientModel {self.name}>"
