"""
Module: venue_kernel.models.sequence
Responsibility: Named counter rows backing SequenceService.  Each row is
    locked (SELECT ... FOR UPDATE) while it is incremented.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from venue_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g., "invoice:<branch_id>")
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
