"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers, one named counter per
    sequence.  Invoice numbers are allocated from a per-branch counter and
    formatted as ``INV-{YYYYMMDD}-{seq:06d}``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by InvoiceService when a new (non-split) invoice is created.

Invariants enforced:
    - Sequence monotonicity: the locked counter row (``SELECT ... FOR
      UPDATE``) is the sole source of truth for the next value.  The
      aggregate-max-plus-one pattern is never used.
    - Transactional: the increment becomes visible only when the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError: two transactions create the same counter row on first
      use.  The loser's transaction fails and the caller retries the whole
      unit of work.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from venue_kernel.logging_config import get_logger
from venue_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Usage:
        with session_scope() as session:
            number = SequenceService(session).next_invoice_number(branch_id, today)
    """

    INVOICE_PREFIX = "INV"

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def invoice_sequence_name(branch_id: UUID) -> str:
        return f"invoice:{branch_id}"

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Locks the counter row (creating it on first use), increments it and
        returns the new value.  The increment is only committed when the
        caller's transaction commits.

        Returns:
            The next sequence value (always > 0).
        """
        if not sequence_name:
            raise ValueError("sequence_name must be non-empty")

        # Fresh read; the session may hold a stale counter from an earlier call.
        self._session.expire_all()

        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=1)
            self._session.add(counter)
            self._session.flush()
            logger.debug(
                "sequence_counter_created",
                extra={"sequence_name": sequence_name, "value": 1},
            )
            return 1

        counter.current_value += 1
        self._session.flush()

        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_invoice_number(self, branch_id: UUID, issued_on: date) -> str:
        """Allocate ``INV-{YYYYMMDD}-{seq:06d}`` from the branch counter."""
        seq = self.next_value(self.invoice_sequence_name(branch_id))
        return f"{self.INVOICE_PREFIX}-{issued_on:%Y%m%d}-{seq:06d}"
