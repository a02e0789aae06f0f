"""
BaseService -- abstract base for kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service that writes through a SQLAlchemy ``Session``.  Services
    use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or rollback themselves.  ``session_scope`` and
    ``store_scope`` own commit/rollback.

Failure modes:
    - If a subclass calls ``session.commit()`` directly, a rejected
      multi-step operation (invoice plus lines plus sequence) can leave a
      partial write behind.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session
