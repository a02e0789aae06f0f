"""Kernel services: record store, sequences."""

from venue_kernel.services.record_store import (
    SYSTEM_ACTOR_ID,
    RecordStore,
    store_scope,
)
from venue_kernel.services.sequence_service import SequenceService

__all__ = [
    "SYSTEM_ACTOR_ID",
    "RecordStore",
    "SequenceService",
    "store_scope",
]
