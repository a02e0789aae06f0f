"""
Module: venue_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the session
    billing engines.  This is the import surface for venue_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import venue_kernel (domain, exceptions, logging, invariants)
    and sibling engine modules.  MUST NOT import venue_services or
    venue_config.

Invariants enforced:
    - Purity: engines never read the clock.  Elapsed time and timestamps
      are passed in by callers.
    - Decimal-only arithmetic for money.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Pricing, settlement and split calls are traced via ``@traced_engine``
    (see ``venue_engines.tracer``), emitting VENUE_ENGINE_TRACE records.
"""

from venue_engines.invoice_split import (
    SplitResult,
    split_invoice_number,
    split_item,
    split_items,
)
from venue_engines.ledger import (
    ExitReason,
    ExitResult,
    Individual,
    ItemLine,
    SessionItem,
    SessionLedger,
    SessionSnapshot,
    SessionStatus,
    StockReserver,
)
from venue_engines.payment import (
    derive_payment_status,
    resolve_balance_action,
    total_tendered,
)
from venue_engines.pricing import SessionPricing, time_cost
from venue_engines.settlement import ExitItemLine, ExitSettlement, compute_exit
from venue_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Pricing
    "SessionPricing",
    "time_cost",
    # Ledger
    "ExitReason",
    "ExitResult",
    "Individual",
    "ItemLine",
    "SessionItem",
    "SessionLedger",
    "SessionSnapshot",
    "SessionStatus",
    "StockReserver",
    # Settlement
    "ExitItemLine",
    "ExitSettlement",
    "compute_exit",
    # Split
    "SplitResult",
    "split_invoice_number",
    "split_item",
    "split_items",
    # Payment
    "derive_payment_status",
    "resolve_balance_action",
    "total_tendered",
    # Tracing
    "compute_input_fingerprint",
    "traced_engine",
]
