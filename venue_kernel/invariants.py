"""
Kernel Invariants Contract.

These invariants are structural law for session billing. No branch
configuration or caller policy may override them.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across SessionLedger, the settlement and split
engines, StockReservationGuard and InvoiceService.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the billing engine.

    Each value names one structural guarantee. ``InvariantViolationError``
    carries the member that a rejected operation would have broken.
    """

    NON_EMPTY_OPEN_SESSION = "non_empty_open_session"
    """An open session always has at least one individual. Enforced by
    SessionLedger.remove_individuals and apply_exit."""

    SINGLE_MAIN_CLIENT = "single_main_client"
    """Exactly one individual is the main client, set at creation and never
    reassigned. The main client leaves only as part of a full closure."""

    SETTLED_BEFORE_CLOSE = "settled_before_close"
    """A session cannot lose its last individual, or be terminated, while
    item quantities remain unsettled."""

    MONOTONIC_ELAPSED_TIME = "monotonic_elapsed_time"
    """Elapsed session time only moves forward."""

    INVOICE_AMOUNT_CONSISTENCY = "invoice_amount_consistency"
    """An invoice amount equals the sum of its line totals after every
    mutation. Enforced by InvoiceService and the split engine."""

    SPLIT_SUM_PRESERVATION = "split_sum_preservation"
    """Splitting never creates or destroys value: original + new amounts
    equal the original amount before the split."""

    NO_OVERSELL = "no_oversell"
    """Product stock never goes negative. Enforced by StockReservationGuard
    under a per-product critical section."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "venue_engines",
    "venue_services",
    "venue_config",
)
