"""
Default naming for session individuals.

An individual added without a name gets one from a naming strategy: a
callable taking the current individual count and returning a label.  The
strategy is injected into SessionLedger so that locales and formats can
change without touching the ledger.
"""

from collections.abc import Callable

NamingStrategy = Callable[[int], str]


def default_individual_name(current_count: int) -> str:
    """Label for the next individual: "فرد {count+1}"."""
    return f"فرد {current_count + 1}"


def numbered_name(prefix: str) -> NamingStrategy:
    """Build a strategy producing ``"{prefix} {count+1}"``."""

    def _name(current_count: int) -> str:
        return f"{prefix} {current_count + 1}"

    return _name
