"""
venue_services -- imperative shell over the session billing engines.

Stock reservation, invoice persistence, session operations and read-only
selectors.  Each service receives its SQLAlchemy session (or session
factory) and clock from the caller.
"""

from venue_services.invoice_service import InvoiceLineInput, InvoiceService
from venue_services.selectors import (
    BillingSelector,
    InvoiceBreakdown,
    LowStockProduct,
    invoice_breakdown,
)
from venue_services.session_service import ExitCommit, SessionService
from venue_services.stock_guard import Reservation, StockReservationGuard

__all__ = [
    "BillingSelector",
    "ExitCommit",
    "InvoiceBreakdown",
    "InvoiceLineInput",
    "InvoiceService",
    "LowStockProduct",
    "Reservation",
    "SessionService",
    "StockReservationGuard",
    "invoice_breakdown",
]
