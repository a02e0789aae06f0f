"""
Typed Exception Hierarchy for the Venue Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Billing errors reach front-desk staff as actionable messages ("quantity
exceeds available stock"). Callers must be able to tell an out-of-stock
product from an unreachable store without parsing message strings:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        ledger.add_items(lines)
    except InsufficientStockError as e:
        notify(f"{e.product_id}: requested {e.requested}, available {e.available}")
    except StoreUnavailableError:
        retry_later()  # the engine never retries on its own

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from VenueKernelError:

    VenueKernelError (base)
    |
    +-- InvalidStateError
    +-- InvalidArgumentError
    +-- InvariantViolationError
    +-- InvalidExitError
    +-- StockError
    |   +-- InsufficientStockError
    +-- NotFoundError
    |   +-- SessionNotFoundError
    |   +-- IndividualNotFoundError
    |   +-- SessionItemNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- InvoiceItemNotFoundError
    |   +-- ProductNotFoundError
    |   +-- ClientNotFoundError
    |   +-- RecordNotFoundError
    +-- AlreadySplitError
    +-- ConcurrencyError
    |   +-- SessionBusyError
    +-- StoreUnavailableError
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                  | When Raised
----------------------|-------------------------------------------------------
INVALID_STATE         | Mutating a closed session
INVALID_ARGUMENT      | Negative time delta, zero/negative quantity, bad payload
INVARIANT_VIOLATION   | Would empty an open session or strand the main client
INVALID_EXIT          | Malformed or disallowed partial-exit selection
INSUFFICIENT_STOCK    | Reservation exceeds stock on hand
*_NOT_FOUND           | Missing session/individual/item/invoice/product/client
ALREADY_SPLIT         | Invoice item was already moved to a split invoice
SESSION_BUSY          | Another mutation for the same session is in flight
STORE_UNAVAILABLE     | Record store could not be reached
CONFIGURATION_ERROR   | Branch billing configuration is malformed

===============================================================================
PROPAGATION
===============================================================================

Every engine operation fails fast and synchronously. No component retries
internally and a rejected operation leaves state unchanged. Retrying a
STORE_UNAVAILABLE or SESSION_BUSY failure is the caller's decision.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from venue_kernel.invariants import KernelInvariant


class VenueKernelError(Exception):
    """
    Base exception for all venue kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "VENUE_KERNEL_ERROR"


class InvalidStateError(VenueKernelError):
    """Operation is not allowed in the entity's current state."""

    code: str = "INVALID_STATE"

    def __init__(self, entity: str, entity_id: str, state: str, operation: str):
        self.entity = entity
        self.entity_id = entity_id
        self.state = state
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {entity} {entity_id} in state '{state}'"
        )


class InvalidArgumentError(VenueKernelError):
    """An argument is outside its permitted domain."""

    code: str = "INVALID_ARGUMENT"

    def __init__(self, argument: str, value: object, reason: str):
        self.argument = argument
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {argument}={value!r}: {reason}")


class InvariantViolationError(VenueKernelError):
    """The operation would break a kernel invariant."""

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, invariant: KernelInvariant, detail: str):
        self.invariant = invariant
        self.detail = detail
        super().__init__(f"Invariant {invariant.value} violated: {detail}")


class InvalidExitError(VenueKernelError):
    """A partial-exit selection is malformed or disallowed."""

    code: str = "INVALID_EXIT"

    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Invalid exit from session {session_id}: {reason}")


# Stock


class StockError(VenueKernelError):
    """Base exception for stock reservation errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """Requested quantity exceeds the product's stock on hand."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Quantity exceeds available stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


# Lookups


class NotFoundError(VenueKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"
    entity: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity.capitalize()} not found: {entity_id}")


class SessionNotFoundError(NotFoundError):
    code: str = "SESSION_NOT_FOUND"
    entity: str = "session"


class IndividualNotFoundError(NotFoundError):
    code: str = "INDIVIDUAL_NOT_FOUND"
    entity: str = "individual"


class SessionItemNotFoundError(NotFoundError):
    code: str = "SESSION_ITEM_NOT_FOUND"
    entity: str = "session item"


class InvoiceNotFoundError(NotFoundError):
    code: str = "INVOICE_NOT_FOUND"
    entity: str = "invoice"


class InvoiceItemNotFoundError(NotFoundError):
    """Item does not exist on the given invoice."""

    code: str = "INVOICE_ITEM_NOT_FOUND"
    entity: str = "invoice item"

    def __init__(self, entity_id: str, invoice_id: str | None = None):
        self.invoice_id = invoice_id
        super().__init__(entity_id)


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"
    entity: str = "product"


class ClientNotFoundError(NotFoundError):
    code: str = "CLIENT_NOT_FOUND"
    entity: str = "client"


class RecordNotFoundError(NotFoundError):
    """Generic record store miss for update/delete."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity = entity_type
        super().__init__(entity_id)


class AlreadySplitError(VenueKernelError):
    """Invoice item was already moved to a split invoice."""

    code: str = "ALREADY_SPLIT"

    def __init__(self, item_id: str, invoice_id: str):
        self.item_id = item_id
        self.invoice_id = invoice_id
        super().__init__(f"Invoice item {item_id} on {invoice_id} is already split")


# Concurrency


class ConcurrencyError(VenueKernelError):
    """Base exception for concurrency conflicts."""

    code: str = "CONCURRENCY_ERROR"


class SessionBusyError(ConcurrencyError):
    """
    Another mutation for the same session is in flight.

    Sessions accept one mutation at a time; the caller decides whether to
    retry or queue.
    """

    code: str = "SESSION_BUSY"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} is being modified by another caller")


# Infrastructure


class StoreUnavailableError(VenueKernelError):
    """
    The record store could not be reached.

    Distinct from InsufficientStockError: an unreachable store says nothing
    about stock levels.
    """

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Record store unavailable during {operation}: {reason}")


class ConfigurationError(VenueKernelError):
    """Branch billing configuration is malformed."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid billing configuration in {source}: {reason}")
