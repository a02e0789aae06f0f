"""
Payment status derivation.

Pure functions with deterministic behavior. No I/O.

    paid == 0            -> pending
    total - paid > 0     -> partial
    total - paid == 0    -> paid
    total - paid < 0     -> overpaid

An overpayment is resolved by a remaining-balance action (account credit
or tips); the action is meaningless for any other status and is reset to
``none``.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from venue_kernel.domain.dtos import PaymentLine, PaymentStatus, RemainingBalanceAction
from venue_kernel.domain.values import ZERO, to_decimal
from venue_kernel.exceptions import InvalidArgumentError


def derive_payment_status(total_amount: Decimal, total_paid: Decimal) -> PaymentStatus:
    total_amount = to_decimal(total_amount)
    total_paid = to_decimal(total_paid)
    if total_paid < ZERO:
        raise InvalidArgumentError("total_paid", total_paid, "must be non-negative")
    if total_paid == ZERO:
        return PaymentStatus.PENDING
    remaining = total_amount - total_paid
    if remaining > ZERO:
        return PaymentStatus.PARTIAL
    if remaining == ZERO:
        return PaymentStatus.PAID
    return PaymentStatus.OVERPAID


def resolve_balance_action(
    status: PaymentStatus,
    requested: RemainingBalanceAction | str | None,
) -> RemainingBalanceAction:
    """Keep the requested action only for overpaid invoices."""
    if status != PaymentStatus.OVERPAID or requested is None:
        return RemainingBalanceAction.NONE
    return RemainingBalanceAction(requested)


def total_tendered(payments: Iterable[PaymentLine]) -> Decimal:
    """
    Sum a batch of tendered amounts.

    Raises:
        InvalidArgumentError: empty batch, or a non-positive amount.
    """
    payments = list(payments)
    if not payments:
        raise InvalidArgumentError("payments", payments, "must not be empty")
    total = ZERO
    for line in payments:
        if line.amount <= ZERO:
            raise InvalidArgumentError("amount", line.amount, "must be greater than zero")
        total += line.amount
    return total
