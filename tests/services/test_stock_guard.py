"""
Tests for StockReservationGuard.

Each reservation commits its own transaction; the assertions read the
committed stock level back through a fresh store scope.
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from venue_engines.ledger import SessionLedger
from venue_kernel.exceptions import (
    InsufficientStockError,
    InvalidArgumentError,
    ProductNotFoundError,
    StoreUnavailableError,
)


def _connection_lost():
    """Every ORM statement fails as if the database connection dropped."""
    failure = OperationalError("SELECT", {}, Exception("could not connect to server"))
    return patch.object(Session, "execute", side_effect=failure)


class TestReserve:
    """Single-product reservations."""

    def test_decrements_stock(self, stock_guard, make_product, product_stock, clock):
        product = make_product(stock_quantity=5)
        reservation = stock_guard.reserve(product["id"], 3)
        assert reservation.quantity == 3
        assert reservation.remaining_stock == 2
        assert reservation.reserved_at == clock.now()
        assert product_stock(product["id"]) == 2

    def test_exact_stock_can_be_taken(self, stock_guard, make_product, product_stock):
        product = make_product(stock_quantity=2)
        stock_guard.reserve(product["id"], 2)
        assert product_stock(product["id"]) == 0

    def test_shortage_leaves_stock_unchanged(self, stock_guard, make_product, product_stock):
        product = make_product(stock_quantity=2)
        with pytest.raises(InsufficientStockError) as exc_info:
            stock_guard.reserve(product["id"], 3)
        assert exc_info.value.requested == 3
        assert exc_info.value.available == 2
        assert product_stock(product["id"]) == 2

    def test_unknown_product(self, stock_guard):
        with pytest.raises(ProductNotFoundError):
            stock_guard.reserve(uuid4(), 1)

    def test_inactive_product(self, stock_guard, make_product, product_stock):
        product = make_product(stock_quantity=5, is_active=False)
        with pytest.raises(ProductNotFoundError):
            stock_guard.reserve(product["id"], 1)
        assert product_stock(product["id"]) == 5

    @pytest.mark.parametrize("quantity", [0, -2, True, 1.5])
    def test_bad_quantity(self, stock_guard, make_product, quantity):
        product = make_product()
        with pytest.raises(InvalidArgumentError):
            stock_guard.reserve(product["id"], quantity)

    def test_rejection_is_logged(self, stock_guard, make_product, captured_logs):
        product = make_product(stock_quantity=0)
        with pytest.raises(InsufficientStockError):
            stock_guard.reserve(product["id"], 1)
        rejected = [r for r in captured_logs() if r["message"] == "stock_reservation_rejected"]
        assert rejected[0]["reason"] == "insufficient_stock"
        assert rejected[0]["product_id"] == str(product["id"])


class TestReserveBatch:
    """Multi-product reservations are all or nothing."""

    def test_all_lines_reserved(self, stock_guard, make_product, product_stock):
        tea = make_product(name="Tea", stock_quantity=5)
        coffee = make_product(name="Coffee", stock_quantity=4)
        reservations = stock_guard.reserve_batch({tea["id"]: 2, coffee["id"]: 4})
        assert len(reservations) == 2
        assert [r.product_id for r in reservations] == sorted(
            [tea["id"], coffee["id"]], key=str
        )
        assert product_stock(tea["id"]) == 3
        assert product_stock(coffee["id"]) == 0

    def test_one_short_line_rejects_the_batch(self, stock_guard, make_product, product_stock):
        tea = make_product(name="Tea", stock_quantity=5)
        coffee = make_product(name="Coffee", stock_quantity=1)
        with pytest.raises(InsufficientStockError):
            stock_guard.reserve_batch({tea["id"]: 2, coffee["id"]: 2})
        assert product_stock(tea["id"]) == 5
        assert product_stock(coffee["id"]) == 1

    def test_unknown_line_rejects_the_batch(self, stock_guard, make_product, product_stock):
        tea = make_product(stock_quantity=5)
        with pytest.raises(ProductNotFoundError):
            stock_guard.reserve_batch({tea["id"]: 1, uuid4(): 1})
        assert product_stock(tea["id"]) == 5

    def test_empty_batch(self, stock_guard):
        assert stock_guard.reserve_batch({}) == ()


class TestStoreUnavailable:
    """A store outage is reported as such, never as a stock shortage."""

    def test_reserve_raises_store_unavailable(self, stock_guard, make_product, product_stock):
        product = make_product(stock_quantity=5)
        with _connection_lost():
            with pytest.raises(StoreUnavailableError) as exc_info:
                stock_guard.reserve(product["id"], 1)
        assert not isinstance(exc_info.value, InsufficientStockError)
        assert "could not connect" in exc_info.value.reason
        assert product_stock(product["id"]) == 5

    def test_ledger_unchanged_when_store_is_down(self, stock_guard, make_product, product_stock):
        product = make_product(stock_quantity=5)
        ledger = SessionLedger.start(
            branch_id=uuid4(),
            main_client_name="Omar",
            started_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
            stock_reserver=stock_guard,
        )
        before = ledger.snapshot()
        with _connection_lost():
            with pytest.raises(StoreUnavailableError):
                ledger.add_item(product["id"], 2, Decimal("15"))
        assert ledger.snapshot() == before
        assert ledger.items == ()
        assert product_stock(product["id"]) == 5
