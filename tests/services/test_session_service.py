"""
Tests for SessionService: the front-desk flow end to end.

Starts sessions against committed clients and products, drives time with
the deterministic clock and checks the invoices each exit commits.
"""

import threading
from decimal import Decimal
from uuid import uuid4

import pytest

from venue_config.schema import BranchBillingConfig
from venue_engines.ledger import ExitReason, SessionStatus
from venue_kernel.domain.dtos import ItemType
from venue_kernel.exceptions import (
    ClientNotFoundError,
    InsufficientStockError,
    InvalidArgumentError,
    InvalidExitError,
    InvalidStateError,
    InvariantViolationError,
    ProductNotFoundError,
    SessionBusyError,
    SessionNotFoundError,
)
from venue_kernel.invariants import KernelInvariant
from venue_kernel.services.record_store import store_scope
from venue_services.invoice_service import InvoiceService
from venue_services.session_service import SessionService


@pytest.fixture
def client(make_client):
    return make_client(name="Omar")


@pytest.fixture
def started(session_service, branch_id, client):
    return session_service.start_session(branch_id, client_id=client["id"])


def guests(snapshot):
    return [i for i in snapshot.individuals if not i.is_main_client]


def invoices_of(session_factory, branch_id):
    with store_scope(session_factory) as store:
        return store.list("invoice", {"branch_id": branch_id})


def load_invoice(session_factory, invoice_id):
    with store_scope(session_factory) as store:
        return InvoiceService(store.session).get_invoice(invoice_id)


class TestStartSession:

    def test_registered_client(self, started, client):
        assert started.status == SessionStatus.OPEN
        assert started.client_id == client["id"]
        assert started.main_client.name == "Omar"
        assert len(started.individuals) == 1

    def test_walk_in_is_registered(self, session_service, branch_id, session_factory):
        snapshot = session_service.start_session(
            branch_id, adhoc_name=" Walk In ", adhoc_phone="0100",
        )
        assert snapshot.main_client.name == "Walk In"
        with store_scope(session_factory) as store:
            record = store.get("client", snapshot.client_id)
        assert record["phone"] == "0100"
        assert record["branch_id"] == branch_id

    def test_initial_individuals(self, session_service, branch_id, client):
        snapshot = session_service.start_session(
            branch_id,
            client_id=client["id"],
            initial_individuals_count=3,
            initial_individual_names=["Sara"],
        )
        assert [i.name for i in snapshot.individuals] == ["Omar", "Sara", "فرد 3"]

    def test_too_many_names(self, session_service, branch_id, client):
        with pytest.raises(InvalidArgumentError):
            session_service.start_session(
                branch_id,
                client_id=client["id"],
                initial_individuals_count=2,
                initial_individual_names=["A", "B"],
            )

    @pytest.mark.parametrize("with_client, adhoc_name", [(True, "Walk In"), (False, None)])
    def test_exactly_one_identity(
        self, session_service, branch_id, client, with_client, adhoc_name,
    ):
        with pytest.raises(InvalidArgumentError):
            session_service.start_session(
                branch_id,
                client_id=client["id"] if with_client else None,
                adhoc_name=adhoc_name,
            )

    def test_client_of_another_branch(self, session_service, client):
        with pytest.raises(ClientNotFoundError):
            session_service.start_session(uuid4(), client_id=client["id"])

    def test_unknown_session(self, session_service):
        with pytest.raises(SessionNotFoundError):
            session_service.get_snapshot(uuid4())


class TestRunningSession:

    def test_elapsed_time_follows_clock(self, session_service, started, clock):
        clock.advance(3661)
        assert session_service.tick(started.id).elapsed_seconds == Decimal("3661")
        clock.advance(60)
        assert session_service.get_snapshot(started.id).elapsed_seconds == Decimal("3721")

    def test_explicit_advance(self, session_service, started):
        snapshot = session_service.advance_time(started.id, 120)
        assert snapshot.elapsed_seconds == Decimal("120")

    def test_add_individual(self, session_service, started):
        assert session_service.add_individual(started.id).name == "فرد 2"

    def test_reads_wait_for_a_mutation_in_flight(self, session_service, started):
        lock = session_service._locks.setdefault(started.id, threading.Lock())
        results = []
        reader = threading.Thread(
            target=lambda: results.append(session_service.get_snapshot(started.id)),
        )
        lock.acquire()
        try:
            reader.start()
            reader.join(timeout=0.2)
            assert reader.is_alive()
        finally:
            lock.release()
        reader.join(timeout=5)
        assert not reader.is_alive()
        assert results[0].id == started.id

    def test_link_booking_reaches_exit_invoice(
        self, session_service, started, clock, session_factory,
    ):
        booking_id = uuid4()
        snapshot = session_service.link_booking(started.id, booking_id)
        assert snapshot.booking_id == booking_id
        clock.advance(600)
        commit = session_service.close_session(started.id)
        assert commit.snapshot.booking_id == booking_id
        assert load_invoice(session_factory, commit.invoice.id).booking_id == booking_id

    def test_start_with_booking(self, session_service, branch_id, client):
        booking_id = uuid4()
        snapshot = session_service.start_session(
            branch_id, client_id=client["id"], booking_id=booking_id,
        )
        assert snapshot.booking_id == booking_id
        assert session_service.add_individual(started.id, "Sara").name == "Sara"

    def test_add_items_snapshots_price_and_reserves_stock(
        self, session_service, started, make_product, product_stock, session_factory,
    ):
        tea = make_product(name="Tea", price=Decimal("15"), stock_quantity=10)
        (item,) = session_service.add_items(
            started.id, [{"product_id": tea["id"], "quantity": 2, "individual_name": "Omar"}],
        )
        assert item.unit_price == Decimal("15")
        assert item.name == "Tea"
        assert item.item_type == ItemType.PRODUCT
        assert product_stock(tea["id"]) == 8

        with store_scope(session_factory) as store:
            store.update("product", tea["id"], {"price": Decimal("20")})
        snapshot = session_service.get_snapshot(started.id)
        assert snapshot.items[0].unit_price == Decimal("15")

    def test_shortage_leaves_session_unchanged(
        self, session_service, started, make_product, product_stock,
    ):
        tea = make_product(name="Tea", stock_quantity=5)
        cake = make_product(name="Cake", stock_quantity=1)
        with pytest.raises(InsufficientStockError):
            session_service.add_items(started.id, [
                {"product_id": tea["id"], "quantity": 2},
                {"product_id": cake["id"], "quantity": 2},
            ])
        assert session_service.get_snapshot(started.id).items == ()
        assert product_stock(tea["id"]) == 5

    def test_product_of_another_branch(self, session_service, started, make_product):
        foreign = make_product(branch=uuid4())
        with pytest.raises(ProductNotFoundError):
            session_service.add_items(started.id, [{"product_id": foreign["id"], "quantity": 1}])

    def test_inactive_product(self, session_service, started, make_product):
        retired = make_product(is_active=False)
        with pytest.raises(ProductNotFoundError):
            session_service.add_items(started.id, [{"product_id": retired["id"], "quantity": 1}])

    def test_add_service(self, session_service, started):
        item = session_service.add_service(started.id, "Printing", 2, Decimal("5"))
        assert item.item_type == ItemType.SERVICE
        assert item.total_price == Decimal("10")
        assert item.product_id is None

    def test_add_service_needs_name(self, session_service, started):
        with pytest.raises(InvalidArgumentError):
            session_service.add_service(started.id, " ", 1, Decimal("5"))

    def test_concurrent_mutation_is_refused(self, session_service, started):
        lock = session_service._locks.setdefault(started.id, threading.Lock())
        lock.acquire()
        try:
            with pytest.raises(SessionBusyError):
                session_service.add_individual(started.id)
        finally:
            lock.release()
        assert session_service.add_individual(started.id).name == "فرد 2"


class TestExits:

    def test_preview_changes_nothing(
        self, session_service, started, clock, session_factory, branch_id,
    ):
        session_service.add_individual(started.id)
        session_service.add_individual(started.id)
        clock.advance(3661)
        snapshot = session_service.get_snapshot(started.id)
        ids = [g.id for g in guests(snapshot)]

        settlement = session_service.preview_exit(started.id, ids)

        assert settlement.time_cost == Decimal("140.00")
        assert settlement.total == Decimal("140.00")
        assert len(session_service.get_snapshot(started.id).individuals) == 3
        assert invoices_of(session_factory, branch_id) == []

    def test_commit_partial_exit(
        self, session_service, started, clock, session_factory, make_product,
    ):
        guest = session_service.add_individual(started.id, "Sara")
        tea = make_product(price=Decimal("15"), stock_quantity=10)
        (item,) = session_service.add_items(
            started.id, [{"product_id": tea["id"], "quantity": 3, "individual_name": "Sara"}],
        )
        clock.advance(1800)

        commit = session_service.commit_exit(started.id, [guest.id], {item.id: 2})

        assert commit.settlement.total == Decimal("70.00")
        assert [i.name for i in commit.snapshot.individuals] == ["Omar"]
        assert commit.snapshot.items[0].quantity == 1
        assert commit.invoice.invoice_number == "INV-20240101-000001"
        assert commit.invoice.total_amount == Decimal("70")

        stored = load_invoice(session_factory, commit.invoice.id)
        time_line = next(i for i in stored.items if i.item_type == ItemType.TIME_ENTRY)
        assert time_line.unit_price == Decimal("40")
        assert time_line.individual_name == "Sara"
        assert commit.to_dict()["invoice_number"] == "INV-20240101-000001"

    def test_main_client_cannot_leave_alone(
        self, session_service, started, session_factory, branch_id,
    ):
        session_service.add_individual(started.id)
        main = started.main_client
        with pytest.raises(InvalidExitError):
            session_service.commit_exit(started.id, [main.id])
        assert invoices_of(session_factory, branch_id) == []
        assert len(session_service.get_snapshot(started.id).individuals) == 2

    def test_last_individual_needs_items_settled(
        self, session_service, started, make_product, session_factory, branch_id,
    ):
        tea = make_product(stock_quantity=10)
        (item,) = session_service.add_items(started.id, [{"product_id": tea["id"], "quantity": 2}])
        main = started.main_client
        with pytest.raises(InvariantViolationError) as exc_info:
            session_service.commit_exit(started.id, [main.id], {item.id: 1})
        assert exc_info.value.invariant == KernelInvariant.SETTLED_BEFORE_CLOSE
        assert invoices_of(session_factory, branch_id) == []
        assert session_service.get_snapshot(started.id).is_open

    def test_sequential_exits_close_the_session(
        self, session_service, started, clock, session_factory, branch_id,
    ):
        guest = session_service.add_individual(started.id)
        clock.advance(3661)
        first = session_service.commit_exit(started.id, [guest.id])
        clock.advance(3639)
        second = session_service.commit_exit(
            started.id, [started.main_client.id], reasons=[ExitReason.PRICING],
        )

        assert first.settlement.time_cost == Decimal("70.00")
        # 7300 s for one person: 40 + two started extra hours at 30
        assert second.settlement.time_cost == Decimal("100.00")
        assert second.snapshot.status == SessionStatus.CLOSED
        assert second.snapshot.exit_reasons == (ExitReason.PRICING,)
        numbers = sorted(r["invoice_number"] for r in invoices_of(session_factory, branch_id))
        assert numbers == ["INV-20240101-000001", "INV-20240101-000002"]

        with pytest.raises(InvalidStateError):
            session_service.add_individual(started.id)

    def test_tax_from_branch_billing(
        self, session_factory, clock, stock_guard, pricing, branch_id, client,
    ):
        taxed = SessionService(
            session_factory,
            clock=clock,
            stock_guard=stock_guard,
            billing_resolver=lambda _branch_id: BranchBillingConfig(
                pricing=pricing, tax_rate=Decimal("0.14"),
            ),
        )
        snapshot = taxed.start_session(branch_id, client_id=client["id"])
        clock.advance(600)
        commit = taxed.commit_exit(snapshot.id, [snapshot.main_client.id])
        assert commit.invoice.amount == Decimal("40")
        assert commit.invoice.tax_amount == Decimal("5.60")


class TestCloseSession:

    def test_close_settles_everything(
        self, session_service, started, clock, make_product, session_factory,
    ):
        session_service.add_individual(started.id)
        tea = make_product(price=Decimal("15"), stock_quantity=10)
        session_service.add_items(started.id, [{"product_id": tea["id"], "quantity": 2}])
        session_service.add_service(started.id, "Printing", 1, Decimal("5"))
        clock.advance(1200)

        commit = session_service.close_session(
            started.id, reasons=["crowded", "other"], note="no seats",
        )

        assert commit.settlement.exiting_count == 2
        assert commit.settlement.time_cost == Decimal("80.00")
        assert commit.settlement.items_cost == Decimal("35.00")
        assert commit.snapshot.status == SessionStatus.CLOSED
        assert commit.snapshot.items == ()
        assert commit.snapshot.exit_note == "no seats"
        stored = load_invoice(session_factory, commit.invoice.id)
        assert stored.amount == Decimal("115")
        assert len(stored.items) == 3

    def test_other_reason_requires_note(
        self, session_service, started, session_factory, branch_id,
    ):
        with pytest.raises(InvalidArgumentError):
            session_service.close_session(started.id, reasons=["other"])
        assert session_service.get_snapshot(started.id).is_open
        assert invoices_of(session_factory, branch_id) == []

    def test_closed_session_rejects_exit(self, session_service, started):
        session_service.close_session(started.id)
        with pytest.raises(InvalidStateError):
            session_service.close_session(started.id)

    def test_closed_session_is_evicted(self, session_service, started):
        session_service.close_session(started.id)
        assert session_service.open_session_count == 0
        assert started.id not in session_service._locks
        assert started.id not in session_service._last_reading
        assert session_service.get_snapshot(started.id).status == SessionStatus.CLOSED

    def test_closed_snapshots_are_bounded(
        self, session_factory, clock, stock_guard, billing, branch_id, client,
    ):
        service = SessionService(
            session_factory,
            clock=clock,
            stock_guard=stock_guard,
            billing_resolver=lambda _branch_id: billing,
            closed_retention=1,
        )
        first = service.start_session(branch_id, client_id=client["id"])
        second = service.start_session(branch_id, client_id=client["id"])
        service.close_session(first.id)
        service.close_session(second.id)

        with pytest.raises(SessionNotFoundError):
            service.get_snapshot(first.id)
        assert service.get_snapshot(second.id).status == SessionStatus.CLOSED
        with pytest.raises(InvalidStateError):
            service.add_individual(second.id)
