"""Concurrent callers on one order, each with its own session."""
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from orderflow.models import Base, EscrowEvent, Order, OrderEvent, OrderStatus
from orderflow.schemas.order import OrderCreate
from orderflow.services import deliveries as delivery_service
from orderflow.services import locks
from orderflow.services import orders as order_service
from orderflow.utils.errors import OrderflowError, PinAttemptsExhausted, PinMismatch

WORKERS = 8


@pytest.fixture
def file_sessions(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        future=True,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    yield factory
    engine.dispose()


def _order_in_delivery(factory, buyer, supplier, subtotal="250.00"):
    with factory() as db:
        payload = OrderCreate(buyer_id=buyer.id, supplier_id=supplier.id, subtotal=Decimal(subtotal))
        order = order_service.create_order(db, payload, actor=buyer)
        order_service.accept_order(db, order.id, actor=supplier)
        order_service.start_delivery(db, order.id, actor=supplier)
        return order.id, order.delivery.pin


def _run(factory, fn, count=WORKERS):
    def _call(index):
        with factory() as db:
            try:
                fn(db, index)
                return "ok"
            except OrderflowError as exc:
                return exc.code

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(_call, range(count)))


def test_concurrent_correct_pins_release_once(file_sessions, buyer, supplier):
    order_id, pin = _order_in_delivery(file_sessions, buyer, supplier)

    results = _run(file_sessions, lambda db, _: delivery_service.verify_pin(db, order_id, pin, actor=supplier))

    assert results == ["ok"] * WORKERS
    assert locks.active_lock_count() == 0
    with file_sessions() as db:
        order = db.get(Order, order_id)
        assert order.status == OrderStatus.COMPLETED
        kinds = list(db.scalars(select(EscrowEvent.kind).where(EscrowEvent.escrow_id == order.escrow.id)))
        assert kinds == ["CAPTURED", "RELEASED"]
        completed = list(
            db.scalars(
                select(OrderEvent).where(
                    OrderEvent.order_id == order_id, OrderEvent.new_status == OrderStatus.COMPLETED
                )
            )
        )
        assert len(completed) == 1


def test_concurrent_wrong_pins_never_exceed_the_limit(file_sessions, buyer, supplier):
    order_id, pin = _order_in_delivery(file_sessions, buyer, supplier)
    wrong = "0000" if pin != "0000" else "1111"

    results = _run(file_sessions, lambda db, _: delivery_service.verify_pin(db, order_id, wrong, actor=supplier))

    assert results.count(PinMismatch.code) == 2
    assert results.count(PinAttemptsExhausted.code) == WORKERS - 2
    with file_sessions() as db:
        order = db.get(Order, order_id)
        assert order.delivery.pin_attempts == 3
        assert order.status == OrderStatus.IN_DELIVERY


def test_confirm_and_dispute_race_has_one_winner(file_sessions, buyer, supplier):
    with file_sessions() as db:
        payload = OrderCreate(buyer_id=buyer.id, supplier_id=supplier.id, subtotal=Decimal("80.00"))
        order = order_service.create_order(db, payload, actor=buyer)
        order_service.accept_order(db, order.id, actor=supplier)
        order_service.start_delivery(db, order.id, actor=supplier)
        delivery_service.submit_photo(db, order.id, "https://cdn.example.com/z.jpg", actor=supplier)
        order_id = order.id

    def _either(db, index):
        if index % 2:
            delivery_service.confirm_receipt(db, order_id, actor=buyer)
        else:
            delivery_service.report_issue(db, order_id, "Wrong grade of sand delivered", actor=buyer)

    _run(file_sessions, _either)

    with file_sessions() as db:
        order = db.get(Order, order_id)
        assert order.status in (OrderStatus.COMPLETED, OrderStatus.DISPUTED)
        escrow = order.escrow
        if order.status == OrderStatus.COMPLETED:
            assert order.disputes == []
            assert escrow.released_at is not None
        else:
            assert len(order.disputes) == 1
            assert escrow.released_at is None and escrow.refunded_at is None


def test_order_locks_are_dropped_once_released(lifecycle):
    for _ in range(50):
        lifecycle.confirmed("60.00")
    assert locks.active_lock_count() == 0


def test_reentrant_order_lock_stays_registered_until_outermost_exit(lifecycle, db_session):
    order = lifecycle.pending()
    with locks.locked_order(db_session, order.id):
        with locks.locked_order(db_session, order.id):
            assert locks.active_lock_count() == 1
        assert locks.active_lock_count() == 1
    assert locks.active_lock_count() == 0


def test_failed_operation_releases_its_order_lock(lifecycle, db_session, buyer):
    order = lifecycle.confirmed()
    with pytest.raises(OrderflowError):
        order_service.cancel_order(db_session, order.id, "Changed plans", actor=buyer)
    assert locks.active_lock_count() == 0
