"""Order lifecycle: creation, guarded transitions, expiry sweep and races."""

import threading
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from roompay.common.db import as_utc
from roompay.common.state_machine import CANCELLED, EXPIRED, PAID, PENDING
from roompay.services.orders.models import Order, OrderTimeline, OutboxEvent, PaymentAttempt
from roompay.services.orders.service import OrderNotFoundError, OrderService, is_overdue


def _new_order(service: OrderService, amount: int = 150000):
    return service.create_order(SimpleNamespace(user_id="landlord-7", amount=amount, description="Gói VIP"))


def _timeline(session_factory, order_id: str) -> list[tuple[str | None, str]]:
    with session_factory() as db:
        rows = db.execute(
            select(OrderTimeline.from_state, OrderTimeline.to_state).where(OrderTimeline.order_id == order_id)
        ).all()
    return [tuple(row) for row in rows]


def _events(session_factory, order_id: str) -> list[str]:
    with session_factory() as db:
        return list(
            db.execute(select(OutboxEvent.event_type).where(OutboxEvent.aggregate_id == order_id)).scalars()
        )


def test_create_order_opens_a_payment_window(order_service, session_factory, clock):
    order = _new_order(order_service)

    stored = order_service.get_order(order.order_id)
    assert stored.status == PENDING
    assert stored.state_version == 0
    assert as_utc(stored.expires_at) == clock.now.replace(minute=15)
    assert _timeline(session_factory, order.order_id) == [(None, PENDING)]
    assert _events(session_factory, order.order_id) == ["orders.created"]


def test_get_pending_order(order_service):
    order = _new_order(order_service)

    assert order_service.get_pending_order(order.order_id).order_id == order.order_id
    order_service.cancel_order(order.order_id)
    assert order_service.get_pending_order(order.order_id) is None
    with pytest.raises(OrderNotFoundError):
        order_service.get_pending_order("missing")


def test_mark_paid_applies_once(order_service, session_factory):
    order = _new_order(order_service)

    assert order_service.mark_paid_if_pending(order.order_id, transaction_no="14123456", bank_code="NCB")
    assert not order_service.mark_paid_if_pending(order.order_id, transaction_no="99999999")

    stored = order_service.get_order(order.order_id)
    assert stored.status == PAID
    assert stored.transaction_no == "14123456"
    assert stored.paid_at is not None
    assert stored.state_version == 1
    assert _timeline(session_factory, order.order_id) == [(None, PENDING), (PENDING, PAID)]
    assert sorted(_events(session_factory, order.order_id)) == ["orders.created", "orders.paid"]


def test_mark_paid_unknown_order_raises(order_service):
    with pytest.raises(OrderNotFoundError):
        order_service.mark_paid_if_pending("missing")


def test_concurrent_mark_paid_has_exactly_one_winner(order_service, session_factory):
    order = _new_order(order_service)
    barrier = threading.Barrier(2)
    outcomes: list[bool] = []
    lock = threading.Lock()

    def confirm(transaction_no: str) -> None:
        barrier.wait()
        applied = order_service.mark_paid_if_pending(order.order_id, transaction_no=transaction_no)
        with lock:
            outcomes.append(applied)

    threads = [threading.Thread(target=confirm, args=(f"TX{i}",)) for i in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == [False, True]
    assert _events(session_factory, order.order_id).count("orders.paid") == 1
    assert [to for _, to in _timeline(session_factory, order.order_id)].count(PAID) == 1


def test_cancel_is_terminal(order_service):
    order = _new_order(order_service)

    assert order_service.cancel_order(order.order_id)
    assert not order_service.cancel_order(order.order_id)
    assert not order_service.mark_paid_if_pending(order.order_id)
    assert order_service.get_order(order.order_id).status == CANCELLED


def test_expiry_sweep_only_touches_overdue_pending_orders(order_service, clock):
    early = _new_order(order_service)
    clock.advance(minutes=10)
    late = _new_order(order_service)
    paid = _new_order(order_service)
    order_service.mark_paid_if_pending(paid.order_id)

    clock.advance(minutes=6)
    assert order_service.expire_overdue() == 1
    assert order_service.get_order(early.order_id).status == EXPIRED
    assert order_service.get_order(late.order_id).status == PENDING
    assert order_service.get_order(paid.order_id).status == PAID
    assert order_service.expire_overdue() == 0

    clock.advance(minutes=10)
    assert order_service.expire_overdue() == 1
    assert order_service.get_order(late.order_id).status == EXPIRED


def test_payment_after_expiry_is_a_no_op(order_service, clock):
    order = _new_order(order_service)
    clock.advance(minutes=16)
    order_service.expire_overdue()

    assert not order_service.mark_paid_if_pending(order.order_id, transaction_no="14123456")
    assert order_service.get_order(order.order_id).status == EXPIRED


def test_expiry_after_payment_is_a_no_op(order_service, clock):
    order = _new_order(order_service)
    order_service.mark_paid_if_pending(order.order_id)
    clock.advance(hours=1)

    assert order_service.expire_overdue() == 0
    assert order_service.get_order(order.order_id).status == PAID


def test_is_overdue_uses_the_window(order_service, clock):
    order = _new_order(order_service)

    assert not is_overdue(order, clock.now)
    clock.advance(minutes=15)
    assert is_overdue(order, clock.now)


def test_record_attempt(order_service, session_factory):
    order = _new_order(order_service)
    order_service.record_attempt(order.order_id, "declined", "24")

    with session_factory() as db:
        attempts = db.execute(select(PaymentAttempt).where(PaymentAttempt.order_id == order.order_id)).scalars().all()
    assert [(a.reason, a.response_code) for a in attempts] == [("declined", "24")]
    assert order_service.get_order(order.order_id).status == PENDING


def test_order_ids_are_unique(order_service, session_factory):
    ids = {_new_order(order_service).order_id for _ in range(5)}

    assert len(ids) == 5
    with session_factory() as db:
        assert len(db.execute(select(Order.order_id)).all()) == 5
