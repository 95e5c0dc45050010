"""Order lifecycle logic.

Owns order state and the pending window. Every move out of `PENDING` is a
conditional update guarded by status (and, for the sweep, by state version),
so a payment confirmation racing the expiry sweep or a user cancel ends with
exactly one winner; the losers observe zero updated rows and report a no-op.
"""

import asyncio
from datetime import datetime, timedelta
from time import perf_counter

from sqlalchemy import select, update

from roompay.common.db import as_utc, utcnow
from roompay.common.events import order_event
from roompay.common.logging import logger, trace_id_ctx
from roompay.common.metrics import (
    expiry_sweep_seconds,
    order_transition_conflicts_total,
    order_transitions_total,
)
from roompay.common.state_machine import CANCELLED, EXPIRED, PAID, PENDING, validate_transition
from roompay.services.orders.models import Order, OrderTimeline, OutboxEvent, PaymentAttempt


class OrderNotFoundError(LookupError):
    """No order with the requested id."""


def is_overdue(order, now: datetime | None = None) -> bool:
    return as_utc(order.expires_at) <= (now or utcnow())


class OrderService:
    """Creates orders and applies their single pending-to-terminal transition."""

    def __init__(
        self,
        session_factory,
        service_name: str = "orders",
        ttl_minutes: int = 15,
        clock=utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.service_name = service_name
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock

    def create_order(self, req, trace_id: str | None = None) -> Order:
        """Insert a `PENDING` order whose payment window starts now."""

        now = self.clock()
        with self.session_factory() as db:
            order = Order(
                user_id=req.user_id,
                amount=req.amount,
                description=req.description,
                status=PENDING,
                state_version=0,
                expires_at=now + self.ttl,
            )
            db.add(order)
            db.flush()
            db.add(OrderTimeline(order_id=order.order_id, from_state=None, to_state=PENDING, reason="order_created"))
            self._enqueue(db, "orders.created", order.order_id, trace_id, amount=order.amount, user_id=order.user_id)
            db.commit()
            logger.info("order created order_id=%s amount=%s expires_at=%s", order.order_id, order.amount, order.expires_at)
            return order

    def get_order(self, order_id: str) -> Order:
        with self.session_factory() as db:
            order = db.get(Order, order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            return order

    def get_pending_order(self, order_id: str) -> Order | None:
        """The order if it is still `PENDING`, else None. Unknown ids raise."""

        order = self.get_order(order_id)
        return order if order.status == PENDING else None

    def mark_paid_if_pending(
        self,
        order_id: str,
        transaction_no: str | None = None,
        bank_code: str | None = None,
        pay_date: str | None = None,
        trace_id: str | None = None,
    ) -> bool:
        """Move the order to `PAID` if nobody else has finished it first.

        Returns False when the order was already terminal (paid, cancelled or
        expired); that includes losing a race with a concurrent writer.
        """

        now = self.clock()
        with self.session_factory() as db:
            applied = self._transition(
                db,
                order_id,
                PAID,
                reason="gateway_confirmed",
                trace_id=trace_id,
                values={
                    "transaction_no": transaction_no,
                    "bank_code": bank_code,
                    "pay_date": pay_date,
                    "paid_at": now,
                },
                event_fields={"transaction_no": transaction_no, "bank_code": bank_code},
            )
            if not applied:
                db.rollback()
                self._require_exists(db, order_id)
                return False
            db.commit()
        logger.info("order paid order_id=%s transaction_no=%s", order_id, transaction_no)
        return True

    def cancel_order(self, order_id: str, reason: str = "cancelled_by_user", trace_id: str | None = None) -> bool:
        with self.session_factory() as db:
            applied = self._transition(db, order_id, CANCELLED, reason=reason, trace_id=trace_id)
            if not applied:
                db.rollback()
                self._require_exists(db, order_id)
                return False
            db.commit()
        logger.info("order cancelled order_id=%s reason=%s", order_id, reason)
        return True

    def record_attempt(self, order_id: str, reason: str, response_code: str | None = None) -> None:
        """Keep a record of a callback that did not pay the order."""

        with self.session_factory() as db:
            db.add(PaymentAttempt(order_id=order_id, reason=reason, response_code=response_code))
            db.commit()
        logger.warning("payment attempt recorded order_id=%s reason=%s code=%s", order_id, reason, response_code)

    def expire_overdue(self, now: datetime | None = None, limit: int = 500) -> int:
        """Expire pending orders whose window has closed. Returns how many."""

        now = now or self.clock()
        start = perf_counter()
        expired = 0
        with self.session_factory() as db:
            candidates = db.execute(
                select(Order.order_id, Order.state_version)
                .where(Order.status == PENDING, Order.expires_at <= now)
                .order_by(Order.expires_at)
                .limit(limit)
            ).all()
            for order_id, version in candidates:
                if self._transition(db, order_id, EXPIRED, reason="payment_window_elapsed", expected_version=version):
                    expired += 1
            db.commit()
        expiry_sweep_seconds.labels(service=self.service_name).observe(perf_counter() - start)
        if expired:
            logger.info("expiry sweep expired=%s candidates=%s", expired, len(candidates))
        return expired

    async def expiry_sweeper(self, interval_seconds: float) -> None:
        """Run `expire_overdue` periodically until cancelled."""

        while True:
            try:
                await asyncio.to_thread(self.expire_overdue)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("expiry sweep failed: %s", exc)
            await asyncio.sleep(interval_seconds)

    def _require_exists(self, db, order_id: str) -> None:
        if db.get(Order, order_id) is None:
            raise OrderNotFoundError(order_id)

    def _enqueue(self, db, event_type: str, order_id: str, trace_id: str | None, **payload) -> None:
        db.add(
            OutboxEvent(
                aggregate_type="order",
                aggregate_id=order_id,
                event_type=event_type,
                topic=event_type,
                payload=order_event(event_type, order_id, trace_id or trace_id_ctx.get(), **payload),
            )
        )

    def _transition(
        self,
        db,
        order_id: str,
        new_status: str,
        reason: str,
        trace_id: str | None = None,
        expected_version: int | None = None,
        values: dict | None = None,
        event_fields: dict | None = None,
    ) -> bool:
        """Conditionally move a `PENDING` order to `new_status`.

        The single UPDATE is the guard: it only matches while the row is still
        `PENDING` (and at `expected_version` when given). Zero matched rows
        means another writer got there first.
        """

        validate_transition(PENDING, new_status)
        stmt = update(Order).where(Order.order_id == order_id, Order.status == PENDING)
        if expected_version is not None:
            stmt = stmt.where(Order.state_version == expected_version)
        result = db.execute(
            stmt.values(
                status=new_status,
                state_version=Order.state_version + 1,
                updated_at=self.clock(),
                **(values or {}),
            ).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            order_transition_conflicts_total.labels(service=self.service_name, to_state=new_status).inc()
            return False

        db.add(OrderTimeline(order_id=order_id, from_state=PENDING, to_state=new_status, reason=reason))
        self._enqueue(db, f"orders.{new_status.lower()}", order_id, trace_id, reason=reason, **(event_fields or {}))
        order_transitions_total.labels(service=self.service_name, to_state=new_status).inc()
        return True
