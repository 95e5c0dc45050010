"""Payment flow: hand out signed checkout URLs and reconcile gateway callbacks.

Every order-store call is bounded by a timeout. Checkout fails closed when the
store cannot confirm a pending order. Callbacks are authenticated before the
store is touched, so forged or corrupted callbacks are logged even while the
store is down.
"""

import asyncio
from datetime import datetime
from enum import Enum
from time import perf_counter

from pydantic import BaseModel

from roompay.common.db import as_utc, utcnow
from roompay.common.logging import logger, order_id_ctx
from roompay.common.metrics import (
    callbacks_total,
    checkout_rejected_total,
    payment_urls_built_total,
    store_call_seconds,
)
from roompay.gateway.callback import CallbackResult, verify_and_parse
from roompay.gateway.errors import (
    AuthenticationError,
    MalformedPayloadError,
    StoreUnavailableError,
    ValidationError,
)
from roompay.gateway.redirect import PaymentGateway
from roompay.services.orders.service import OrderNotFoundError, is_overdue
from roompay.services.payments.store import OrderStore


class OrderNotPayableError(ValidationError):
    """Order exists but is terminal or past its payment window."""


class CallbackOutcome(str, Enum):
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    ALREADY_PROCESSED = "already_processed"
    ORDER_NOT_FOUND = "order_not_found"
    AMOUNT_MISMATCH = "amount_mismatch"


class CallbackHandling(BaseModel):
    outcome: CallbackOutcome
    result: CallbackResult


class PaymentService:
    """Glue between the gateway protocol and the order lifecycle."""

    def __init__(
        self,
        gateway: PaymentGateway,
        store: OrderStore,
        timeout_seconds: float = 5.0,
        service_name: str = "payments",
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.timeout_seconds = timeout_seconds
        self.service_name = service_name

    async def _store_call(self, operation: str, awaitable):
        start = perf_counter()
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except (TimeoutError, asyncio.TimeoutError) as exc:
            raise StoreUnavailableError(f"order store {operation} timed out after {self.timeout_seconds}s") from exc
        finally:
            store_call_seconds.labels(service=self.service_name, operation=operation).observe(perf_counter() - start)

    async def create_payment_url(self, order_id: str, client_ip: str, now: datetime | None = None) -> str:
        """Signed redirect URL for a pending order, amount taken from the order."""

        order_id_ctx.set(order_id)
        now = now or utcnow()
        order = await self._store_call("get_pending_order", self.store.get_pending_order(order_id))
        if order is None:
            checkout_rejected_total.labels(service=self.service_name, reason="not_pending").inc()
            raise OrderNotPayableError(f"order {order_id} is not awaiting payment")
        if is_overdue(order, as_utc(now)):
            checkout_rejected_total.labels(service=self.service_name, reason="window_closed").inc()
            raise OrderNotPayableError(f"payment window for order {order_id} has closed")

        url = self.gateway.build_payment_url(
            order.order_id,
            order.amount,
            client_ip,
            description=order.description,
            now=now,
            expires_at=order.expires_at,
        )
        payment_urls_built_total.labels(service=self.service_name).inc()
        logger.info("payment url built order_id=%s amount=%s", order.order_id, order.amount)
        return url

    async def handle_callback(self, raw_params, channel: str = "ipn") -> CallbackHandling:
        """Authenticate a callback, then reconcile it with its order exactly once."""

        try:
            result = verify_and_parse(raw_params, self.gateway.config)
        except AuthenticationError:
            callbacks_total.labels(service=self.service_name, channel=channel, outcome="rejected").inc()
            raise
        except MalformedPayloadError as exc:
            callbacks_total.labels(service=self.service_name, channel=channel, outcome="malformed").inc()
            logger.error("authentic callback is malformed: %s", exc)
            raise

        order_id_ctx.set(result.order_id)
        outcome = await self._reconcile(result)
        callbacks_total.labels(service=self.service_name, channel=channel, outcome=outcome.value).inc()
        logger.info(
            "callback handled channel=%s outcome=%s response_code=%s transaction_no=%s",
            channel,
            outcome.value,
            result.response_code,
            result.transaction_no,
        )
        return CallbackHandling(outcome=outcome, result=result)

    async def _reconcile(self, result: CallbackResult) -> CallbackOutcome:
        try:
            order = await self._store_call("get_pending_order", self.store.get_pending_order(result.order_id))
        except OrderNotFoundError:
            logger.warning("callback for unknown order order_id=%s", result.order_id)
            return CallbackOutcome.ORDER_NOT_FOUND
        if order is None:
            return CallbackOutcome.ALREADY_PROCESSED

        if order.amount != result.amount:
            logger.error(
                "callback amount mismatch order_id=%s expected=%s received=%s",
                result.order_id,
                order.amount,
                result.amount,
            )
            await self._store_call(
                "report_verification_failure",
                self.store.report_verification_failure(result.order_id, "amount_mismatch", result.response_code),
            )
            return CallbackOutcome.AMOUNT_MISMATCH

        if not result.succeeded:
            await self._store_call(
                "report_verification_failure",
                self.store.report_verification_failure(result.order_id, "declined", result.response_code),
            )
            return CallbackOutcome.DECLINED

        paid = await self._store_call("mark_paid_if_pending", self.store.mark_paid_if_pending(result.order_id, result))
        if not paid:
            # Authentic success for an order another writer finished first
            # (expiry sweep, cancel, or a duplicate callback).
            logger.error(
                "paid callback lost to a concurrent transition order_id=%s transaction_no=%s",
                result.order_id,
                result.transaction_no,
            )
            return CallbackOutcome.ALREADY_PROCESSED
        return CallbackOutcome.CONFIRMED
