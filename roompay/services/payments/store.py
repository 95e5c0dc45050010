"""Order store adapters used by the payment flow.

The flow only needs three calls on the order lifecycle. `LocalOrderStore`
runs them in-process against `OrderService`; `HttpOrderStore` talks to the
orders service's internal API.
"""

import asyncio
from typing import Protocol
from urllib.parse import quote

import httpx

from roompay.common.logging import trace_id_ctx
from roompay.gateway.callback import CallbackResult
from roompay.gateway.errors import StoreUnavailableError
from roompay.services.orders.schemas import MarkPaidResponse, PendingOrder
from roompay.services.orders.service import OrderNotFoundError, OrderService


class OrderStore(Protocol):
    async def get_pending_order(self, order_id: str) -> PendingOrder | None:
        """Pending order, None when already terminal, `OrderNotFoundError` when unknown."""

    async def mark_paid_if_pending(self, order_id: str, result: CallbackResult) -> bool:
        """True if this call moved the order to paid, False on a no-op."""

    async def report_verification_failure(self, order_id: str, reason: str, response_code: str | None) -> None:
        ...


class LocalOrderStore:
    """Runs `OrderService` calls on a worker thread."""

    def __init__(self, orders: OrderService) -> None:
        self.orders = orders

    async def get_pending_order(self, order_id: str) -> PendingOrder | None:
        order = await asyncio.to_thread(self.orders.get_pending_order, order_id)
        if order is None:
            return None
        return PendingOrder(
            order_id=order.order_id,
            amount=order.amount,
            description=order.description,
            expires_at=order.expires_at,
        )

    async def mark_paid_if_pending(self, order_id: str, result: CallbackResult) -> bool:
        return await asyncio.to_thread(
            self.orders.mark_paid_if_pending,
            order_id,
            transaction_no=result.transaction_no,
            bank_code=result.bank_code,
            pay_date=result.pay_date,
            trace_id=trace_id_ctx.get(),
        )

    async def report_verification_failure(self, order_id: str, reason: str, response_code: str | None) -> None:
        await asyncio.to_thread(self.orders.record_attempt, order_id, reason, response_code)


class HttpOrderStore:
    """Client for the orders service `/internal/orders` endpoints."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 5.0, transport=None) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={"x-api-key": self.api_key, "x-trace-id": trace_id_ctx.get()},
        )

    async def _send(
        self, method: str, order_id: str, action: str, allow: tuple[int, ...] = (), **kwargs
    ) -> httpx.Response:
        path = f"/internal/orders/{quote(order_id, safe='')}/{action}"
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise StoreUnavailableError(f"orders service unreachable: {exc}") from exc
        if resp.status_code == 404:
            raise OrderNotFoundError(order_id)
        if not resp.is_success and resp.status_code not in allow:
            raise StoreUnavailableError(f"orders service answered {resp.status_code} to {action}: {resp.text}")
        return resp

    async def get_pending_order(self, order_id: str) -> PendingOrder | None:
        resp = await self._send("GET", order_id, "pending", allow=(409,))
        if resp.status_code == 409:
            return None
        return _decode(resp, PendingOrder)

    async def mark_paid_if_pending(self, order_id: str, result: CallbackResult) -> bool:
        resp = await self._send(
            "POST",
            order_id,
            "mark-paid",
            json={
                "amount": result.amount,
                "transaction_no": result.transaction_no,
                "bank_code": result.bank_code,
                "pay_date": result.pay_date,
            },
        )
        return _decode(resp, MarkPaidResponse).transitioned

    async def report_verification_failure(self, order_id: str, reason: str, response_code: str | None) -> None:
        await self._send("POST", order_id, "attempts", json={"reason": reason, "response_code": response_code})


def _decode(resp: httpx.Response, model):
    try:
        return model.model_validate(resp.json())
    except ValueError as exc:
        raise StoreUnavailableError(f"orders service sent an unreadable body: {exc}") from exc
