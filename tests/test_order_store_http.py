"""HTTP order store: status mapping from the orders service's internal API."""

import asyncio
import json

import httpx
import pytest

from roompay.gateway.callback import CallbackResult
from roompay.gateway.errors import StoreUnavailableError
from roompay.services.orders.service import OrderNotFoundError
from roompay.services.payments.store import HttpOrderStore

RESULT = CallbackResult(
    order_id="ORDER1",
    amount=150000,
    response_code="00",
    transaction_no="14123456",
    bank_code="NCB",
    pay_date="20261019101500",
    succeeded=True,
)


def _store(handler) -> HttpOrderStore:
    return HttpOrderStore("http://orders.test/", "test-api-key", transport=httpx.MockTransport(handler))


def test_pending_order_is_returned():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["api_key"] = request.headers["x-api-key"]
        return httpx.Response(
            200,
            json={"order_id": "ORDER1", "amount": 150000, "description": None, "expires_at": "2026-10-19T03:15:00Z"},
        )

    order = asyncio.run(_store(handler).get_pending_order("ORDER1"))

    assert order.amount == 150000
    assert seen == {"path": "/internal/orders/ORDER1/pending", "api_key": "test-api-key"}


def test_terminal_order_is_none():
    store = _store(lambda request: httpx.Response(409, json={"detail": "order is PAID"}))

    assert asyncio.run(store.get_pending_order("ORDER1")) is None


def test_unknown_order_raises_not_found():
    store = _store(lambda request: httpx.Response(404, json={"detail": "order not found"}))

    with pytest.raises(OrderNotFoundError):
        asyncio.run(store.get_pending_order("ORDER1"))


def test_server_error_is_store_unavailable():
    store = _store(lambda request: httpx.Response(503, text="down"))

    with pytest.raises(StoreUnavailableError):
        asyncio.run(store.mark_paid_if_pending("ORDER1", RESULT))


def test_connection_failure_is_store_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(StoreUnavailableError):
        asyncio.run(_store(handler).get_pending_order("ORDER1"))


def test_mark_paid_sends_the_callback_facts():
    sent = {}

    def handler(request: httpx.Request) -> httpx.Response:
        sent.update(json.loads(request.content))
        return httpx.Response(200, json={"transitioned": False})

    assert asyncio.run(_store(handler).mark_paid_if_pending("ORDER1", RESULT)) is False
    assert sent == {"amount": 150000, "transaction_no": "14123456", "bank_code": "NCB", "pay_date": "20261019101500"}


def test_verification_failure_is_reported():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.url.path, json.loads(request.content)))
        return httpx.Response(204)

    asyncio.run(_store(handler).report_verification_failure("ORDER1", "declined", "24"))

    assert calls == [("/internal/orders/ORDER1/attempts", {"reason": "declined", "response_code": "24"})]


@pytest.mark.parametrize("status", [401, 403, 422])
def test_unexpected_client_errors_are_store_unavailable(status):
    store = _store(lambda request: httpx.Response(status, json={"detail": "rejected"}))

    with pytest.raises(StoreUnavailableError):
        asyncio.run(store.get_pending_order("ORDER1"))


def test_rejected_mark_paid_is_store_unavailable():
    store = _store(lambda request: httpx.Response(422, json={"detail": "amount does not match order"}))

    with pytest.raises(StoreUnavailableError):
        asyncio.run(store.mark_paid_if_pending("ORDER1", RESULT))


def test_conflict_only_means_terminal_for_the_pending_lookup():
    store = _store(lambda request: httpx.Response(409, json={"detail": "conflict"}))

    with pytest.raises(StoreUnavailableError):
        asyncio.run(store.report_verification_failure("ORDER1", "declined", "24"))


def test_unreadable_body_is_store_unavailable():
    store = _store(lambda request: httpx.Response(200, text="<html>proxy error</html>"))

    with pytest.raises(StoreUnavailableError):
        asyncio.run(store.get_pending_order("ORDER1"))


def test_order_id_is_escaped_in_the_path():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.raw_path)
        return httpx.Response(409, json={"detail": "order is PAID"})

    assert asyncio.run(_store(handler).get_pending_order("../admin?x=1")) is None
    assert seen == [b"/internal/orders/..%2Fadmin%3Fx%3D1/pending"]
