"""HTTP surface for orders plus the expiry sweeper and outbox relay."""

import asyncio
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import Depends, FastAPI, Header, HTTPException

from roompay.common.config import settings
from roompay.common.db import SessionLocal
from roompay.common.logging import order_id_ctx, trace_id_ctx
from roompay.common.metrics import metrics_response
from roompay.common.outbox import OutboxRelay
from roompay.common.startup import bootstrap_service
from roompay.common.state_machine import is_terminal
from roompay.services.orders.models import Order, OutboxEvent
from roompay.services.orders.schemas import (
    AttemptRequest,
    MarkPaidRequest,
    MarkPaidResponse,
    OrderCreateRequest,
    OrderResponse,
    PendingOrder,
)
from roompay.services.orders.service import OrderNotFoundError, OrderService

service = OrderService(SessionLocal, service_name=settings.service_name, ttl_minutes=settings.order_ttl_minutes)
relay = OutboxRelay(SessionLocal, OutboxEvent, settings.service_name)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Run the expiry sweeper and outbox relay with the app lifecycle."""

    sweeper_task = asyncio.create_task(service.expiry_sweeper(settings.expiry_sweep_interval_seconds))
    relay_task = asyncio.create_task(relay.run_forever())
    yield
    sweeper_task.cancel()
    relay_task.cancel()
    await relay.close()


app = FastAPI(title="RoomPay Orders", lifespan=lifespan)
bootstrap_service(
    app,
    ["SERVICE_NAME", "POSTGRES_DSN", "KAFKA_BOOTSTRAP_SERVERS", "ORDER_TTL_MINUTES", "EXPIRY_SWEEP_INTERVAL_SECONDS"],
)


def require_api_key(x_api_key: str | None = Header(default=None), x_trace_id: str | None = Header(default=None)):
    """Reject callers without the shared API key; bind the trace id."""

    if x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="invalid API key")
    trace_id_ctx.set(x_trace_id or str(uuid4()))


def _load(order_id: str) -> Order:
    order_id_ctx.set(order_id)
    try:
        return service.get_order(order_id)
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=404, detail="order not found") from exc


def _response(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=order.order_id,
        user_id=order.user_id,
        amount=order.amount,
        description=order.description,
        status=order.status,
        expires_at=order.expires_at,
        transaction_no=order.transaction_no,
        paid_at=order.paid_at,
    )


@app.post("/orders", response_model=OrderResponse, dependencies=[Depends(require_api_key)])
def create_order(req: OrderCreateRequest):
    """Create an order in `PENDING`; its payment window starts now."""

    return _response(service.create_order(req, trace_id_ctx.get()))


@app.get("/orders/{order_id}", response_model=OrderResponse, dependencies=[Depends(require_api_key)])
def get_order(order_id: str):
    return _response(_load(order_id))


@app.post("/orders/{order_id}/cancel", response_model=OrderResponse, dependencies=[Depends(require_api_key)])
def cancel_order(order_id: str):
    """Cancel a pending order. Terminal orders answer 409."""

    _load(order_id)
    if not service.cancel_order(order_id, trace_id=trace_id_ctx.get()):
        raise HTTPException(status_code=409, detail="order is no longer pending")
    return _response(service.get_order(order_id))


@app.get("/internal/orders/{order_id}/pending", response_model=PendingOrder, dependencies=[Depends(require_api_key)])
def get_pending_order(order_id: str):
    """Pending order for the payment flow; 409 once it is terminal."""

    order = _load(order_id)
    if is_terminal(order.status):
        raise HTTPException(status_code=409, detail=f"order is {order.status}")
    return PendingOrder(
        order_id=order.order_id,
        amount=order.amount,
        description=order.description,
        expires_at=order.expires_at,
    )


@app.post(
    "/internal/orders/{order_id}/mark-paid",
    response_model=MarkPaidResponse,
    dependencies=[Depends(require_api_key)],
)
def mark_paid(order_id: str, req: MarkPaidRequest):
    """Conditional PENDING -> PAID. `transitioned` is false on a no-op."""

    order = _load(order_id)
    if order.amount != req.amount:
        raise HTTPException(status_code=422, detail="amount does not match order")
    transitioned = service.mark_paid_if_pending(
        order_id,
        transaction_no=req.transaction_no,
        bank_code=req.bank_code,
        pay_date=req.pay_date,
        trace_id=trace_id_ctx.get(),
    )
    return MarkPaidResponse(transitioned=transitioned)


@app.post("/internal/orders/{order_id}/attempts", status_code=204, dependencies=[Depends(require_api_key)])
def record_attempt(order_id: str, req: AttemptRequest):
    _load(order_id)
    service.record_attempt(order_id, req.reason, req.response_code)


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
