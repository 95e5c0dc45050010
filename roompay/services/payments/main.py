"""Payments service: checkout URLs, browser return and gateway IPN.

Refuses to start without complete gateway configuration.
"""

from uuid import uuid4

from fastapi import FastAPI, Header, HTTPException, Request

from roompay.common.config import settings
from roompay.common.logging import logger, trace_id_ctx
from roompay.common.metrics import metrics_response
from roompay.common.startup import bootstrap_service
from roompay.gateway.config import GatewayConfig
from roompay.gateway.errors import (
    AuthenticationError,
    ConfigurationError,
    MalformedPayloadError,
    StoreUnavailableError,
    ValidationError,
)
from roompay.gateway.redirect import PaymentGateway
from roompay.services.orders.service import OrderNotFoundError
from roompay.services.payments.schemas import (
    IPN_BY_OUTCOME,
    IPN_INVALID_SIGNATURE,
    IPN_UNKNOWN_ERROR,
    IpnResponse,
    PaymentReturnResponse,
    PaymentUrlRequest,
    PaymentUrlResponse,
)
from roompay.services.payments.service import PaymentService
from roompay.services.payments.store import HttpOrderStore

app = FastAPI(title="RoomPay Payments")
bootstrap_service(
    app,
    ["SERVICE_NAME", "ORDERS_URL", "MERCHANT_CODE", "SECRET_KEY", "GATEWAY_BASE_URL", "RETURN_URL"],
)
service = PaymentService(
    PaymentGateway(GatewayConfig.from_settings(settings)),
    HttpOrderStore(settings.orders_url, settings.api_key, timeout=settings.order_store_timeout_seconds),
    timeout_seconds=settings.order_store_timeout_seconds,
    service_name=settings.service_name,
)


def client_ip(request: Request) -> str:
    """First hop from X-Forwarded-For, else the socket peer."""

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "127.0.0.1"


@app.post("/payments/vnpay/create-payment-url", response_model=PaymentUrlResponse)
async def create_payment_url(
    req: PaymentUrlRequest,
    request: Request,
    x_api_key: str | None = Header(default=None),
    x_trace_id: str | None = Header(default=None),
):
    """Signed gateway URL for a pending order."""

    if x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="invalid API key")
    trace_id_ctx.set(x_trace_id or str(uuid4()))
    try:
        url = await service.create_payment_url(req.order_id, client_ip(request))
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=404, detail="order not found") from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        logger.error("checkout refused, order store unavailable: %s", exc)
        raise HTTPException(status_code=503, detail="order store unavailable") from exc
    except ConfigurationError as exc:
        logger.error("checkout refused, gateway misconfigured: %s", exc)
        raise HTTPException(status_code=500, detail="payment gateway misconfigured") from exc
    return PaymentUrlResponse(order_id=req.order_id, payment_url=url)


@app.get("/payments/vnpay/return", response_model=PaymentReturnResponse)
async def payment_return(request: Request):
    """Browser redirect back from the gateway. Reconciles like the IPN does."""

    trace_id_ctx.set(str(uuid4()))
    try:
        handling = await service.handle_callback(dict(request.query_params), channel="return")
    except AuthenticationError as exc:
        raise HTTPException(status_code=400, detail="invalid signature") from exc
    except MalformedPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail="order store unavailable") from exc
    result = handling.result
    return PaymentReturnResponse(
        order_id=result.order_id,
        outcome=handling.outcome,
        succeeded=result.succeeded,
        amount=result.amount,
        response_code=result.response_code,
        message=result.message,
        transaction_no=result.transaction_no,
    )


@app.get("/payments/vnpay/ipn", response_model=IpnResponse)
async def payment_ipn(request: Request):
    """Server-to-server notification. Always answers 200 with an IPN code."""

    trace_id_ctx.set(str(uuid4()))
    try:
        handling = await service.handle_callback(dict(request.query_params), channel="ipn")
    except AuthenticationError:
        return IPN_INVALID_SIGNATURE
    except (MalformedPayloadError, StoreUnavailableError) as exc:
        logger.error("ipn not processed: %s", exc)
        return IPN_UNKNOWN_ERROR
    return IPN_BY_OUTCOME[handling.outcome]


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
