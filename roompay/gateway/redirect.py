"""Signed redirect URL construction for the payment gateway."""

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict

from roompay.gateway.canonical import canonicalize
from roompay.gateway.config import GatewayConfig
from roompay.gateway.errors import ValidationError
from roompay.gateway.signing import sign

API_VERSION = "2.1.0"
COMMAND_PAY = "pay"
ORDER_TYPE = "billpayment"
# Wire amount is the VND amount times 100.
AMOUNT_MULTIPLIER = 100
# The gateway reads every timestamp as Indochina Time.
GATEWAY_TZ = timezone(timedelta(hours=7), "ICT")
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
SIGNATURE_FIELD = "vnp_SecureHash"
SIGNATURE_TYPE_FIELD = "vnp_SecureHashType"


class PaymentRequest(BaseModel):
    """One checkout attempt. Built per attempt, never persisted."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    amount: int
    client_ip: str
    created_at: datetime
    description: str | None = None
    expires_at: datetime | None = None


def scale_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"amount must be an integer, got {type(amount).__name__}")
    if amount <= 0:
        raise ValidationError(f"amount must be positive, got {amount}")
    return amount * AMOUNT_MULTIPLIER


def descale_amount(wire_amount: int) -> int:
    """Inverse of `scale_amount`. Rejects values that are not whole multiples."""

    amount, remainder = divmod(wire_amount, AMOUNT_MULTIPLIER)
    if remainder:
        raise ValueError(f"wire amount {wire_amount} is not a multiple of {AMOUNT_MULTIPLIER}")
    return amount


def format_timestamp(moment: datetime) -> str:
    """`yyyyMMddHHmmss` in gateway time. Naive datetimes are taken as UTC."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(GATEWAY_TZ).strftime(TIMESTAMP_FORMAT)


def payment_params(request: PaymentRequest, config: GatewayConfig) -> dict[str, str]:
    """Business parameters for a pay command, before canonicalization."""

    if not request.order_id or not request.order_id.strip():
        raise ValidationError("order reference is required")
    if not request.client_ip:
        raise ValidationError("client ip is required")
    params = {
        "vnp_Version": API_VERSION,
        "vnp_Command": COMMAND_PAY,
        "vnp_TmnCode": config.merchant_code,
        "vnp_Locale": config.locale,
        "vnp_CurrCode": config.currency,
        "vnp_TxnRef": request.order_id,
        "vnp_OrderInfo": request.description or f"Thanh toan don hang {request.order_id}",
        "vnp_OrderType": ORDER_TYPE,
        "vnp_Amount": str(scale_amount(request.amount)),
        "vnp_ReturnUrl": config.return_url,
        "vnp_IpAddr": request.client_ip,
        "vnp_CreateDate": format_timestamp(request.created_at),
    }
    if request.expires_at is not None:
        params["vnp_ExpireDate"] = format_timestamp(request.expires_at)
    return params


def build_payment_url(request: PaymentRequest, config: GatewayConfig) -> str:
    """Full gateway URL: canonical query, then the unsigned signature field.

    Identical request and config give a byte-identical URL.
    """

    config.ensure_complete()
    canonical = canonicalize(payment_params(request, config))
    query = canonical.to_query()
    signature = sign(query, config.secret)
    return f"{config.gateway_base_url}?{query}&{SIGNATURE_FIELD}={signature}"


class PaymentGateway:
    """Entry point the order lifecycle calls to get a redirect URL."""

    def __init__(self, config: GatewayConfig) -> None:
        config.ensure_complete()
        self.config = config

    def build_payment_url(
        self,
        order_id: str,
        amount: int,
        client_ip: str,
        description: str | None = None,
        now: datetime | None = None,
        expires_at: datetime | None = None,
    ) -> str:
        scale_amount(amount)
        request = PaymentRequest(
            order_id="" if order_id is None else str(order_id),
            amount=amount,
            client_ip=client_ip or "",
            description=description,
            created_at=now or datetime.now(timezone.utc),
            expires_at=expires_at,
        )
        return build_payment_url(request, self.config)
