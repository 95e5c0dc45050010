"""Authentication and parsing of gateway callbacks (return URL and IPN).

The signature is checked before any field is interpreted. The outcomes are:

* `AuthenticationError`: signature missing or wrong, payload untrusted.
* `MalformedPayloadError`: authentic but missing contract fields.
* `CallbackResult` with `succeeded` true or false. A declined payment is
  a normal result, not an error.
"""

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict

from roompay.common.logging import logger
from roompay.gateway.canonical import canonicalize
from roompay.gateway.config import GatewayConfig
from roompay.gateway.errors import AuthenticationError, MalformedPayloadError, ValidationError
from roompay.gateway.redirect import SIGNATURE_FIELD, SIGNATURE_TYPE_FIELD, descale_amount
from roompay.gateway.signing import verify

SUCCESS_CODE = "00"
REQUIRED_FIELDS = ("vnp_TxnRef", "vnp_Amount", "vnp_ResponseCode")

RESPONSE_MESSAGES = {
    "00": "Transaction successful",
    "07": "Amount debited but the transaction is flagged as suspicious",
    "09": "Card or account is not registered for internet banking",
    "10": "Card or account authentication failed more than 3 times",
    "11": "Payment window expired",
    "12": "Card or account is locked",
    "13": "Wrong one-time password",
    "24": "Customer cancelled the transaction",
    "51": "Insufficient balance",
    "65": "Daily transaction limit exceeded",
    "75": "Issuing bank under maintenance",
    "79": "Too many wrong payment passwords",
    "99": "Unknown gateway error",
}


class CallbackResult(BaseModel):
    """Normalized view of an authenticated callback."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    amount: int
    response_code: str
    transaction_no: str | None = None
    bank_code: str | None = None
    pay_date: str | None = None
    transaction_status: str | None = None
    succeeded: bool

    @property
    def message(self) -> str:
        return describe_response_code(self.response_code)


def describe_response_code(code: str | None) -> str:
    return RESPONSE_MESSAGES.get(code or "", "Transaction failed")


def authenticate(raw_params: Mapping[str, object], config: GatewayConfig) -> dict[str, object]:
    """Verify the signature and return the signed fields without it."""

    config.ensure_complete()
    params = dict(raw_params)
    received = params.pop(SIGNATURE_FIELD, None)
    params.pop(SIGNATURE_TYPE_FIELD, None)

    try:
        canonical = canonicalize(params).to_query()
    except ValidationError as exc:
        # The gateway never signs an empty parameter name.
        logger.warning("callback rejected: %s received_signature=%s", exc, received)
        raise AuthenticationError(
            f"callback cannot be canonicalized: {exc}",
            received_signature=str(received) if received else None,
        ) from exc
    if not received:
        logger.warning("callback rejected: no signature canonical=%s", canonical)
        raise AuthenticationError("callback carries no signature", canonical=canonical)
    if not canonical or not verify(canonical, config.secret, str(received)):
        logger.warning(
            "callback rejected: signature mismatch canonical=%s received_signature=%s",
            canonical,
            received,
        )
        raise AuthenticationError(
            "callback signature mismatch",
            canonical=canonical,
            received_signature=str(received),
        )
    return params


def _optional(params: Mapping[str, object], key: str) -> str | None:
    value = params.get(key)
    if value is None or value == "":
        return None
    return str(value)


def parse_response(params: Mapping[str, object]) -> CallbackResult:
    """Map gateway field names onto a `CallbackResult`. Assumes authenticity."""

    missing = [key for key in REQUIRED_FIELDS if _optional(params, key) is None]
    if missing:
        raise MalformedPayloadError(f"callback missing required fields: {', '.join(missing)}")

    raw_amount = str(params["vnp_Amount"])
    try:
        wire_amount = int(raw_amount)
        amount = descale_amount(wire_amount)
    except ValueError as exc:
        raise MalformedPayloadError(f"callback amount is not a valid wire amount: {raw_amount!r}") from exc
    if wire_amount < 0:
        raise MalformedPayloadError(f"callback amount is negative: {raw_amount!r}")

    response_code = str(params["vnp_ResponseCode"])
    return CallbackResult(
        order_id=str(params["vnp_TxnRef"]),
        amount=amount,
        response_code=response_code,
        transaction_no=_optional(params, "vnp_TransactionNo"),
        bank_code=_optional(params, "vnp_BankCode"),
        pay_date=_optional(params, "vnp_PayDate"),
        transaction_status=_optional(params, "vnp_TransactionStatus"),
        succeeded=response_code == SUCCESS_CODE,
    )


def verify_and_parse(raw_params: Mapping[str, object], config: GatewayConfig) -> CallbackResult:
    """Authenticate a callback, then normalize it."""

    return parse_response(authenticate(raw_params, config))
