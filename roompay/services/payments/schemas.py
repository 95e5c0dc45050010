"""API schemas for the payments service."""

from pydantic import BaseModel, ConfigDict, Field

from roompay.services.payments.service import CallbackOutcome


class PaymentUrlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(min_length=1, alias="orderId")


class PaymentUrlResponse(BaseModel):
    order_id: str
    payment_url: str


class PaymentReturnResponse(BaseModel):
    """Summary shown to the browser after the gateway redirects back."""

    order_id: str
    outcome: CallbackOutcome
    succeeded: bool
    amount: int
    response_code: str
    message: str
    transaction_no: str | None = None


class IpnResponse(BaseModel):
    """Reply format the gateway expects from the IPN endpoint."""

    RspCode: str
    Message: str


# IPN reply codes from the gateway's merchant integration guide.
IPN_CONFIRMED = IpnResponse(RspCode="00", Message="Confirm Success")
IPN_ORDER_NOT_FOUND = IpnResponse(RspCode="01", Message="Order not found")
IPN_ALREADY_CONFIRMED = IpnResponse(RspCode="02", Message="Order already confirmed")
IPN_INVALID_AMOUNT = IpnResponse(RspCode="04", Message="Invalid amount")
IPN_INVALID_SIGNATURE = IpnResponse(RspCode="97", Message="Invalid signature")
IPN_UNKNOWN_ERROR = IpnResponse(RspCode="99", Message="Unknown error")

IPN_BY_OUTCOME = {
    CallbackOutcome.CONFIRMED: IPN_CONFIRMED,
    # A declined payment is still a callback we accepted and recorded.
    CallbackOutcome.DECLINED: IPN_CONFIRMED,
    CallbackOutcome.ALREADY_PROCESSED: IPN_ALREADY_CONFIRMED,
    CallbackOutcome.ORDER_NOT_FOUND: IPN_ORDER_NOT_FOUND,
    CallbackOutcome.AMOUNT_MISMATCH: IPN_INVALID_AMOUNT,
}
