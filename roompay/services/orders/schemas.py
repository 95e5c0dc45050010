"""API request/response schemas for orders endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class OrderCreateRequest(BaseModel):
    """Order creation payload from the marketplace backend."""

    user_id: str = Field(min_length=1)
    amount: int = Field(gt=0)
    description: str | None = Field(default=None, max_length=255)


class OrderResponse(BaseModel):
    order_id: str
    user_id: str
    amount: int
    description: str | None = None
    status: str
    expires_at: datetime
    transaction_no: str | None = None
    paid_at: datetime | None = None


class PendingOrder(BaseModel):
    """What the payment flow needs to know about an order awaiting payment."""

    order_id: str
    amount: int
    description: str | None = None
    expires_at: datetime


class MarkPaidRequest(BaseModel):
    amount: int
    transaction_no: str | None = None
    bank_code: str | None = None
    pay_date: str | None = None


class MarkPaidResponse(BaseModel):
    transitioned: bool


class AttemptRequest(BaseModel):
    reason: str = Field(min_length=1)
    response_code: str | None = None
