"""Pydantic schemas for the payment, subscription and webhook endpoints.

Request/response bodies of the session endpoints use camelCase on the wire
(the browser client's contract); stored rows are returned with their column
names unchanged.
"""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Requests ────────────────────────────────────────────────────────


class PaymentIntentRequest(CamelModel):
    # Optional so a missing plan is reported as INVALID_PLAN, not a 422
    plan: str | None = None
    user_id: str | None = None
    user_email: str | None = None


class CheckoutRequest(CamelModel):
    plan: str | None = Field(None, validation_alias=AliasChoices("plan", "planType"))
    user_id: str | None = None
    user_email: str | None = None
    success_url: str | None = None
    cancel_url: str | None = None


class PortalRequest(CamelModel):
    customer_id: str | None = None
    return_url: str | None = None


class VerifyPaymentRequest(CamelModel):
    session_id: str | None = None


# ── Responses ───────────────────────────────────────────────────────


class PaymentIntentResponse(CamelModel):
    client_secret: str
    payment_intent_id: str


class CheckoutResponse(CamelModel):
    session_id: str
    url: str | None = None


class PortalResponse(CamelModel):
    url: str


class WebhookAck(BaseModel):
    received: bool = True


class CancelSubscriptionResponse(CamelModel):
    subscription_id: str
    cancel_at_period_end: bool


class SubscriptionOut(BaseModel):
    """Stored subscription row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    stripe_customer_id: str | None
    stripe_subscription_id: str
    plan: str
    status: str
    current_period_start: datetime | None
    current_period_end: datetime | None
    cancel_at_period_end: bool
    created_at: datetime | None
    updated_at: datetime | None


class PaymentOut(BaseModel):
    """Stored payment row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    stripe_payment_intent_id: str
    amount: int
    currency: str
    status: str
    plan: str
    created_at: datetime | None


class SessionSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    payment_status: str
    customer_email: str | None


class VerifyPaymentResponse(BaseModel):
    success: bool = True
    subscription: SubscriptionOut
    session: SessionSummaryOut


class EntitlementsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    plan: str
    is_active: bool
    can_create_invite: bool
    invite_limit: int = Field(..., description="-1 = unlimited")


class SubscriptionStatusResponse(BaseModel):
    subscription: SubscriptionOut | None
    entitlements: EntitlementsOut


class PaymentHistoryResponse(BaseModel):
    payments: list[PaymentOut]


class PlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    slug: str
    name: str
    amount: int
    currency: str
    interval: str
    invite_limit: int
    features: list[str]


class PlanCatalogResponse(BaseModel):
    plans: list[PlanOut]
