"""Typed views over verified Stripe webhook payloads.

Each parser takes the event's ``data.object`` mapping and returns the fields
its mutator needs. Required correlation metadata is checked here, at the
boundary, so handlers never see a half-populated object.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

from app.core.exceptions import MissingMetadataError


class EventType(str, Enum):
    """Stripe event types that mutate stored state."""

    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


class SubscriptionStatus(str, Enum):
    """Subscription statuses. Stripe may send others; those are stored verbatim."""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    TRIALING = "trialing"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"
    PAUSED = "paused"


class CheckoutCompleted(BaseModel):
    session_id: str
    user_id: str
    plan: str
    payment_intent_id: str
    amount: int
    currency: str
    status: str = "succeeded"


class SubscriptionSnapshot(BaseModel):
    """Mutable fields of a subscription, as carried by every subscription event."""

    subscription_id: str
    status: str
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False


class SubscriptionCreated(SubscriptionSnapshot):
    user_id: str
    plan: str
    customer_id: str | None = None


class SubscriptionDeleted(BaseModel):
    subscription_id: str


class InvoiceOutcome(BaseModel):
    invoice_id: str | None = None
    subscription_id: str | None = None


def metadata_of(obj: Any) -> dict:
    """Copy an object's metadata into a plain dict (empty when absent)."""
    meta = obj.get("metadata") if obj is not None else None
    return dict(meta) if meta else {}


def metadata_user_id(metadata: dict) -> str | None:
    return metadata.get("user_id") or metadata.get("userId")


def metadata_plan(metadata: dict) -> str | None:
    return metadata.get("plan") or metadata.get("planType")


def _require_correlation(obj: dict) -> tuple[str, str]:
    metadata = metadata_of(obj)
    user_id = metadata_user_id(metadata)
    plan = metadata_plan(metadata)

    missing = [name for name, value in (("user_id", user_id), ("plan", plan)) if not value]
    if missing:
        raise MissingMetadataError(obj.get("id"), missing)
    return user_id, plan


def _id_of(value: Any) -> str | None:
    """Stripe sends related objects either as an id or expanded."""
    if value is None or isinstance(value, str):
        return value
    return value.get("id")


def _timestamp(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


def _period_bounds(subscription: dict) -> tuple[datetime | None, datetime | None]:
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")

    # API versions from 2025-03 carry the period on each subscription item
    if start is None or end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            start = start if start is not None else items[0].get("current_period_start")
            end = end if end is not None else items[0].get("current_period_end")

    return _timestamp(start), _timestamp(end)


def parse_checkout_completed(session: dict) -> CheckoutCompleted:
    """Parse a completed Checkout Session.

    Subscription-mode sessions carry no payment intent; the session id stands
    in as the payment key.
    """
    user_id, plan = _require_correlation(session)
    return CheckoutCompleted(
        session_id=session["id"],
        user_id=user_id,
        plan=plan,
        payment_intent_id=_id_of(session.get("payment_intent")) or session["id"],
        amount=session.get("amount_total") or 0,
        currency=session.get("currency") or "",
    )


def parse_subscription_snapshot(subscription: dict) -> SubscriptionSnapshot:
    start, end = _period_bounds(subscription)
    return SubscriptionSnapshot(
        subscription_id=subscription.get("id"),
        status=subscription.get("status"),
        current_period_start=start,
        current_period_end=end,
        cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
    )


def parse_subscription_created(subscription: dict) -> SubscriptionCreated:
    user_id, plan = _require_correlation(subscription)
    snapshot = parse_subscription_snapshot(subscription)
    return SubscriptionCreated(
        **snapshot.model_dump(),
        user_id=user_id,
        plan=plan,
        customer_id=_id_of(subscription.get("customer")),
    )


def parse_subscription_deleted(subscription: dict) -> SubscriptionDeleted:
    return SubscriptionDeleted(subscription_id=subscription.get("id"))


def parse_invoice(invoice: dict) -> InvoiceOutcome:
    """Parse an invoice, locating its subscription id if it has one."""
    subscription_id = _id_of(invoice.get("subscription"))
    if subscription_id is None:
        details = (invoice.get("parent") or {}).get("subscription_details") or {}
        subscription_id = _id_of(details.get("subscription"))
    return InvoiceOutcome(invoice_id=invoice.get("id"), subscription_id=subscription_id)
