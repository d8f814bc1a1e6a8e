"""Subscription routes: current status with entitlements, and cancellation."""

import structlog
from fastapi import APIRouter, Depends

from app.core.auth import AuthUser, require_auth
from app.core.exceptions import NotFoundError
from app.domain.entitlements import compute_entitlements
from app.domain.events import SubscriptionStatus
from app.schemas.billing import (
    CancelSubscriptionResponse,
    EntitlementsOut,
    SubscriptionOut,
    SubscriptionStatusResponse,
)
from app.services.billing_store import BillingStore, get_billing_store
from app.services.stripe_gateway import StripeGateway, get_stripe_gateway

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/subscriptions/me", response_model=SubscriptionStatusResponse)
async def get_my_subscription(
    user: AuthUser = Depends(require_auth),
    store: BillingStore = Depends(get_billing_store),
):
    """Return the caller's current subscription (or null) and what it entitles them to."""
    subscription = await store.get_subscription_for_user(user.user_id)

    if subscription is None:
        entitlements = compute_entitlements(None, None)
        return SubscriptionStatusResponse(
            subscription=None,
            entitlements=EntitlementsOut.model_validate(entitlements),
        )

    entitlements = compute_entitlements(subscription.plan, subscription.status)
    return SubscriptionStatusResponse(
        subscription=SubscriptionOut.model_validate(subscription),
        entitlements=EntitlementsOut.model_validate(entitlements),
    )


@router.post("/subscriptions/cancel", response_model=CancelSubscriptionResponse)
async def cancel_my_subscription(
    user: AuthUser = Depends(require_auth),
    store: BillingStore = Depends(get_billing_store),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """Schedule the caller's subscription to end with the current period.

    The stored row is not touched here; the resulting
    ``customer.subscription.updated`` webhook records the change.
    """
    subscription = await store.get_subscription_for_user(user.user_id)
    if subscription is None or subscription.status == SubscriptionStatus.CANCELED:
        raise NotFoundError("No subscription to cancel")

    stripe_subscription = await gateway.cancel_at_period_end(subscription.stripe_subscription_id)
    logger.info(
        "subscription_cancel_scheduled",
        subscription_id=subscription.stripe_subscription_id,
        user_id=user.user_id,
    )

    return CancelSubscriptionResponse(
        subscription_id=subscription.stripe_subscription_id,
        cancel_at_period_end=bool(stripe_subscription.cancel_at_period_end),
    )
