"""Checkout verification: reconcile a Checkout Session with the stored subscription.

Read-only and independent of the webhook path; the two may race, so a paid
session can briefly report "not found" until its webhook lands.
"""

from dataclasses import dataclass

import structlog

from app.core.exceptions import NotFoundError, PaymentNotConfirmedError
from app.db.models.subscription import Subscription
from app.domain.events import metadata_user_id
from app.services.billing_store import BillingStore
from app.services.stripe_gateway import StripeGateway

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SessionSummary:
    id: str
    payment_status: str
    customer_email: str | None


@dataclass(frozen=True)
class VerificationResult:
    subscription: Subscription
    session: SessionSummary


async def verify_checkout_session(
    session_id: str,
    gateway: StripeGateway,
    store: BillingStore,
) -> VerificationResult:
    """Confirm a checkout was paid and return the caller's subscription.

    Raises:
        PaymentNotConfirmedError: session is not paid (store is not queried)
        NotFoundError: no user id in the session metadata, or no stored row
    """
    session = await gateway.retrieve_checkout_session(session_id)

    payment_status = getattr(session, "payment_status", None)
    if payment_status != "paid":
        logger.info("checkout_not_paid", session_id=session_id, payment_status=payment_status)
        raise PaymentNotConfirmedError(session_id, payment_status)

    metadata = dict(getattr(session, "metadata", None) or {})
    user_id = metadata_user_id(metadata)
    if not user_id:
        logger.warning("checkout_session_missing_user", session_id=session_id)
        raise NotFoundError("Subscription not found")

    subscription = await store.get_subscription_for_user(user_id)
    if subscription is None:
        logger.info("checkout_subscription_not_found", session_id=session_id, user_id=user_id)
        raise NotFoundError("Subscription not found")

    details = getattr(session, "customer_details", None)
    return VerificationResult(
        subscription=subscription,
        session=SessionSummary(
            id=session.id,
            payment_status=payment_status,
            customer_email=getattr(details, "email", None) if details else None,
        ),
    )
