"""Payment routes: PaymentIntent, Checkout, Customer Portal, verification and history."""

import structlog
from fastapi import APIRouter, Depends

from app.core.auth import AuthUser, optional_auth, require_auth
from app.core.config import Settings, get_settings
from app.core.exceptions import AuthenticationError, MissingFieldError
from app.domain.plans import get_plan, price_id_for
from app.schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    PaymentHistoryResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PaymentOut,
    PortalRequest,
    PortalResponse,
    SessionSummaryOut,
    SubscriptionOut,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from app.services.billing_store import BillingStore, get_billing_store
from app.services.stripe_gateway import StripeGateway, get_stripe_gateway
from app.services.verification_service import verify_checkout_session

logger = structlog.get_logger(__name__)

router = APIRouter()


# ── Helpers ─────────────────────────────────────────────────────────


def _resolve_caller(
    user: AuthUser | None,
    body_user_id: str | None,
    body_email: str | None,
    settings: Settings,
) -> tuple[str, str | None]:
    """Pick the caller identity: verified token first, request body only when auth is optional."""
    if user is not None:
        return user.user_id, user.email or body_email

    if settings.auth_required:
        raise AuthenticationError("Missing authorization header")
    if not body_user_id:
        raise MissingFieldError("userId")
    return body_user_id, body_email


def _with_session_placeholder(url: str) -> str:
    """Append Stripe's session id template so the success page can verify."""
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}session_id={{CHECKOUT_SESSION_ID}}"


# ── Endpoints ───────────────────────────────────────────────────────


@router.post("/payments/intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    body: PaymentIntentRequest,
    user: AuthUser | None = Depends(optional_auth),
    settings: Settings = Depends(get_settings),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """Create a one-shot PaymentIntent and return its client secret."""
    user_id, user_email = _resolve_caller(user, body.user_id, body.user_email, settings)
    plan = get_plan(body.plan)

    intent = await gateway.create_payment_intent(plan, user_id, user_email)
    logger.info(
        "payment_intent_created",
        payment_intent_id=intent.id,
        user_id=user_id,
        plan=plan.slug,
        amount=plan.amount,
    )

    return PaymentIntentResponse(client_secret=intent.client_secret, payment_intent_id=intent.id)


@router.post("/payments/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    user: AuthUser | None = Depends(optional_auth),
    settings: Settings = Depends(get_settings),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """Create a recurring Checkout Session and return its id."""
    user_id, user_email = _resolve_caller(user, body.user_id, body.user_email, settings)
    plan = get_plan(body.plan)
    price_id = price_id_for(plan, settings)

    success_url = body.success_url or f"{settings.frontend_url}/payment/success"
    cancel_url = body.cancel_url or f"{settings.frontend_url}/payment/cancel"

    checkout_session = await gateway.create_checkout_session(
        plan,
        price_id,
        user_id,
        user_email,
        success_url=_with_session_placeholder(success_url),
        cancel_url=cancel_url,
    )
    logger.info("checkout_session_created", session_id=checkout_session.id, user_id=user_id, plan=plan.slug)

    return CheckoutResponse(session_id=checkout_session.id, url=checkout_session.url)


@router.post("/payments/portal", response_model=PortalResponse)
async def create_portal_session(
    body: PortalRequest,
    settings: Settings = Depends(get_settings),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """Create a Stripe Customer Portal session and return the URL."""
    if not body.customer_id:
        raise MissingFieldError("customerId")

    return_url = body.return_url or f"{settings.frontend_url}/billing"
    portal_session = await gateway.create_portal_session(body.customer_id, return_url)

    return PortalResponse(url=portal_session.url)


@router.post("/payments/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    body: VerifyPaymentRequest,
    gateway: StripeGateway = Depends(get_stripe_gateway),
    store: BillingStore = Depends(get_billing_store),
):
    """Confirm a checkout was paid and return the resulting subscription."""
    if not body.session_id:
        raise MissingFieldError("sessionId")

    result = await verify_checkout_session(body.session_id, gateway, store)

    return VerifyPaymentResponse(
        subscription=SubscriptionOut.model_validate(result.subscription),
        session=SessionSummaryOut.model_validate(result.session),
    )


@router.get("/payments/history", response_model=PaymentHistoryResponse)
async def get_payment_history(
    user: AuthUser = Depends(require_auth),
    store: BillingStore = Depends(get_billing_store),
):
    """Return the caller's recorded payments, newest first."""
    payments = await store.list_payments(user.user_id)
    return PaymentHistoryResponse(payments=[PaymentOut.model_validate(p) for p in payments])
