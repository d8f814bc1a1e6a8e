"""StripeGateway: the service's only door to the Stripe API.

All calls use the SDK's async variants and pass the secret key per request, so
nothing global is mutated and tests can swap the Settings object.
"""

import stripe
import structlog
from fastapi import Depends

from app.core.config import Settings, get_settings
from app.core.exceptions import ConfigurationError, UpstreamError, ValidationFailure
from app.domain.plans import Plan

logger = structlog.get_logger(__name__)


class StripeGateway:
    def __init__(self, settings: Settings):
        self._settings = settings

    def _api_key(self) -> str:
        if not self._settings.stripe_secret_key:
            raise ConfigurationError("Stripe secret key is not configured")
        return self._settings.stripe_secret_key

    async def create_payment_intent(
        self,
        plan: Plan,
        user_id: str,
        user_email: str | None,
    ) -> stripe.PaymentIntent:
        """Create a one-shot PaymentIntent for the plan's fixed amount."""
        api_key = self._api_key()
        try:
            return await stripe.PaymentIntent.create_async(
                api_key=api_key,
                amount=plan.amount,
                currency=plan.currency,
                automatic_payment_methods={"enabled": True},
                metadata={
                    "user_id": user_id,
                    "plan": plan.slug,
                    "user_email": user_email or "",
                },
                description=f"{plan.name} subscription",
                receipt_email=user_email or None,
            )
        except stripe.StripeError as exc:
            logger.error("stripe_payment_intent_failed", user_id=user_id, plan=plan.slug, error=str(exc))
            raise UpstreamError(f"Stripe error: {exc.user_message or exc}") from exc

    async def create_checkout_session(
        self,
        plan: Plan,
        price_id: str,
        user_id: str,
        user_email: str | None,
        success_url: str,
        cancel_url: str,
    ) -> stripe.checkout.Session:
        """Create a recurring Checkout Session.

        The caller's identity and plan ride along as metadata on both the
        session and the subscription it creates, for webhook correlation.
        """
        api_key = self._api_key()
        metadata = {"user_id": user_id, "plan": plan.slug}
        try:
            return await stripe.checkout.Session.create_async(
                api_key=api_key,
                mode="subscription",
                customer_email=user_email or None,
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )
        except stripe.StripeError as exc:
            logger.error("stripe_checkout_failed", user_id=user_id, plan=plan.slug, error=str(exc))
            raise UpstreamError(f"Stripe error: {exc.user_message or exc}") from exc

    async def create_portal_session(self, customer_id: str, return_url: str) -> stripe.billing_portal.Session:
        api_key = self._api_key()
        try:
            return await stripe.billing_portal.Session.create_async(
                api_key=api_key,
                customer=customer_id,
                return_url=return_url,
            )
        except stripe.StripeError as exc:
            logger.error("stripe_portal_failed", customer_id=customer_id, error=str(exc))
            raise UpstreamError(f"Stripe error: {exc.user_message or exc}") from exc

    async def retrieve_checkout_session(self, session_id: str) -> stripe.checkout.Session:
        api_key = self._api_key()
        try:
            return await stripe.checkout.Session.retrieve_async(session_id, api_key=api_key)
        except stripe.InvalidRequestError as exc:
            raise ValidationFailure(f"Unknown checkout session: {session_id}") from exc
        except stripe.StripeError as exc:
            logger.error("stripe_session_retrieve_failed", session_id=session_id, error=str(exc))
            raise UpstreamError(f"Stripe error: {exc.user_message or exc}") from exc

    async def cancel_at_period_end(self, subscription_id: str) -> stripe.Subscription:
        """Schedule cancellation; Stripe reports the change back via webhook."""
        api_key = self._api_key()
        try:
            return await stripe.Subscription.modify_async(
                subscription_id,
                api_key=api_key,
                cancel_at_period_end=True,
            )
        except stripe.StripeError as exc:
            logger.error("stripe_cancel_failed", subscription_id=subscription_id, error=str(exc))
            raise UpstreamError(f"Stripe error: {exc.user_message or exc}") from exc


def get_stripe_gateway(settings: Settings = Depends(get_settings)) -> StripeGateway:
    return StripeGateway(settings)
