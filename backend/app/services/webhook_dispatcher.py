"""Stripe webhook verification and event dispatch.

``construct_verified_event`` turns a raw request into an event dict or raises;
nothing is persisted before it succeeds. ``WebhookDispatcher`` then routes the
event to exactly one state mutator. Mutator failures are logged and swallowed:
the delivery has already been acknowledged, and a storage outage must not turn
into a Stripe retry storm.
"""

import json

import stripe
import structlog
from fastapi import Depends
from pydantic import ValidationError

from app.core.config import Settings
from app.core.exceptions import (
    ConfigurationError,
    MissingMetadataError,
    SignatureError,
    ValidationFailure,
)
from app.domain.events import (
    EventType,
    SubscriptionStatus,
    parse_checkout_completed,
    parse_invoice,
    parse_subscription_created,
    parse_subscription_deleted,
    parse_subscription_snapshot,
)
from app.services.billing_store import BillingStore, get_billing_store

logger = structlog.get_logger(__name__)


def construct_verified_event(payload: bytes, sig_header: str | None, settings: Settings) -> dict:
    """Verify the Stripe signature over the exact raw body and decode it.

    Raises:
        ConfigurationError: webhook secret unset (fail closed)
        SignatureError: header missing or signature mismatch
        ValidationFailure: body is not a JSON event
    """
    if not settings.stripe_webhook_secret:
        logger.error("stripe_webhook_secret_missing")
        raise ConfigurationError("Stripe webhook endpoint is not configured")

    if not sig_header:
        raise SignatureError("Missing stripe-signature header")

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationFailure("Invalid payload")

    try:
        stripe.WebhookSignature.verify_header(
            body,
            sig_header,
            settings.stripe_webhook_secret,
            settings.stripe_webhook_tolerance,
        )
    except stripe.SignatureVerificationError:
        logger.warning("stripe_signature_rejected")
        raise SignatureError("Invalid signature")

    try:
        event = json.loads(body)
    except ValueError:
        raise ValidationFailure("Invalid payload")

    if not isinstance(event, dict) or not event.get("type"):
        raise ValidationFailure("Invalid payload")
    return event


class WebhookDispatcher:
    """Routes verified events to one of six single-write mutators."""

    def __init__(self, store: BillingStore):
        self._store = store
        self._handlers = {
            EventType.CHECKOUT_COMPLETED: self._on_checkout_completed,
            EventType.SUBSCRIPTION_CREATED: self._on_subscription_created,
            EventType.SUBSCRIPTION_UPDATED: self._on_subscription_updated,
            EventType.SUBSCRIPTION_DELETED: self._on_subscription_deleted,
            EventType.INVOICE_PAYMENT_SUCCEEDED: self._on_invoice_payment_succeeded,
            EventType.INVOICE_PAYMENT_FAILED: self._on_invoice_payment_failed,
        }

    async def dispatch(self, event: dict) -> bool:
        """Apply an event's mutation.

        Returns:
            True if a handler ran (even if it failed), False for unhandled types.
            Never raises.
        """
        event_type = event.get("type")
        log = logger.bind(event_type=event_type, event_id=event.get("id"))

        handler = self._handlers.get(event_type)
        if handler is None:
            log.info("stripe_event_unhandled")
            return False

        data = event.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            log.warning("stripe_event_malformed", error="data.object is not a mapping")
            return True

        try:
            await handler(obj)
        except MissingMetadataError as exc:
            log.warning("stripe_event_missing_metadata", object_id=exc.object_id, missing=exc.missing)
        except ValidationError as exc:
            log.warning("stripe_event_malformed", error=str(exc))
        except Exception as exc:
            log.error(
                "stripe_event_handler_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
        return True

    async def _on_checkout_completed(self, session: dict) -> None:
        checkout = parse_checkout_completed(session)
        payment = await self._store.insert_payment(checkout)
        logger.info(
            "payment_recorded",
            payment_id=payment.id,
            user_id=checkout.user_id,
            plan=checkout.plan,
            payment_intent_id=checkout.payment_intent_id,
        )

    async def _on_subscription_created(self, subscription: dict) -> None:
        created = parse_subscription_created(subscription)
        await self._store.upsert_subscription(created)
        logger.info(
            "subscription_upserted",
            subscription_id=created.subscription_id,
            user_id=created.user_id,
            plan=created.plan,
            status=created.status,
        )

    async def _on_subscription_updated(self, subscription: dict) -> None:
        snapshot = parse_subscription_snapshot(subscription)
        updated = await self._store.update_subscription(
            snapshot.subscription_id,
            status=snapshot.status,
            current_period_start=snapshot.current_period_start,
            current_period_end=snapshot.current_period_end,
            cancel_at_period_end=snapshot.cancel_at_period_end,
        )
        if not updated:
            logger.warning("subscription_updated_unknown_subscription", subscription_id=snapshot.subscription_id)
            return
        logger.info("subscription_status_updated", subscription_id=snapshot.subscription_id, status=snapshot.status)

    async def _on_subscription_deleted(self, subscription: dict) -> None:
        deleted = parse_subscription_deleted(subscription)
        await self._set_status(deleted.subscription_id, SubscriptionStatus.CANCELED)

    async def _on_invoice_payment_succeeded(self, invoice: dict) -> None:
        outcome = parse_invoice(invoice)
        if outcome.subscription_id is None:
            logger.info("invoice_without_subscription", invoice_id=outcome.invoice_id)
            return
        await self._set_status(outcome.subscription_id, SubscriptionStatus.ACTIVE)

    async def _on_invoice_payment_failed(self, invoice: dict) -> None:
        outcome = parse_invoice(invoice)
        if outcome.subscription_id is None:
            logger.info("invoice_without_subscription", invoice_id=outcome.invoice_id)
            return
        await self._set_status(outcome.subscription_id, SubscriptionStatus.PAST_DUE)

    async def _set_status(self, subscription_id: str, status: SubscriptionStatus) -> None:
        updated = await self._store.update_subscription(subscription_id, status=status.value)
        if not updated:
            logger.warning("subscription_status_unknown_subscription", subscription_id=subscription_id, status=status.value)
            return
        logger.info("subscription_status_updated", subscription_id=subscription_id, status=status.value)


def get_webhook_dispatcher(store: BillingStore = Depends(get_billing_store)) -> WebhookDispatcher:
    return WebhookDispatcher(store)
