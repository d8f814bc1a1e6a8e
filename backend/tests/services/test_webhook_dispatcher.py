"""Tests for webhook verification and event dispatch.

Covers:
- Signature verification over the raw body (fail closed, no writes on rejection)
- One handler per event type, unknown types ignored
- Replay behavior: subscription updates are idempotent, payments are not
- Handler failures never escape dispatch
"""

import json
import time

import pytest

from app.core.exceptions import (
    ConfigurationError,
    SignatureError,
    StorageError,
    ValidationFailure,
)
from app.services.webhook_dispatcher import WebhookDispatcher, construct_verified_event

PERIOD_START = 1_735_689_600
PERIOD_END = 1_738_368_000


def _make_stripe_event(event_type: str, data: dict, event_id: str = "evt_test_001") -> dict:
    """Build a minimal Stripe-style event dict."""
    return {"id": event_id, "type": event_type, "data": {"object": data}}


def _subscription(status: str = "active", **overrides) -> dict:
    sub = {
        "id": "sub_test_1",
        "object": "subscription",
        "customer": "cus_test_1",
        "status": status,
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
        "cancel_at_period_end": False,
        "metadata": {"user_id": "user_123", "plan": "standard"},
    }
    sub.update(overrides)
    return sub


def _checkout_session(**overrides) -> dict:
    session = {
        "id": "cs_test_1",
        "object": "checkout.session",
        "payment_intent": "pi_test_1",
        "amount_total": 10_000,
        "currency": "eur",
        "metadata": {"user_id": "user_123", "plan": "standard"},
    }
    session.update(overrides)
    return session


@pytest.fixture
def dispatcher(fake_store) -> WebhookDispatcher:
    return WebhookDispatcher(fake_store)


# ---------------------------------------------------------------------------
# Signature verification
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestConstructVerifiedEvent:
    def test_valid_signature_returns_event(self, settings, stripe_signature):
        payload = json.dumps(_make_stripe_event("invoice.payment_failed", {"id": "in_1"}))

        event = construct_verified_event(payload.encode(), stripe_signature(payload), settings)

        assert event["type"] == "invoice.payment_failed"
        assert event["data"]["object"]["id"] == "in_1"

    def test_missing_secret_fails_closed(self, settings, stripe_signature):
        settings.stripe_webhook_secret = ""
        payload = json.dumps(_make_stripe_event("invoice.payment_failed", {}))

        with pytest.raises(ConfigurationError):
            construct_verified_event(payload.encode(), stripe_signature(payload), settings)

    def test_missing_header_is_rejected(self, settings):
        with pytest.raises(SignatureError, match="stripe-signature"):
            construct_verified_event(b"{}", None, settings)

    def test_wrong_secret_is_rejected(self, settings, stripe_signature):
        payload = json.dumps(_make_stripe_event("invoice.payment_failed", {}))

        with pytest.raises(SignatureError):
            construct_verified_event(payload.encode(), stripe_signature(payload, "whsec_other"), settings)

    def test_tampered_body_is_rejected(self, settings, stripe_signature):
        payload = json.dumps(_make_stripe_event("invoice.payment_failed", {"id": "in_1"}))
        header = stripe_signature(payload)
        tampered = payload.replace("in_1", "in_2")

        with pytest.raises(SignatureError):
            construct_verified_event(tampered.encode(), header, settings)

    def test_stale_timestamp_is_rejected(self, settings, stripe_signature):
        payload = json.dumps(_make_stripe_event("invoice.payment_failed", {}))
        header = stripe_signature(payload, timestamp=int(time.time()) - 3600)

        with pytest.raises(SignatureError):
            construct_verified_event(payload.encode(), header, settings)

    def test_signed_non_json_body_is_invalid_payload(self, settings, stripe_signature):
        payload = "not json"

        with pytest.raises(ValidationFailure):
            construct_verified_event(payload.encode(), stripe_signature(payload), settings)

    def test_signed_json_without_type_is_invalid_payload(self, settings, stripe_signature):
        payload = json.dumps({"id": "evt_1"})

        with pytest.raises(ValidationFailure):
            construct_verified_event(payload.encode(), stripe_signature(payload), settings)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestDispatch:
    async def test_checkout_completed_records_payment(self, dispatcher, fake_store):
        handled = await dispatcher.dispatch(
            _make_stripe_event("checkout.session.completed", _checkout_session())
        )

        assert handled is True
        assert len(fake_store.payments) == 1
        payment = fake_store.payments[0]
        assert payment.user_id == "user_123"
        assert payment.stripe_payment_intent_id == "pi_test_1"
        assert payment.amount == 10_000
        assert payment.status == "succeeded"

    async def test_replayed_checkout_records_a_second_payment(self, dispatcher, fake_store):
        event = _make_stripe_event("checkout.session.completed", _checkout_session())

        await dispatcher.dispatch(event)
        await dispatcher.dispatch(event)

        assert len(fake_store.payments) == 2

    async def test_checkout_without_metadata_writes_nothing(self, dispatcher, fake_store):
        handled = await dispatcher.dispatch(
            _make_stripe_event("checkout.session.completed", _checkout_session(metadata={}))
        )

        assert handled is True
        assert fake_store.writes == 0
        assert fake_store.calls == []

    async def test_subscription_created_inserts_row(self, dispatcher, fake_store):
        await dispatcher.dispatch(_make_stripe_event("customer.subscription.created", _subscription()))

        row = fake_store.subscriptions["sub_test_1"]
        assert row.user_id == "user_123"
        assert row.plan == "standard"
        assert row.stripe_customer_id == "cus_test_1"
        assert row.status == "active"
        assert row.current_period_end is not None

    async def test_subscription_update_replay_is_idempotent(self, dispatcher, fake_store):
        await dispatcher.dispatch(_make_stripe_event("customer.subscription.created", _subscription()))
        update = _make_stripe_event(
            "customer.subscription.updated",
            _subscription(status="active", cancel_at_period_end=True),
        )

        await dispatcher.dispatch(update)
        first = {
            "status": fake_store.subscriptions["sub_test_1"].status,
            "cancel": fake_store.subscriptions["sub_test_1"].cancel_at_period_end,
        }
        await dispatcher.dispatch(update)

        assert len(fake_store.subscriptions) == 1
        row = fake_store.subscriptions["sub_test_1"]
        assert {"status": row.status, "cancel": row.cancel_at_period_end} == first
        assert row.cancel_at_period_end is True

    async def test_update_for_unknown_subscription_writes_nothing(self, dispatcher, fake_store):
        handled = await dispatcher.dispatch(
            _make_stripe_event("customer.subscription.updated", _subscription(id="sub_unknown"))
        )

        assert handled is True
        assert fake_store.writes == 0

    async def test_deleted_marks_canceled_and_keeps_other_fields(self, dispatcher, fake_store):
        await dispatcher.dispatch(_make_stripe_event("customer.subscription.created", _subscription()))

        await dispatcher.dispatch(
            _make_stripe_event("customer.subscription.deleted", {"id": "sub_test_1"})
        )

        row = fake_store.subscriptions["sub_test_1"]
        assert row.status == "canceled"
        assert row.plan == "standard"
        assert row.user_id == "user_123"
        assert row.stripe_customer_id == "cus_test_1"

    async def test_invoice_failed_marks_past_due(self, dispatcher, fake_store):
        await dispatcher.dispatch(_make_stripe_event("customer.subscription.created", _subscription()))

        await dispatcher.dispatch(
            _make_stripe_event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_test_1"})
        )

        assert fake_store.subscriptions["sub_test_1"].status == "past_due"

    async def test_invoice_succeeded_restores_active(self, dispatcher, fake_store):
        await dispatcher.dispatch(
            _make_stripe_event("customer.subscription.created", _subscription(status="past_due"))
        )

        await dispatcher.dispatch(
            _make_stripe_event(
                "invoice.payment_succeeded",
                {"id": "in_2", "parent": {"subscription_details": {"subscription": "sub_test_1"}}},
            )
        )

        assert fake_store.subscriptions["sub_test_1"].status == "active"

    async def test_invoice_failed_for_unknown_subscription_writes_nothing(self, dispatcher, fake_store):
        handled = await dispatcher.dispatch(
            _make_stripe_event("invoice.payment_failed", {"id": "in_3", "subscription": "sub_missing"})
        )

        assert handled is True
        assert fake_store.writes == 0

    async def test_invoice_without_subscription_is_skipped(self, dispatcher, fake_store):
        await dispatcher.dispatch(
            _make_stripe_event("invoice.payment_succeeded", {"id": "in_4", "subscription": None})
        )

        assert fake_store.calls == []

    @pytest.mark.parametrize(
        "event_type",
        ["payment_intent.succeeded", "customer.created", "charge.refunded"],
    )
    async def test_unhandled_types_are_ignored(self, dispatcher, fake_store, event_type):
        handled = await dispatcher.dispatch(_make_stripe_event(event_type, {"id": "obj_1"}))

        assert handled is False
        assert fake_store.calls == []

    async def test_storage_failure_is_swallowed(self, dispatcher, fake_store):
        fake_store.fail_with = StorageError("connection refused")

        handled = await dispatcher.dispatch(
            _make_stripe_event("customer.subscription.created", _subscription())
        )

        assert handled is True
        assert fake_store.calls == ["upsert_subscription"]
        assert fake_store.subscriptions == {}

    async def test_malformed_object_is_swallowed(self, dispatcher, fake_store):
        handled = await dispatcher.dispatch(
            _make_stripe_event("customer.subscription.created", _subscription(status=None))
        )

        assert handled is True
        assert fake_store.writes == 0

    @pytest.mark.parametrize("data", [["not", "a", "mapping"], {"object": "sub_test_1"}, None])
    async def test_non_mapping_data_is_swallowed(self, dispatcher, fake_store, data):
        event = {"id": "evt_test_001", "type": "customer.subscription.deleted", "data": data}

        handled = await dispatcher.dispatch(event)

        assert handled is True
        assert fake_store.calls == []
