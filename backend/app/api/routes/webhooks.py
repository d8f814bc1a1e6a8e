"""Stripe webhook receiver."""

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Request

from app.core.config import Settings, get_settings
from app.schemas.billing import WebhookAck
from app.services.webhook_dispatcher import (
    WebhookDispatcher,
    construct_verified_event,
    get_webhook_dispatcher,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/webhooks/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    """Verify a Stripe webhook and acknowledge it.

    The state mutation runs after the response is sent; its outcome never
    changes the acknowledgment.
    """
    body = await request.body()
    event = construct_verified_event(body, request.headers.get("stripe-signature"), settings)

    logger.info("stripe_webhook_received", event_type=event["type"], event_id=event.get("id"))
    background_tasks.add_task(dispatcher.dispatch, event)

    return WebhookAck()
