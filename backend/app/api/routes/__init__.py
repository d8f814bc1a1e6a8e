from fastapi import APIRouter

from app.api.routes import health, payments, plans, subscriptions, webhooks

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(plans.router, tags=["plans"])
api_router.include_router(payments.router, tags=["payments"])
api_router.include_router(subscriptions.router, tags=["subscriptions"])
api_router.include_router(webhooks.router, tags=["webhooks"])
