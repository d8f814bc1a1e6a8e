"""BillingStore: persistence for the ``payments`` and ``subscriptions`` tables.

Every write is a single-row operation in its own session. Subscription updates
are matched by Stripe subscription id only; an update for an unknown id writes
nothing and reports ``False``.
"""

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import StorageError
from app.db.base import get_session_factory
from app.db.models.payment import Payment
from app.db.models.subscription import Subscription
from app.domain.events import CheckoutCompleted, SubscriptionCreated

# Columns an update is allowed to touch
_MUTABLE_FIELDS = frozenset({
    "status",
    "current_period_start",
    "current_period_end",
    "cancel_at_period_end",
})


class BillingStore:
    """Backend store access for payment and subscription mirrors."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def insert_payment(self, checkout: CheckoutCompleted) -> Payment:
        """Append a payment row. Duplicates are accepted as distinct rows."""
        payment = Payment(
            user_id=checkout.user_id,
            stripe_payment_intent_id=checkout.payment_intent_id,
            amount=checkout.amount,
            currency=checkout.currency,
            status=checkout.status,
            plan=checkout.plan,
        )
        try:
            async with self._session_factory() as session:
                session.add(payment)
                await session.commit()
                await session.refresh(payment)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to insert payment: {exc}") from exc
        return payment

    async def upsert_subscription(self, created: SubscriptionCreated) -> Subscription:
        """Insert or overwrite the row keyed by ``created.subscription_id``."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Subscription).where(
                        Subscription.stripe_subscription_id == created.subscription_id
                    )
                )
                subscription = result.scalar_one_or_none()
                if subscription is None:
                    subscription = Subscription(stripe_subscription_id=created.subscription_id)
                    session.add(subscription)

                subscription.user_id = created.user_id
                subscription.plan = created.plan
                subscription.stripe_customer_id = created.customer_id
                subscription.status = created.status
                subscription.current_period_start = created.current_period_start
                subscription.current_period_end = created.current_period_end
                subscription.cancel_at_period_end = created.cancel_at_period_end
                subscription.updated_at = datetime.now(UTC)

                await session.commit()
                await session.refresh(subscription)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to upsert subscription: {exc}") from exc
        return subscription

    async def update_subscription(self, stripe_subscription_id: str, **changes) -> bool:
        """Update the row matched by Stripe subscription id.

        Returns:
            True if a row was updated, False if no row matched (no write)
        """
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Not updatable: {sorted(unknown)}")

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Subscription).where(
                        Subscription.stripe_subscription_id == stripe_subscription_id
                    )
                )
                subscription = result.scalar_one_or_none()
                if subscription is None:
                    return False

                for field, value in changes.items():
                    setattr(subscription, field, value)
                subscription.updated_at = datetime.now(UTC)
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to update subscription: {exc}") from exc
        return True

    async def get_subscription_for_user(self, user_id: str) -> Subscription | None:
        """Return the user's most recently updated subscription, if any."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Subscription)
                    .where(Subscription.user_id == user_id)
                    .order_by(Subscription.updated_at.desc(), Subscription.id.desc())
                    .limit(1)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read subscription: {exc}") from exc

    async def list_payments(self, user_id: str) -> list[Payment]:
        """Return the user's payments, newest first."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Payment)
                    .where(Payment.user_id == user_id)
                    .order_by(Payment.created_at.desc(), Payment.id.desc())
                )
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read payments: {exc}") from exc


def get_billing_store() -> BillingStore:
    """FastAPI dependency: store bound to the process-wide session factory."""
    return BillingStore(get_session_factory())
