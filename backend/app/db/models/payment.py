"""Append-only log of completed checkouts."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, Integer, String

from app.db.base import Base


class Payment(Base):
    """One row per completed checkout session. Never updated."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)

    # Not unique: redelivered webhooks are recorded as distinct rows
    stripe_payment_intent_id = Column(String(255), nullable=False, index=True)

    amount = Column(Integer, nullable=False)  # minor units (cents)
    currency = Column(String(10), nullable=False)
    status = Column(String(50), nullable=False)
    plan = Column(String(50), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
