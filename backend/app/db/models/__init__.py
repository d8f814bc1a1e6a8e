"""Re-export all models so Base.metadata sees them."""

from app.db.models.payment import Payment
from app.db.models.subscription import Subscription

__all__ = [
    "Payment",
    "Subscription",
]
