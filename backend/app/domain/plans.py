"""Static plan catalog and price resolution.

Pure domain logic: the only input from the outside world is the Settings
object carrying the Stripe price ids.
"""

from dataclasses import dataclass

from app.core.config import Settings
from app.core.exceptions import ConfigurationError, InvalidPlanError


@dataclass(frozen=True)
class Plan:
    """A paid subscription tier with a fixed price."""

    slug: str
    name: str
    amount: int  # minor units (cents)
    currency: str
    interval: str
    invite_limit: int  # -1 = unlimited
    features: tuple[str, ...] = ()


PLANS: dict[str, Plan] = {
    "standard": Plan(
        slug="standard",
        name="Standard",
        amount=10_000,
        currency="eur",
        interval="month",
        invite_limit=-1,
        features=(
            "Unlimited invitations",
            "All premium templates",
            "Advanced customization",
            "Detailed statistics",
            "Priority support",
        ),
    ),
    "premium": Plan(
        slug="premium",
        name="Premium",
        amount=20_000,
        currency="eur",
        interval="month",
        invite_limit=-1,
        features=(
            "Unlimited invitations",
            "All premium templates",
            "Advanced customization",
            "Detailed statistics",
            "Priority support",
            "Custom design",
            "Integration API",
        ),
    ),
}


def get_plan(slug: str | None) -> Plan:
    """Resolve a plan tag against the static table.

    Raises:
        InvalidPlanError: slug is missing or not a known plan
    """
    plan = PLANS.get(slug) if slug else None
    if plan is None:
        raise InvalidPlanError(slug)
    return plan


def price_id_for(plan: Plan, settings: Settings) -> str:
    """Return the Stripe Price id configured for a plan.

    Raises:
        ConfigurationError: the price id setting is empty
    """
    price_ids = {
        "standard": settings.stripe_price_standard,
        "premium": settings.stripe_price_premium,
    }
    price_id = price_ids.get(plan.slug)
    if not price_id:
        raise ConfigurationError(f"Stripe price id for plan '{plan.slug}' is not configured")
    return price_id


def missing_price_ids(settings: Settings) -> list[str]:
    """Names of price id settings that are unset."""
    required = {
        "stripe_price_standard": settings.stripe_price_standard,
        "stripe_price_premium": settings.stripe_price_premium,
    }
    return [name for name, value in required.items() if not value]
