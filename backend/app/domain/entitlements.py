"""Invitation entitlements derived from a stored subscription.

Pure function, no DB access.
"""

from dataclasses import dataclass

from app.domain.events import SubscriptionStatus
from app.domain.plans import PLANS

FREE_PLAN = "free"
FREE_INVITE_LIMIT = 5

# Statuses that grant the paid plan's limits
ENTITLED_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})


@dataclass(frozen=True)
class Entitlements:
    plan: str
    is_active: bool
    can_create_invite: bool
    invite_limit: int  # -1 = unlimited


def compute_entitlements(plan: str | None, status: str | None) -> Entitlements:
    """Map a subscription's plan and status to invitation entitlements.

    Args:
        plan: Stored plan tag, or None when the user has no subscription row
        status: Stored subscription status, or None when there is no row

    Rules:
        - No row, or a plan outside the catalog: free tier, 5 invitations
        - Paid plan in an entitled status (active, trialing): the plan's limit
        - Paid plan in any other status (past_due, canceled, ...): no invitations
    """
    paid_plan = PLANS.get(plan) if plan else None
    if paid_plan is None:
        return Entitlements(
            plan=FREE_PLAN,
            is_active=True,
            can_create_invite=True,
            invite_limit=FREE_INVITE_LIMIT,
        )

    if status in ENTITLED_STATUSES:
        return Entitlements(
            plan=paid_plan.slug,
            is_active=True,
            can_create_invite=True,
            invite_limit=paid_plan.invite_limit,
        )

    return Entitlements(
        plan=paid_plan.slug,
        is_active=False,
        can_create_invite=False,
        invite_limit=0,
    )
