"""Entitlement reads — which tier a user currently holds.

Pages feed the resulting tier to access_service; nothing here calls Stripe.
"""

from flask import current_app

from breezy.models.subscription import Subscription
from breezy.services.access_service import (
    get_tiered_content,
    has_starter_access,
    resolve_access_level,
)


def get_current_subscription(user_id):
    """Most recent subscription that still grants its tier, or None."""
    return (
        Subscription.query
        .filter_by(user_id=user_id)
        .filter(Subscription.status.in_(Subscription.ENTITLED_STATUSES))
        .order_by(Subscription.created_at.desc())
        .first()
    )


def get_user_tier(user_id):
    sub = get_current_subscription(user_id)
    return sub.tier if sub else "free"


def get_entitlement(user_id):
    sub = get_current_subscription(user_id)
    tier = sub.tier if sub else "free"
    return {
        "tier": tier,
        "status": sub.status if sub else None,
        "access_level": resolve_access_level(tier),
        "has_paid_access": has_starter_access(tier),
        "current_period_end": (
            sub.current_period_end.isoformat()
            if sub and sub.current_period_end else None
        ),
        "auto_renew": sub.auto_renew if sub else False,
    }


def get_content_for_user(user_id, content):
    """Resolve the content variant ``user_id`` may read right now.

    The tier is read fresh on every call so an upgrade or cancellation
    shows up on the next page load.
    """
    return get_tiered_content(
        get_user_tier(user_id),
        content,
        preview_length=current_app.config["CONTENT_PREVIEW_LENGTH"],
    )
