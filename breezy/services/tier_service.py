"""Tier service — Stripe price/status vocabulary → internal vocabulary.

Responsible for:
- TierPriceTable: Stripe price ID → internal tier, with one named fallback
- Reverse lookup (tier + billing cycle → price ID) for checkout
- Translating Stripe subscription statuses to internal statuses
- Deriving the billing cycle from a Stripe price's recurring interval

Everything here is pure: no database, no Stripe calls.
"""

import logging

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_TIER = "free"

# Stripe subscription.status → internal Subscription.status
STRIPE_STATUS_MAP = {
    "active": "active",
    "trialing": "trial",
    "past_due": "past_due",
    "canceled": "cancelled",
    "unpaid": "cancelled",
    "incomplete": "expired",
    "incomplete_expired": "expired",
    "paused": "expired",
}

# (config key, tier, billing cycle)
PRICE_CONFIG_KEYS = [
    ("STRIPE_PRICE_STARTER", "starter", "monthly"),
    ("STRIPE_PRICE_PRO", "pro", "monthly"),
    ("STRIPE_PRICE_ENTERPRISE", "enterprise", "monthly"),
    ("STRIPE_PRICE_STARTER_YEARLY", "starter", "yearly"),
    ("STRIPE_PRICE_PRO_YEARLY", "pro", "yearly"),
    ("STRIPE_PRICE_ENTERPRISE_YEARLY", "enterprise", "yearly"),
]


class TierPriceTable:
    """Static mapping of Stripe price IDs to internal tiers.

    Unknown (or missing) price IDs resolve to ``fallback_tier`` — a single
    named default rather than the last branch of an if/else chain.
    """

    def __init__(self, entries, fallback_tier=DEFAULT_FALLBACK_TIER):
        # entries: {price_id: (tier, billing_cycle)}
        self._entries = dict(entries)
        self.fallback_tier = fallback_tier

    @classmethod
    def from_config(cls, app_config):
        """Build the table from STRIPE_PRICE_* config keys; unset keys are skipped."""
        entries = {}
        for key, tier, cycle in PRICE_CONFIG_KEYS:
            price_id = app_config.get(key)
            if price_id:
                entries[price_id] = (tier, cycle)
        return cls(
            entries,
            fallback_tier=app_config.get("TIER_FALLBACK") or DEFAULT_FALLBACK_TIER,
        )

    def resolve_tier(self, price_id) -> str:
        entry = self._entries.get(price_id) if price_id else None
        if entry is None:
            if price_id:
                logger.warning(
                    f"Unknown Stripe price {price_id}, using fallback tier {self.fallback_tier}"
                )
            return self.fallback_tier
        return entry[0]

    def price_for(self, tier, billing_cycle="monthly"):
        """Reverse lookup used by checkout. Returns None when not configured."""
        for price_id, (entry_tier, entry_cycle) in self._entries.items():
            if entry_tier == tier and entry_cycle == billing_cycle:
                return price_id
        return None

    def items(self):
        return self._entries.items()

    def __contains__(self, price_id):
        return price_id in self._entries

    def __len__(self):
        return len(self._entries)


def translate_status(stripe_status) -> str:
    """Map a Stripe subscription status onto the internal status taxonomy.

    Unknown statuses are treated as active (Stripe adds statuses rarely and
    an unrecognised one has never meant "lost access") but are logged.
    """
    status = STRIPE_STATUS_MAP.get(stripe_status)
    if status is None:
        logger.warning(f"Unknown Stripe subscription status {stripe_status!r}, treating as active")
        return "active"
    return status


def billing_cycle_from_price(price):
    """Derive monthly/yearly from a Stripe price object (dict). None if no price."""
    if not price:
        return None
    recurring = price.get("recurring") or {}
    if recurring.get("interval") == "year":
        return "yearly"
    return "monthly"
