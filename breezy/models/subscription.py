"""Subscription model.

One row per Stripe subscription, keyed by stripe_subscription_id. Every
webhook write is an upsert on that key; rows are never deleted — a
cancelled subscription keeps its row for history and a re-subscribe
creates a new one.

user_id is a plain string, not a foreign key: until a matching user
exists it holds a placeholder ("pending_<stripe customer id>") and the
row is resolved later by email (see link_pending_subscriptions).
"""

import uuid

from breezy.extensions import db

PENDING_USER_PREFIX = "pending_"


def pending_user_id(stripe_customer_id):
    """Synthesize the placeholder owner id for a customer with no user yet."""
    return f"{PENDING_USER_PREFIX}{stripe_customer_id}"


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    TIERS = ["free", "starter", "pro", "enterprise"]
    STATUSES = ["active", "trial", "past_due", "cancelled", "expired"]
    BILLING_CYCLES = ["monthly", "yearly"]

    # Statuses that still grant the subscription's tier.
    # past_due keeps access while Stripe retries the card.
    ENTITLED_STATUSES = ("active", "trial", "past_due")

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(db.String(255), nullable=False, index=True)
    customer_email = db.Column(db.String(255), nullable=True, index=True)
    tier = db.Column(db.String(50), nullable=False, default="free")
    status = db.Column(db.String(50), nullable=False)
    billing_cycle = db.Column(db.String(20), nullable=True)  # monthly | yearly
    current_period_start = db.Column(db.DateTime(timezone=True), nullable=True)
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=True)
    stripe_customer_id = db.Column(db.String(255), nullable=True, index=True)
    stripe_subscription_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "sub_1Abc..." — the reconciliation key
    stripe_price_id = db.Column(db.String(255), nullable=True)
    auto_renew = db.Column(db.Boolean, default=True, nullable=False)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ended_at = db.Column(
        db.DateTime(timezone=True), nullable=True
    )  # set only by customer.subscription.deleted — terminal
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    payments = db.relationship(
        "Payment", back_populates="subscription", lazy="dynamic"
    )

    @property
    def is_pending_linkage(self):
        return self.user_id.startswith(PENDING_USER_PREFIX)

    @property
    def is_entitled(self):
        return self.status in self.ENTITLED_STATUSES

    def __repr__(self):
        return f"<Subscription {self.stripe_subscription_id} {self.tier} ({self.status})>"
