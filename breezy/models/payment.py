"""Payment model.

Append-only: one row per processed invoice outcome (completed or failed).
Amounts are stored in currency units (Stripe's minor units / 100).

user_id is the owner at the time the invoice was processed and is never
rewritten. A payment recorded while its subscription was held by a
pending placeholder keeps that placeholder; the current owner is always
Payment.subscription.user_id (see owner_id).
"""

import uuid

from breezy.extensions import db


class Payment(db.Model):
    __tablename__ = "payments"

    STATUSES = ["pending", "completed", "failed", "refunded", "cancelled"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    subscription_id = db.Column(
        db.String(36), db.ForeignKey("subscriptions.id"), nullable=False
    )
    user_id = db.Column(db.String(255), nullable=False)  # owner when recorded
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency_code = db.Column(db.String(3), nullable=False)  # ISO 4217, upper-case
    status = db.Column(db.String(50), nullable=False)  # completed | failed
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True)
    stripe_invoice_id = db.Column(db.String(255), nullable=True, index=True)
    description = db.Column(db.String(500), nullable=True)
    receipt_url = db.Column(db.Text, nullable=True)
    failure_reason = db.Column(db.Text, nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    subscription = db.relationship("Subscription", back_populates="payments")

    @property
    def owner_id(self):
        """Current owner, resolved through the subscription."""
        return self.subscription.user_id

    def __repr__(self):
        return f"<Payment {self.amount} {self.currency_code} ({self.status})>"
