"""Webhook event model (idempotency table).

Every webhook event is recorded by its Stripe event ID once its handler
has run. Before processing any event, the router checks this table. If
the event_id already exists, it returns 200 immediately — preventing
double-writes from Stripe retries.
"""

import uuid

from breezy.extensions import db


class WebhookEvent(db.Model):
    __tablename__ = "webhook_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    event_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "evt_1Abc..."
    event_type = db.Column(
        db.String(255), nullable=False
    )  # e.g. "checkout.session.completed"
    processed_at = db.Column(
        db.DateTime(timezone=True), nullable=False, index=True
    )

    def __repr__(self):
        return f"<WebhookEvent {self.event_id} ({self.event_type})>"
