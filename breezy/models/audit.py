"""Audit event model.

Logs every reconciliation with both the Stripe-side values (status,
price id) and the internal ones they were mapped to (status, tier).
"""

import uuid

from breezy.extensions import db


class AuditEvent(db.Model):
    __tablename__ = "audit_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(db.String(255), nullable=True)
    action = db.Column(db.String(255), nullable=False)  # e.g. "subscription.updated"
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # extra context, named metadata_ to avoid Python builtin clash
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<AuditEvent {self.action}>"
