"""Audit helper shared by the reconciliation handlers."""

from breezy.extensions import db
from breezy.models.audit import AuditEvent


def log_billing_audit(action, metadata=None, user_id=None):
    """Log a billing-related audit event.

    Flushed, not committed — it lands in the same transaction as the
    change it describes.
    """
    event = AuditEvent(
        user_id=user_id,
        action=action,
        metadata_=metadata or {},
    )
    db.session.add(event)
    db.session.flush()
    return event
