"""Idempotency store for webhook events.

Keyed by Stripe event ID → processed timestamp, persisted in the
webhook_events table so it survives restarts (Stripe retries for days).

mark_processed() only flushes: the router commits it in the same
transaction as the handler's side effects, so a crash mid-handler
leaves the event unmarked and safe to retry.
"""

import logging
from datetime import datetime, timedelta, timezone

from breezy.extensions import db
from breezy.models.webhook_event import WebhookEvent

logger = logging.getLogger(__name__)


class WebhookEventStore:

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def has_processed(self, event_id) -> bool:
        return (
            self.session.query(WebhookEvent.id)
            .filter_by(event_id=event_id)
            .first()
        ) is not None

    def mark_processed(self, event_id, event_type) -> None:
        self.session.add(WebhookEvent(
            event_id=event_id,
            event_type=event_type,
            processed_at=datetime.now(timezone.utc),
        ))
        self.session.flush()

    def prune(self, retention_days) -> int:
        """Delete records older than retention_days. Returns the number removed."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        removed = (
            self.session.query(WebhookEvent)
            .filter(WebhookEvent.processed_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.session.commit()
        logger.info(f"Pruned {removed} webhook events processed before {cutoff.isoformat()}")
        return removed
