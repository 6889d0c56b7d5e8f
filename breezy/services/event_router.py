"""Event router — dispatches verified webhook envelopes to handlers.

Flow per event:
    1. Already in the idempotency store?  → ack, do nothing
    2. Run the handler for event_type (unknown types: log only)
    3. Record the event ID and commit — handler side effects and the
       idempotency record land in one transaction
    4. Any failure → rollback, HandlerResult(ok=False) → HTTP 500 → Stripe retries
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError

from breezy.services.event_store import WebhookEventStore
from breezy.services.payment_service import (
    handle_invoice_paid,
    handle_invoice_payment_failed,
)
from breezy.services.subscription_service import (
    handle_checkout_completed,
    handle_subscription_deleted,
    handle_subscription_updated,
)

logger = logging.getLogger(__name__)

PROCESSED = "processed"
ALREADY_PROCESSED = "already_processed"
IGNORED = "ignored"
FAILED = "failed"


@dataclass(frozen=True)
class HandlerResult:
    ok: bool
    status: str
    detail: Optional[str] = None


def default_handlers():
    return {
        "checkout.session.completed": handle_checkout_completed,
        "customer.subscription.updated": handle_subscription_updated,
        "customer.subscription.deleted": handle_subscription_deleted,
        "invoice.paid": handle_invoice_paid,
        "invoice.payment_succeeded": handle_invoice_paid,
        "invoice.payment_failed": handle_invoice_payment_failed,
    }


class EventRouter:

    def __init__(self, store, handlers=None):
        self.store = store
        self.handlers = default_handlers() if handlers is None else dict(handlers)

    def route(self, envelope) -> HandlerResult:
        event_id = envelope.event_id
        event_type = envelope.event_type
        session = self.store.session

        # --- Idempotency check ---
        if self.store.has_processed(event_id):
            logger.info(f"Duplicate webhook event {event_id} ({event_type}), skipping")
            return HandlerResult(True, ALREADY_PROCESSED)

        handler = self.handlers.get(event_type)
        try:
            if handler:
                logger.info(f"Processing {event_type} {event_id}")
                handler(envelope)
            else:
                logger.info(f"Unhandled event type {event_type} ({event_id}), acknowledging")

            self.store.mark_processed(event_id, event_type)
            session.commit()
        except IntegrityError as e:
            session.rollback()
            # A concurrent delivery of the same event committed first
            if self.store.has_processed(event_id):
                logger.info(f"Webhook event {event_id} ({event_type}) processed concurrently")
                return HandlerResult(True, ALREADY_PROCESSED)
            logger.error(f"Integrity error handling {event_type} {event_id}: {e}", exc_info=True)
            return HandlerResult(False, FAILED, str(e))
        except Exception as e:
            session.rollback()
            logger.error(f"Error handling {event_type} {event_id}: {e}", exc_info=True)
            return HandlerResult(False, FAILED, str(e))

        return HandlerResult(True, PROCESSED if handler else IGNORED)


def build_router():
    """Router wired to the database-backed idempotency store."""
    return EventRouter(WebhookEventStore())
