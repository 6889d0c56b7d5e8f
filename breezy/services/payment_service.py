"""Payment service — records invoice outcomes as append-only Payment rows.

- invoice.paid / invoice.payment_succeeded → Payment(status=completed)
- invoice.payment_failed → Subscription.status=past_due + Payment(status=failed)

An invoice for a subscription we haven't reconciled yet is logged and
skipped rather than raised: invoice and subscription events race, and a
retry wouldn't make the lookup succeed any sooner.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from breezy.extensions import db
from breezy.models.payment import Payment
from breezy.models.subscription import Subscription
from breezy.services.audit_service import log_billing_audit
from breezy.services.stripe_service import (
    invoice_subscription_id,
    object_id,
    retrieve_payment_intent,
    timestamp_to_datetime,
)

logger = logging.getLogger(__name__)


def to_currency_units(amount_minor):
    """Stripe minor units (cents) → Decimal currency units."""
    return Decimal(int(amount_minor or 0)) / Decimal(100)


def _find_invoice_subscription(envelope):
    """Return the Subscription an invoice belongs to, or None (logged)."""
    invoice = envelope.payload
    stripe_subscription_id = invoice_subscription_id(invoice)
    if not stripe_subscription_id:
        logger.info(
            f"{envelope.event_type} {envelope.event_id}: invoice {invoice.get('id')} "
            f"is not for a subscription, skipping"
        )
        return None

    sub = Subscription.query.filter_by(
        stripe_subscription_id=stripe_subscription_id
    ).first()
    if not sub:
        logger.warning(
            f"{envelope.event_type} {envelope.event_id}: no subscription found for "
            f"invoice {invoice.get('id')} (sub={stripe_subscription_id})"
        )
    return sub


def payment_failure_reason(invoice):
    """Why an invoice's charge failed.

    The decline message lives on the PaymentIntent's last_payment_error.
    An unexpanded PaymentIntent is fetched from Stripe (errors propagate so
    the event is retried). The invoice's own finalization error is the
    last resort.
    """
    payment_intent = invoice.get("payment_intent")
    if payment_intent and not isinstance(payment_intent, dict):
        payment_intent = retrieve_payment_intent(payment_intent)

    payment_error = (payment_intent or {}).get("last_payment_error") or {}
    if payment_error.get("message"):
        return payment_error["message"]

    finalization_error = invoice.get("last_finalization_error") or {}
    return finalization_error.get("message")


def record_payment(sub, invoice, status, amount_minor, description,
                   paid_at=None, failure_reason=None):
    """Insert a Payment row for ``invoice``. Flushed, not committed."""
    payment = Payment(
        subscription_id=sub.id,
        user_id=sub.user_id,
        amount=to_currency_units(amount_minor),
        currency_code=(invoice.get("currency") or "usd").upper(),
        status=status,
        stripe_payment_intent_id=object_id(invoice.get("payment_intent")),
        stripe_invoice_id=invoice.get("id"),
        description=description,
        receipt_url=invoice.get("hosted_invoice_url"),
        failure_reason=failure_reason,
        paid_at=paid_at,
    )
    db.session.add(payment)
    db.session.flush()
    return payment


def handle_invoice_paid(envelope):
    """Handle invoice.paid / invoice.payment_succeeded.

    Stripe sends both for the same invoice; the second finds the
    completed row already recorded and does nothing.
    """
    invoice = envelope.payload
    sub = _find_invoice_subscription(envelope)
    if not sub:
        return

    invoice_id = invoice.get("id")
    if invoice_id:
        existing = Payment.query.filter_by(
            stripe_invoice_id=invoice_id, status="completed"
        ).first()
        if existing:
            logger.info(f"{envelope.event_id}: invoice {invoice_id} already recorded")
            return

    transitions = invoice.get("status_transitions") or {}
    paid_at = timestamp_to_datetime(transitions.get("paid_at")) or datetime.now(timezone.utc)

    payment = record_payment(
        sub,
        invoice,
        status="completed",
        amount_minor=invoice.get("amount_paid"),
        description=invoice.get("description") or "Subscription payment",
        paid_at=paid_at,
    )

    log_billing_audit("payment.completed", {
        "event_id": envelope.event_id,
        "stripe_invoice_id": invoice_id,
        "stripe_subscription_id": sub.stripe_subscription_id,
        "amount": str(payment.amount),
        "currency": payment.currency_code,
    }, user_id=sub.user_id)

    logger.info(
        f"{envelope.event_id}: payment recorded for invoice {invoice_id} "
        f"({payment.amount} {payment.currency_code})"
    )


def handle_invoice_payment_failed(envelope):
    """Handle invoice.payment_failed.

    Moves the subscription to past_due (an ended subscription keeps its
    terminal status) and records the failed attempt.
    """
    invoice = envelope.payload
    sub = _find_invoice_subscription(envelope)
    if not sub:
        return

    previous_status = sub.status
    if sub.ended_at is None and sub.status != "past_due":
        sub.status = "past_due"
        db.session.flush()

    attempt = invoice.get("attempt_count")
    failure_reason = payment_failure_reason(invoice)

    record_payment(
        sub,
        invoice,
        status="failed",
        amount_minor=invoice.get("amount_due"),
        description=f"Payment attempt {attempt} failed" if attempt else "Payment failed",
        failure_reason=failure_reason,
    )

    log_billing_audit("payment.failed", {
        "event_id": envelope.event_id,
        "stripe_invoice_id": invoice.get("id"),
        "stripe_subscription_id": sub.stripe_subscription_id,
        "previous_status": previous_status,
        "status": sub.status,
        "amount_due": invoice.get("amount_due"),
        "failure_reason": failure_reason,
    }, user_id=sub.user_id)

    logger.info(
        f"{envelope.event_id}: payment failed for subscription "
        f"{sub.stripe_subscription_id} (status={sub.status})"
    )


def get_payment_history(user_id):
    """Payments for every subscription ``user_id`` currently owns, newest first.

    Goes through the subscription so payments recorded before a pending
    subscription was linked still show up for the linked user.
    """
    return (
        Payment.query
        .join(Subscription, Payment.subscription_id == Subscription.id)
        .filter(Subscription.user_id == user_id)
        .order_by(Payment.created_at.desc())
        .all()
    )
