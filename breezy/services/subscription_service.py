"""Subscription service — reconciles Stripe events into Subscription rows.

Responsible for:
- checkout.session.completed   → create/refresh the row, resolve the owner
- customer.subscription.updated → overwrite status/tier/period/auto-renew
- customer.subscription.deleted → terminal cancellation
- Linking placeholder-owned ("pending") rows to real users by email

Every write is an upsert keyed on stripe_subscription_id and is flushed,
never committed: the event router commits handler side effects together
with the idempotency record. Write failures propagate so Stripe retries.
"""

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func

from breezy.extensions import db
from breezy.models.subscription import (
    PENDING_USER_PREFIX,
    Subscription,
    pending_user_id,
)
from breezy.models.user import User
from breezy.services.audit_service import log_billing_audit
from breezy.services.stripe_service import (
    extract_period,
    first_price,
    is_cancelling,
    object_id,
    retrieve_subscription,
    timestamp_to_datetime,
)
from breezy.services.tier_service import (
    TierPriceTable,
    billing_cycle_from_price,
    translate_status,
)

logger = logging.getLogger(__name__)

# Fields a terminal (deleted) subscription still accepts.
OWNERSHIP_FIELDS = ("user_id", "customer_email", "stripe_customer_id")


def get_tier_table():
    return TierPriceTable.from_config(current_app.config)


def find_subscription(stripe_subscription_id):
    return Subscription.query.filter_by(
        stripe_subscription_id=stripe_subscription_id
    ).first()


def find_user_by_email(email):
    if not email:
        return None
    return User.query.filter(func.lower(User.email) == email.strip().lower()).first()


def upsert_subscription(stripe_subscription_id, **fields):
    """Create or update a Subscription keyed by stripe_subscription_id.

    Overwrites every field passed (None included). A row already ended by
    customer.subscription.deleted only takes ownership fields, so a late
    event can't resurrect it.

    Returns the Subscription instance.
    """
    sub = find_subscription(stripe_subscription_id)

    if sub is None:
        sub = Subscription(stripe_subscription_id=stripe_subscription_id, **fields)
        db.session.add(sub)
    elif sub.ended_at is not None:
        logger.warning(
            f"Subscription {stripe_subscription_id} already ended, ignoring state change"
        )
        for name in OWNERSHIP_FIELDS:
            if fields.get(name) is not None:
                setattr(sub, name, fields[name])
    else:
        for name, value in fields.items():
            setattr(sub, name, value)

    db.session.flush()
    return sub


def _owner_for_customer(stripe_customer_id):
    """Best owner for a row created before its checkout event arrived.

    Reuses the user already linked to another subscription of this
    customer, else the customer's placeholder.
    """
    if stripe_customer_id:
        linked = (
            Subscription.query
            .filter_by(stripe_customer_id=stripe_customer_id)
            .filter(~Subscription.user_id.startswith(PENDING_USER_PREFIX))
            .order_by(Subscription.created_at.desc())
            .first()
        )
        if linked:
            return linked.user_id
    return pending_user_id(stripe_customer_id)


def _reassign(subscriptions, user):
    count = 0
    for sub in subscriptions:
        old_user_id = sub.user_id
        sub.user_id = user.id
        log_billing_audit("subscription.linked", {
            "stripe_subscription_id": sub.stripe_subscription_id,
            "placeholder_user_id": old_user_id,
        }, user_id=user.id)
        count += 1
    db.session.flush()
    return count


# ──────────────────────────────────────────────
# Event Handlers
# ──────────────────────────────────────────────

def handle_checkout_completed(envelope):
    """Handle checkout.session.completed.

    Needs the customer's email (to find or later link the user) and a
    subscription ID (one-time purchases don't create entitlements).
    Subscription details come from Stripe directly, not the webhook body.
    """
    session = envelope.payload
    customer_details = session.get("customer_details") or {}
    customer_email = customer_details.get("email") or session.get("customer_email")

    if not customer_email:
        logger.error(
            f"{envelope.event_type} {envelope.event_id}: no customer email in "
            f"session {session.get('id')}, cannot link subscription"
        )
        return

    stripe_subscription_id = object_id(session.get("subscription"))
    if not stripe_subscription_id:
        logger.info(
            f"{envelope.event_type} {envelope.event_id}: session {session.get('id')} "
            f"has no subscription (one-time payment), skipping"
        )
        return

    stripe_customer_id = object_id(session.get("customer"))

    # Confirmatory read — raises on Stripe/network failure so the event is retried
    sub_data = retrieve_subscription(stripe_subscription_id)

    price = first_price(sub_data)
    stripe_price_id = price.get("id")
    tier = get_tier_table().resolve_tier(stripe_price_id)

    user = find_user_by_email(customer_email)
    existing = find_subscription(stripe_subscription_id)
    if user:
        user_id = user.id
    elif existing and not existing.is_pending_linkage:
        user_id = existing.user_id
    else:
        # Store the subscription anyway; it's linked when the user
        # signs up / logs in with this email.
        user_id = pending_user_id(stripe_customer_id)
        logger.info(
            f"{envelope.event_id}: no user for {customer_email}, "
            f"subscription {stripe_subscription_id} held by {user_id}"
        )

    sub = upsert_subscription(
        stripe_subscription_id,
        user_id=user_id,
        customer_email=customer_email,
        stripe_customer_id=stripe_customer_id,
        stripe_price_id=stripe_price_id,
        tier=tier,
        status="active",
        billing_cycle=billing_cycle_from_price(price),
        current_period_start=extract_period(sub_data, "current_period_start"),
        current_period_end=extract_period(sub_data, "current_period_end"),
        auto_renew=not is_cancelling(sub_data),
    )

    # Rows created earlier by out-of-order events for this customer
    if user and stripe_customer_id:
        orphans = Subscription.query.filter_by(
            user_id=pending_user_id(stripe_customer_id)
        ).all()
        _reassign(orphans, user)

    log_billing_audit("subscription.created", {
        "event_id": envelope.event_id,
        "stripe_subscription_id": stripe_subscription_id,
        "stripe_price_id": stripe_price_id,
        "stripe_status": sub_data.get("status"),
        "tier": tier,
        "status": sub.status,
    }, user_id=sub.user_id)

    logger.info(
        f"{envelope.event_id}: subscription {stripe_subscription_id} reconciled "
        f"(tier={tier}, status={sub.status})"
    )


def handle_subscription_updated(envelope):
    """Handle customer.subscription.updated.

    The source of truth for ongoing tier changes: status, tier, period
    bounds, auto-renew and cancellation time are overwritten every time,
    even when unchanged. Creates the row if this event beat checkout.
    """
    sub_data = envelope.payload
    stripe_subscription_id = sub_data.get("id")
    stripe_customer_id = object_id(sub_data.get("customer"))

    stripe_status = sub_data.get("status")
    status = translate_status(stripe_status)
    price = first_price(sub_data)
    stripe_price_id = price.get("id")
    tier = get_tier_table().resolve_tier(stripe_price_id)

    fields = {
        "status": status,
        "tier": tier,
        "stripe_price_id": stripe_price_id,
        "billing_cycle": billing_cycle_from_price(price),
        "current_period_start": extract_period(sub_data, "current_period_start"),
        "current_period_end": extract_period(sub_data, "current_period_end"),
        "auto_renew": not is_cancelling(sub_data),
        "cancelled_at": timestamp_to_datetime(sub_data.get("canceled_at")),
    }

    if find_subscription(stripe_subscription_id) is None:
        logger.warning(
            f"{envelope.event_id}: subscription {stripe_subscription_id} not seen yet, "
            f"creating it ahead of checkout"
        )
        fields["user_id"] = _owner_for_customer(stripe_customer_id)
        fields["stripe_customer_id"] = stripe_customer_id

    sub = upsert_subscription(stripe_subscription_id, **fields)

    log_billing_audit("subscription.updated", {
        "event_id": envelope.event_id,
        "stripe_subscription_id": stripe_subscription_id,
        "stripe_status": stripe_status,
        "status": sub.status,
        "stripe_price_id": stripe_price_id,
        "tier": sub.tier,
        "cancel_at_period_end": sub_data.get("cancel_at_period_end", False),
    }, user_id=sub.user_id)

    logger.info(
        f"{envelope.event_id}: subscription {stripe_subscription_id} updated "
        f"(status={sub.status}, tier={sub.tier})"
    )


def handle_subscription_deleted(envelope):
    """Handle customer.subscription.deleted.

    Terminal: status=cancelled, auto_renew off, ended_at stamped. A
    re-subscribe arrives with a new subscription ID and gets a new row.
    """
    sub_data = envelope.payload
    stripe_subscription_id = sub_data.get("id")
    now = datetime.now(timezone.utc)

    fields = {
        "status": "cancelled",
        "cancelled_at": now,
        "auto_renew": False,
        "ended_at": now,
    }

    existing = find_subscription(stripe_subscription_id)
    if existing is None:
        # Record the terminal state so a late checkout can't activate it
        stripe_customer_id = object_id(sub_data.get("customer"))
        logger.warning(
            f"{envelope.event_id}: deleting unseen subscription {stripe_subscription_id}"
        )
        fields["user_id"] = _owner_for_customer(stripe_customer_id)
        fields["stripe_customer_id"] = stripe_customer_id
        fields["stripe_price_id"] = first_price(sub_data).get("id")
        fields["tier"] = get_tier_table().resolve_tier(fields["stripe_price_id"])
    elif existing.ended_at is not None:
        logger.info(f"{envelope.event_id}: subscription {stripe_subscription_id} already ended")
        return

    sub = upsert_subscription(stripe_subscription_id, **fields)

    log_billing_audit("subscription.deleted", {
        "event_id": envelope.event_id,
        "stripe_subscription_id": stripe_subscription_id,
        "stripe_status": sub_data.get("status"),
        "status": sub.status,
    }, user_id=sub.user_id)

    logger.info(f"{envelope.event_id}: subscription {stripe_subscription_id} cancelled")


# ──────────────────────────────────────────────
# Pending linkage
# ──────────────────────────────────────────────

def link_pending_subscriptions(user):
    """Hand placeholder-owned subscriptions to ``user`` by verified email.

    Flushes only; callers commit. Returns the number of rows linked.
    """
    if not user.email or not user.email_verified:
        return 0

    pending = (
        Subscription.query
        .filter(Subscription.user_id.startswith(PENDING_USER_PREFIX))
        .filter(func.lower(Subscription.customer_email) == user.email.strip().lower())
        .all()
    )
    count = _reassign(pending, user)
    if count:
        logger.info(f"Linked {count} pending subscription(s) to user {user.id}")
    return count


def link_all_pending_subscriptions():
    """Resolve every pending row whose email now matches a verified user.

    Commits. Returns the number of rows linked.
    """
    emails = [
        email for (email,) in (
            db.session.query(Subscription.customer_email)
            .filter(Subscription.user_id.startswith(PENDING_USER_PREFIX))
            .filter(Subscription.customer_email.isnot(None))
            .distinct()
            .all()
        )
    ]
    linked = 0
    for email in emails:
        user = find_user_by_email(email)
        if user:
            linked += link_pending_subscriptions(user)
    db.session.commit()
    return linked
