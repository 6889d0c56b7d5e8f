"""Stripe service — all Stripe API calls and payload shape helpers.

Responsible for:
- Confirmatory reads of subscriptions and payment intents (never trust
  a webhook snapshot blindly for financial state)
- Creating Stripe Checkout Sessions (subscriptions)
- Reading fields whose location differs between Stripe API versions
"""

import logging
from datetime import datetime, timezone

import stripe
from flask import current_app

logger = logging.getLogger(__name__)


def _configure():
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]


def to_dict(obj):
    """Convert a StripeObject (or plain dict from a webhook body) to a dict."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    if hasattr(obj, "to_dict_recursive"):
        return obj.to_dict_recursive()
    return obj.to_dict()


def object_id(value):
    """Stripe fields may be an ID string or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def timestamp_to_datetime(ts):
    if not ts:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def first_item(sub_data):
    items = sub_data.get("items")
    if items and items.get("data"):
        return items["data"][0]
    return {}


def first_price(sub_data):
    return first_item(sub_data).get("price") or {}


def extract_period(sub_data, field):
    """Extract current_period_start / current_period_end from a subscription.

    In newer Stripe API versions, the period bounds have moved from the
    subscription top level to items.data[0]. This helper checks both
    locations.

    Returns a timezone-aware datetime or None.
    """
    # Try top-level first (older API versions / webhook payloads)
    ts = sub_data.get(field)

    # Fall back to items.data[0] (newer API versions)
    if not ts:
        ts = first_item(sub_data).get(field)

    return timestamp_to_datetime(ts)


def is_cancelling(sub_data):
    """Stripe uses cancel_at_period_end OR cancel_at (a future timestamp)
    to indicate the subscription is set to cancel. Treat either as cancelling.
    """
    return bool(
        sub_data.get("cancel_at_period_end", False)
        or sub_data.get("cancel_at") is not None
    )


def invoice_subscription_id(invoice):
    """Subscription ID an invoice belongs to, or None for one-off invoices.

    Newer API versions nest it under parent.subscription_details.
    """
    sub_id = object_id(invoice.get("subscription"))
    if sub_id:
        return sub_id
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return object_id(details.get("subscription"))


# ──────────────────────────────────────────────
# API calls
# ──────────────────────────────────────────────

def retrieve_subscription(stripe_subscription_id):
    """Fetch the current subscription state from Stripe.

    Raises stripe.StripeError on API failures — callers let it propagate
    so the webhook is retried.
    """
    _configure()
    sub = stripe.Subscription.retrieve(stripe_subscription_id)
    return to_dict(sub)


def retrieve_payment_intent(payment_intent_id):
    """Fetch a PaymentIntent, mainly for its last_payment_error.

    Raises stripe.StripeError on API failures so the webhook is retried.
    """
    _configure()
    payment_intent = stripe.PaymentIntent.retrieve(payment_intent_id)
    return to_dict(payment_intent)


def create_checkout_session(price_id, customer_email=None, user_id=None):
    """Create a subscription-mode Stripe Checkout Session.

    The resulting checkout.session.completed webhook is what creates the
    Subscription row; nothing is written locally here.

    Returns the Stripe checkout session URL.
    Raises stripe.StripeError on API failures.
    """
    _configure()
    app_base_url = current_app.config["APP_BASE_URL"]

    params = {
        "mode": "subscription",
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": f"{app_base_url}/dashboard?checkout=success",
        "cancel_url": f"{app_base_url}/pricing",
        "allow_promotion_codes": True,
    }
    if customer_email:
        params["customer_email"] = customer_email
    if user_id:
        params["client_reference_id"] = user_id
        params["metadata"] = {"user_id": user_id}

    session = stripe.checkout.Session.create(**params)
    return session.url
