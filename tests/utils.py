"""Helpers for building signed Stripe webhook requests and seed rows."""

import hashlib
import hmac
import json
import time

from breezy.extensions import db
from breezy.models.subscription import Subscription

WEBHOOK_SECRET = "whsec_test_fake"


def sign_payload(payload, secret=WEBHOOK_SECRET, timestamp=None):
    """Build a Stripe-Signature header the way Stripe does (HMAC-SHA256 over 't.payload')."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_id, event_type, obj):
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


def post_event(client, event, **sign_kwargs):
    """POST a signed event to the webhook endpoint."""
    payload = json.dumps(event)
    return client.post(
        "/api/stripe",
        data=payload,
        content_type="application/json",
        headers={"Stripe-Signature": sign_payload(payload, **sign_kwargs)},
    )


def add_subscription(stripe_subscription_id="sub_1", user_id="user_1", **fields):
    """Insert a Subscription row directly (committed)."""
    values = {
        "tier": "pro",
        "status": "active",
        "stripe_customer_id": "cus_1",
        "auto_renew": True,
    }
    values.update(fields)
    sub = Subscription(
        stripe_subscription_id=stripe_subscription_id,
        user_id=user_id,
        **values,
    )
    db.session.add(sub)
    db.session.commit()
    return sub
