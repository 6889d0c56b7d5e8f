"""Webhook ingress — signature verification and envelope parsing.

Raw body + Stripe-Signature header in, WebhookEnvelope out:
    1. Verify the HMAC signature and timestamp tolerance (replay protection)
    2. Parse the verified body into {event_id, event_type, payload}

Errors:
- WebhookAuthError    — missing/invalid signature or stale timestamp (400, terminal)
- WebhookPayloadError — verified body that isn't a Stripe event (400, protocol drift)
"""

import json
import logging
from dataclasses import dataclass, field

import stripe
from flask import current_app

logger = logging.getLogger(__name__)


class WebhookError(Exception):
    """Base class for webhook rejections. Never worth a retry."""


class WebhookAuthError(WebhookError):
    pass


class WebhookPayloadError(WebhookError):
    pass


@dataclass(frozen=True)
class WebhookEnvelope:
    event_id: str
    event_type: str
    payload: dict = field(default_factory=dict)  # event.data.object


def verify_webhook_signature(payload, sig_header, secret=None, tolerance=None):
    """Check the Stripe-Signature header against the raw body.

    Raises WebhookAuthError on a missing header, a bad signature, or a
    timestamp outside the tolerance window.
    """
    if not sig_header:
        raise WebhookAuthError("Missing signature")

    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    if secret is None:
        secret = current_app.config["STRIPE_WEBHOOK_SECRET"]
    if tolerance is None:
        tolerance = current_app.config["WEBHOOK_TOLERANCE_SECONDS"]

    try:
        stripe.WebhookSignature.verify_header(payload, sig_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        raise WebhookAuthError(f"Invalid signature: {e}") from e


def parse_envelope(payload):
    """Parse a verified body into a WebhookEnvelope.

    Raises WebhookPayloadError when the body isn't a well-formed event.
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise WebhookPayloadError(f"Invalid JSON payload: {e}") from e

    if not isinstance(data, dict):
        raise WebhookPayloadError("Event payload must be a JSON object")

    event_id = data.get("id")
    event_type = data.get("type")
    if not isinstance(event_id, str) or not event_id:
        raise WebhookPayloadError("Event is missing an id")
    if not isinstance(event_type, str) or not event_type:
        raise WebhookPayloadError(f"Event {event_id} is missing a type")

    data_field = data.get("data")
    obj = data_field.get("object") if isinstance(data_field, dict) else None
    if not isinstance(obj, dict):
        raise WebhookPayloadError(f"Event {event_id} ({event_type}) has no data.object")

    return WebhookEnvelope(event_id=event_id, event_type=event_type, payload=obj)


def receive_webhook(payload, sig_header):
    """Verify, then parse. Returns a WebhookEnvelope."""
    verify_webhook_signature(payload, sig_header)
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    return parse_envelope(payload)
