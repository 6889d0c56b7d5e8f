"""Webhooks blueprint — /api/stripe

Receives Stripe webhook events. CSRF-exempt.
Raw body is required for signature verification.
"""

import logging

from flask import Blueprint, request, jsonify

from breezy.services.event_router import ALREADY_PROCESSED, build_router
from breezy.services.webhook_service import (
    WebhookAuthError,
    WebhookPayloadError,
    receive_webhook,
)

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api")


@webhooks_bp.route("/stripe", methods=["POST"])
def stripe_webhook():
    """Receive and process Stripe webhook events.

    1. Get raw body (required for signature verification)
    2. Verify signature + timestamp with STRIPE_WEBHOOK_SECRET
    3. Route to the event handler (idempotent via webhook_events table)
    4. Return 200 to acknowledge, 400 to reject for good, 500 to ask for a retry

    CSRF is exempted for this blueprint in create_app().
    """
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature")

    # --- Verify signature, parse envelope ---
    try:
        envelope = receive_webhook(payload, sig_header)
    except WebhookAuthError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        error = "Missing signature" if not sig_header else "Invalid signature"
        return jsonify({"error": error}), 400
    except WebhookPayloadError as e:
        logger.warning(f"Webhook payload rejected: {e}")
        return jsonify({"error": "Invalid payload"}), 400

    # --- Process event (idempotent) ---
    result = build_router().route(envelope)

    if result.ok:
        body = {"received": True}
        if result.status == ALREADY_PROCESSED:
            body["skipped"] = True
        return jsonify(body), 200

    logger.error(
        f"Webhook processing failed for {envelope.event_type} {envelope.event_id}: {result.detail}"
    )
    return jsonify({"error": "Webhook handler failed"}), 500
