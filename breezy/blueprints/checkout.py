"""Checkout blueprint — /api/checkout

POST {"tier": "...", "billing_cycle": "monthly"|"yearly"} → {"checkout_url": ...}

Only starts a Stripe Checkout Session; the subscription itself is
written when checkout.session.completed arrives on the webhook.
"""

import logging

import stripe
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from breezy.extensions import limiter
from breezy.services.stripe_service import create_checkout_session
from breezy.services.tier_service import TierPriceTable

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


@checkout_bp.route("/checkout", methods=["POST"])
@limiter.limit("10 per minute")
def checkout():
    """Create a Stripe Checkout Session for the requested tier."""
    data = request.get_json(silent=True) or {}
    tier = data.get("tier")
    billing_cycle = data.get("billing_cycle") or "monthly"

    table = TierPriceTable.from_config(current_app.config)
    price_id = table.price_for(tier, billing_cycle) if tier else None
    if not price_id:
        return jsonify({"error": "Invalid tier"}), 400

    customer_email = None
    user_id = None
    if current_user.is_authenticated:
        customer_email = current_user.email
        user_id = current_user.id

    try:
        checkout_url = create_checkout_session(
            price_id,
            customer_email=customer_email,
            user_id=user_id,
        )
    except stripe.StripeError as e:
        logger.error(f"Checkout session error for tier {tier}: {e}", exc_info=True)
        return jsonify({"error": "Failed to create checkout session"}), 500

    return jsonify({"checkout_url": checkout_url}), 200
