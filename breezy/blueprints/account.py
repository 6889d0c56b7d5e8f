"""Account blueprint — /api/account/*

Read-only entitlement and payment info for the logged-in user.
"""

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from breezy.services.entitlement_service import get_entitlement
from breezy.services.payment_service import get_payment_history

account_bp = Blueprint("account", __name__, url_prefix="/api/account")


@account_bp.route("/entitlement")
@login_required
def entitlement():
    """Current tier, status and content access level."""
    return jsonify(get_entitlement(current_user.id))


@account_bp.route("/payments")
@login_required
def payments():
    """Payment history across the user's subscriptions, newest first."""
    return jsonify({
        "payments": [
            {
                "amount": str(p.amount),
                "currency": p.currency_code,
                "status": p.status,
                "description": p.description,
                "receipt_url": p.receipt_url,
                "failure_reason": p.failure_reason,
                "paid_at": p.paid_at.isoformat() if p.paid_at else None,
                "stripe_subscription_id": p.subscription.stripe_subscription_id,
            }
            for p in get_payment_history(current_user.id)
        ]
    })
