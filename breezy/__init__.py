import os
import logging

import click
from flask import Flask, jsonify
from flask_login import user_logged_in

from breezy.config import config_by_name
from breezy.extensions import db, migrate, login_manager, csrf, limiter


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from breezy import models  # noqa: F401

    # --- Register blueprints ---
    from breezy.blueprints.webhooks import webhooks_bp
    from breezy.blueprints.checkout import checkout_bp
    from breezy.blueprints.account import account_bp

    app.register_blueprint(webhooks_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(account_bp)

    # Exempt webhooks from CSRF — raw body needed for Stripe signature verification
    csrf.exempt(webhooks_bp)

    # --- Pending subscription linkage on login ---
    @user_logged_in.connect_via(app)
    def link_pending_on_login(sender, user, **extra):
        """A user who paid before signing up gets their subscription now."""
        from breezy.services.subscription_service import link_pending_subscriptions

        if link_pending_subscriptions(user):
            db.session.commit()

    # --- Error handlers ---
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Too many requests"}), 429

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "Internal server error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # API responses never need to load anything
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none';"
        )
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("prune-webhook-events")
    @click.option("--days", type=int, default=None,
                  help="Retention in days (default: WEBHOOK_EVENT_RETENTION_DAYS).")
    def prune_webhook_events(days):
        """Delete idempotency records older than the retention window.

        Stripe retries a webhook for up to 3 days, so the window must stay
        comfortably longer than that.

        Usage:
            flask prune-webhook-events
            flask prune-webhook-events --days 60
        """
        from breezy.services.event_store import WebhookEventStore

        retention = days if days is not None else app.config["WEBHOOK_EVENT_RETENTION_DAYS"]
        removed = WebhookEventStore().prune(retention)
        click.echo(f"Removed {removed} webhook event(s) older than {retention} days.")

    @app.cli.command("link-pending-subscriptions")
    def link_pending_subscriptions_command():
        """Link placeholder-owned subscriptions to users with a verified matching email.

        Usage:
            flask link-pending-subscriptions
        """
        from breezy.services.subscription_service import link_all_pending_subscriptions

        linked = link_all_pending_subscriptions()
        click.echo(f"Linked {linked} pending subscription(s).")

    @app.cli.command("verify-stripe-prices")
    def verify_stripe_prices():
        """Verify configured Stripe price IDs exist and are usable (same mode as key).

        Checks every entry of the tier price table built from STRIPE_PRICE_*.
        Run with prod env vars to confirm Live prices; run with test vars for Test mode.
        """
        import stripe as _stripe

        from breezy.services.tier_service import TierPriceTable

        api_key = app.config.get("STRIPE_SECRET_KEY")
        if not api_key:
            click.echo("ERROR: STRIPE_SECRET_KEY is not set.")
            return
        key_mode = "Live" if api_key.startswith("sk_live_") else "Test"
        click.echo(f"Stripe key mode: {key_mode}")
        click.echo("")

        _stripe.api_key = api_key
        table = TierPriceTable.from_config(app.config)
        if not len(table):
            click.echo("No STRIPE_PRICE_* values configured.")
            return

        for price_id, (tier, cycle) in table.items():
            click.echo(f"  {tier} ({cycle}): {price_id}")
            try:
                price = _stripe.Price.retrieve(price_id)
                livemode = getattr(price, "livemode", "?")
                active = getattr(price, "active", "?")
                click.echo(f"    exists=True, livemode={livemode}, active={active}")
                if livemode is True and key_mode != "Live":
                    click.echo("    WARNING: This price is Live but your key is Test.")
                elif livemode is False and key_mode == "Live":
                    click.echo("    WARNING: This price is Test but your key is Live.")
            except _stripe.InvalidRequestError as e:
                click.echo(f"    ERROR: {e}")
        click.echo("")
        click.echo(f"Fallback tier for unknown prices: {table.fallback_tier}")
