"""Tests for subscription_service: upserts, ownership and pending linkage."""

from datetime import datetime, timezone

from flask_login import login_user

from breezy.extensions import db
from breezy.models.audit import AuditEvent
from breezy.models.payment import Payment
from breezy.models.subscription import Subscription, pending_user_id
from breezy.models.user import User
from breezy.services.payment_service import get_payment_history, record_payment
from breezy.services.subscription_service import (
    find_user_by_email,
    link_all_pending_subscriptions,
    link_pending_subscriptions,
    upsert_subscription,
)
from tests.utils import add_subscription


def _user(email="a@b.com", verified=True):
    user = User(email=email, email_verified=verified)
    db.session.add(user)
    db.session.commit()
    return user


class TestUpsert:

    def test_creates_then_updates_single_row(self, app):
        upsert_subscription("sub_1", user_id="user_1", tier="starter", status="active")
        upsert_subscription("sub_1", tier="pro", status="past_due")
        db.session.commit()

        rows = Subscription.query.all()
        assert len(rows) == 1
        assert rows[0].tier == "pro"
        assert rows[0].status == "past_due"
        assert rows[0].user_id == "user_1"

    def test_ended_row_only_takes_ownership_fields(self, app):
        add_subscription(status="cancelled", user_id="pending_cus_1")
        sub = Subscription.query.first()
        sub.ended_at = datetime.now(timezone.utc)
        db.session.commit()

        upsert_subscription("sub_1", user_id="user_9", status="active", tier="enterprise")
        db.session.commit()

        sub = Subscription.query.first()
        assert sub.user_id == "user_9"
        assert sub.status == "cancelled"
        assert sub.tier == "pro"


class TestFindUserByEmail:

    def test_case_insensitive(self, app):
        user = _user("Mixed@Case.com")
        assert find_user_by_email("mixed@case.COM").id == user.id

    def test_empty_email(self, app):
        assert find_user_by_email(None) is None
        assert find_user_by_email("") is None


class TestLinkPending:

    def test_links_rows_matching_verified_email(self, app):
        add_subscription("sub_1", user_id=pending_user_id("cus_1"), customer_email="A@B.com")
        add_subscription("sub_2", user_id=pending_user_id("cus_2"), customer_email="other@b.com")
        user = _user("a@b.com")

        assert link_pending_subscriptions(user) == 1
        db.session.commit()

        assert Subscription.query.filter_by(stripe_subscription_id="sub_1").first().user_id == user.id
        assert Subscription.query.filter_by(stripe_subscription_id="sub_2").first().is_pending_linkage

        audit = AuditEvent.query.filter_by(action="subscription.linked").one()
        assert audit.user_id == user.id
        assert audit.metadata_["placeholder_user_id"] == "pending_cus_1"

    def test_unverified_email_is_not_linked(self, app):
        add_subscription(user_id=pending_user_id("cus_1"), customer_email="a@b.com")
        user = _user("a@b.com", verified=False)

        assert link_pending_subscriptions(user) == 0
        assert Subscription.query.first().is_pending_linkage

    def test_already_linked_rows_are_left_alone(self, app):
        add_subscription(user_id="someone_else", customer_email="a@b.com")
        user = _user("a@b.com")

        assert link_pending_subscriptions(user) == 0
        assert Subscription.query.first().user_id == "someone_else"

    def test_link_all_commits_every_match(self, app):
        add_subscription("sub_1", user_id=pending_user_id("cus_1"), customer_email="a@b.com")
        add_subscription("sub_2", user_id=pending_user_id("cus_2"), customer_email="c@d.com")
        add_subscription("sub_3", user_id=pending_user_id("cus_3"), customer_email="nobody@x.com")
        a = _user("a@b.com")
        c = _user("c@d.com")

        assert link_all_pending_subscriptions() == 2

        db.session.expire_all()
        owners = {s.stripe_subscription_id: s.user_id for s in Subscription.query.all()}
        assert owners == {"sub_1": a.id, "sub_2": c.id, "sub_3": "pending_cus_3"}

    def test_login_signal_links_pending_rows(self, app):
        add_subscription(user_id=pending_user_id("cus_1"), customer_email="a@b.com")
        user = _user("a@b.com")

        with app.test_request_context():
            login_user(user)

        db.session.expire_all()
        assert Subscription.query.first().user_id == user.id

    def test_payments_follow_subscription_after_linking(self, app):
        """Payment rows keep their recorded owner; history reads go through the subscription."""
        sub = add_subscription(user_id=pending_user_id("cus_1"), customer_email="a@b.com")
        record_payment(
            sub,
            {"id": "in_1", "currency": "usd"},
            status="completed",
            amount_minor=4999,
            description="Subscription payment",
        )
        db.session.commit()
        user = _user("a@b.com")

        link_pending_subscriptions(user)
        db.session.commit()

        payment = Payment.query.one()
        assert payment.user_id == "pending_cus_1"
        assert payment.owner_id == user.id
        assert [p.id for p in get_payment_history(user.id)] == [payment.id]
        assert get_payment_history("pending_cus_1") == []
