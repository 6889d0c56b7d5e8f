"""Shared test fixtures for the entitlement service test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client (FlaskLoginClient, so tests can pass user=)
- db_session: clean database per test (tables created/dropped)
- seed_user: a verified user matching the checkout fixtures' email
"""

import pytest
from flask_login import FlaskLoginClient

from breezy import create_app
from breezy.extensions import db as _db
from breezy.models.user import User


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    app.test_client_class = FlaskLoginClient
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def seed_user(app, db_session):
    """A verified user whose email matches the checkout fixtures."""
    user = User(email="a@b.com", email_verified=True, full_name="Ada Buyer")
    _db.session.add(user)
    _db.session.commit()
    return user
