"""
Shared pytest fixtures for the RPAS Compliance Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - organization / other_organization: pre-created operator accounts
"""

import pytest

from rpas_compliance import create_app
from rpas_compliance.models import db as _db
from rpas_compliance.models.organization import Organization


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


def _make_organization(name, slug):
    org = Organization(name=name, slug=slug)
    _db.session.add(org)
    _db.session.commit()
    return org.id


@pytest.fixture()
def organization():
    """ID of the operator account most tests act as."""
    return _make_organization("Northern Skies Aerial", "northern-skies")


@pytest.fixture()
def other_organization():
    """A second operator, for cross-organization isolation checks."""
    return _make_organization("Prairie Drone Works", "prairie-drone")
