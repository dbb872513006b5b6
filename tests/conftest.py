"""
Shared pytest fixtures for the PDCA Action Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - user_headers / admin_headers: forwarded identity headers
    - project: Pre-created Project via the API
"""

import pytest

from pdca import create_app
from pdca.models import db as _db
from pdca.services.entity_store import store


USER_ID = "u-alice"
OTHER_USER_ID = "u-bob"
ADMIN_ID = "u-admin"


def identity(uid=USER_ID, role="user"):
    return {"X-User-Id": uid, "X-User-Role": role}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


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
        store.hub.clear()
        yield
        store.hub.clear()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def user_headers():
    return identity(USER_ID)


@pytest.fixture()
def admin_headers():
    return identity(ADMIN_ID, "admin")


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project(client, user_headers):
    """Create and return a test Project via the API."""
    res = client.post(
        "/api/v1/projects",
        json={
            "title": "Reduce scrap rate",
            "description": "Line 3",
            "assigned_users": [OTHER_USER_ID],
            "assigned_departments": ["dept_quality"],
        },
        headers=user_headers,
    )
    assert res.status_code == 201
    return res.get_json()
