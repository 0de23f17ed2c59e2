"""
Shared pytest fixtures for the PM Board test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - store: Document store bound to the test session
    - seeded: Store pre-loaded with the sample board below
"""

import pytest

from pmboard import create_app
from pmboard.models import db as _db
from pmboard.store import get_store


# ── Sample board ─────────────────────────────────────────────────────────


def make_users():
    return [
        {"email": "pat@example.com", "name": "Pat", "role": "PM"},
        {"email": "alice@example.com", "name": "Alice", "role": "Designer"},
        {"email": "bob@example.com", "name": "Bob", "role": "Designer"},
        {"email": "carol@example.com", "name": "Carol", "role": "Designer"},
        {"email": "olive@example.com", "name": "Olive", "role": "Operational, PM"},
    ]


def make_project(row_index, **fields):
    project = {
        "rowIndex": row_index,
        "internalId": f"int-{row_index}",
        "projectNumber": f"P-{row_index:03d}",
        "projectName": f"Project {row_index}",
        "status": "In Progress",
        "pm": "Pat",
        "pmPriority": "",
        "pmNotes": "",
        "designer1": "",
        "priority1": "",
        "notes1": "",
        "designer2": "",
        "priority2": "",
        "notes2": "",
        "designer3": "",
        "priority3": "",
        "notes3": "",
    }
    project.update(fields)
    return project


def make_projects():
    return [
        make_project(1, designer1="Alice", priority1="1", designer2="Bob", priority2="2"),
        make_project(2, designer1="Bob", priority1="1", pm="Olive"),
        make_project(3, designer1="Carol", priority1="-", pm="Unassigned", status="Abandoned"),
    ]


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
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def store():
    return get_store()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def seeded(store):
    """Store holding the sample users, projects, colors and config."""
    store.set("users", make_users())
    store.set("projects", make_projects())
    store.set("colors", {"In Progress": "#3b82f6"})
    store.set("config", {"lastRowIndex": 3})
    store.write()
    return store
