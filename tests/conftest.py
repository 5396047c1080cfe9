"""
Shared pytest fixtures for the maker-checker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - orchestrator: Mock OrchestratorGateway installed on the app
"""

from unittest.mock import MagicMock

import pytest

from makerchecker import create_app
from makerchecker.integrations.orchestrator_gateway import OrchestratorGateway
from makerchecker.models import db as _db


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
def orchestrator(app):
    """Replace the app's orchestrator gateway with a mock for one test."""
    gateway = MagicMock(spec=OrchestratorGateway)
    app.extensions["orchestrator_gateway"] = gateway
    yield gateway
    app.extensions.pop("orchestrator_gateway", None)
