"""
Shared pytest fixtures for the Journey Map Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - journey_map: Pre-created map with one seed stage
    - sample_document: Three stages, one section of several types
"""

import pytest

from app import create_app
from app.models import db as _db
from app.services.journey.document import JourneyMapDocument

TEST_TENANT_ID = 1


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


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def journey_map(client):
    """Create and return a journey map via the API."""
    res = client.post(
        "/api/v1/journey-maps",
        json={"title": "Checkout Journey", "tenant_id": TEST_TENANT_ID},
    )
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def sample_document():
    """Three stages (a, b, c) and rows of the analytics-relevant types."""
    return JourneyMapDocument.from_dict({
        "title": "Sample",
        "stages": [
            {"id": "a", "name": "Discover"},
            {"id": "b", "name": "Buy"},
            {"id": "c", "name": "Use"},
        ],
        "sections": [
            {"id": "sent", "type": "sentiment_graph", "title": "Emotion", "cells": {
                "a": {"value": 2}, "b": {"value": -1},
            }},
            {"id": "pain", "type": "pain_point", "title": "Pain", "cells": {
                "b": {"value": "Slow checkout", "severity": 4},
            }},
            {"id": "tp", "type": "touchpoints", "title": "Touchpoints", "cells": {
                "a": {"items": [{"label": "Ad", "category": "Social"}, {"label": "Site"}]},
                "b": {"items": [{"label": "Cart", "category": "Web"}]},
            }},
        ],
    })
