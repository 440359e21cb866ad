"""
tests/unit/conftest.py — Shared setup for the DB-free unit tests.

Relationships between models are declared by class name ("User", "Event").
Importing every model module up front lets SQLAlchemy resolve them the first
time a test builds a model instance in memory.
"""

from __future__ import annotations

import pytest
from flask import Flask

from eventledger.app.models import (  # noqa: F401
    collected_cash,
    event,
    expense,
    refresh_token,
    user,
)


@pytest.fixture
def app_config_context():
    """A bare Flask app context for helpers that only read current_app.config."""
    app = Flask(__name__)
    app.config.update(
        FRONTEND_URL="http://frontend.test/",
        BCRYPT_LOG_ROUNDS=4,
    )
    with app.app_context():
        yield app
