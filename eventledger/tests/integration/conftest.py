"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against the database named by TEST_DATABASE_URL, an in-memory
    SQLite database by default (see TestingConfig).
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - The attachment storage and email sender in app.extensions are replaced
    by in-memory doubles. Each test gets fresh ones through the `storage`
    and `mailer` fixtures.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)       → dict with user + tokens
  - login(client, ...)          → dict with user + tokens
  - auth_headers(token)         → {"Authorization": "Bearer <token>"}
  - make_admin(app, client, ..) → login data for a user promoted in the DB
  - make_event(client, ...)     → event dict
  - share_event(...)            → HTTP response
  - make_expense(...)           → HTTP response

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

import io

import pytest
from sqlalchemy import text

from eventledger.app import create_app
from eventledger.app.extensions import ATTACHMENT_STORAGE_KEY, EMAIL_SENDER_KEY
from eventledger.app.extensions import db as _db
from eventledger.app.mailer import EmailDeliveryError
from eventledger.app.models.user import GlobalRole, User
from eventledger.app.storage import AttachmentStorageError, StoredAttachment


# ═══════════════════════════════════════════════════════════════════════════
# Collaborator doubles
# ═══════════════════════════════════════════════════════════════════════════

class FakeStorage:
    """Keeps uploaded bytes in a dict keyed by handle."""

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.released: list[str] = []
        self.fail_store = False
        self.fail_release = False
        self._counter = 0

    def store(self, file) -> StoredAttachment:
        if self.fail_store:
            raise AttachmentStorageError("storage offline")
        self._counter += 1
        handle = f"{self._counter}_{file.filename}"
        self.files[handle] = file.read()
        return StoredAttachment(url=f"/uploads/{handle}", handle=handle)

    def release(self, handle: str) -> None:
        if self.fail_release:
            raise AttachmentStorageError("storage offline")
        self.files.pop(handle, None)
        self.released.append(handle)


class FakeMailer:
    """Records every message instead of sending it."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail = False

    def send(self, to: str, subject: str, html: str) -> None:
        if self.fail:
            raise EmailDeliveryError("smtp unavailable")
        self.sent.append({"to": to, "subject": subject, "html": html})

    def last_temp_password(self) -> str:
        """Pulls the temporary password back out of the last message."""
        html = self.sent[-1]["html"]
        start = html.index("<strong>") + len("<strong>")
        return html[start:html.index("</strong>")]


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.

    Steps:
      1. Create app with TestingConfig.
      2. Run db.create_all() to create all tables.
      3. Yield the app for the test session.
      4. Drop all tables at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows between tests in FK-safe order.

    autouse=True means this runs after EVERY test in the integration suite
    without needing to be declared in each test function.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        _db.session.remove()

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM payments"))
            conn.execute(text("DELETE FROM expenses"))
            conn.execute(text("DELETE FROM collected_cash"))
            conn.execute(text("DELETE FROM event_shares"))
            conn.execute(text("DELETE FROM events"))
            conn.execute(text("DELETE FROM refresh_tokens"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


@pytest.fixture(autouse=True)
def storage(app):
    fake = FakeStorage()
    app.extensions[ATTACHMENT_STORAGE_KEY] = fake
    return fake


@pytest.fixture(autouse=True)
def mailer(app):
    fake = FakeMailer()
    app.extensions[EMAIL_SENDER_KEY] = fake
    return fake


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(
    client,
    name: str = "alice",
    email: str | None = None,
    password: str = "Password1",
) -> dict:
    """
    Registers a new user and returns the full response data dict.
    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    if email is None:
        email = f"{name.lower()}@test.com"
    resp = client.post(
        "/api/v1/auth/register",
        json={"name": name, "email": email, "password": password},
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def login(client, email: str, password: str = "Password1") -> dict:
    """
    Logs in a user and returns the response data dict.
    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    resp = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_admin(
    app,
    client,
    name: str = "root",
    role: GlobalRole = GlobalRole.SUPER_ADMIN,
) -> dict:
    """
    Registers a user, promotes them directly in the database, and logs in
    again so the access token carries the new role.
    """
    data = register(client, name)
    with app.app_context():
        user = _db.session.get(User, data["user"]["id"])
        user.role = role
        _db.session.commit()
    return login(client, data["user"]["email"])


def make_event(client, token: str, name: str = "Ganesh Utsav", year: int = 2025) -> dict:
    """Creates an event owned by the token holder and returns the event dict."""
    resp = client.post(
        "/api/v1/events",
        json={"name": name, "year": year},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_event failed: {resp.get_json()}"
    return resp.get_json()["data"]


def share_event(client, token: str, event_id: int, shared_with: list[dict]):
    """Replaces the event's share list (owner token required). Returns the HTTP response."""
    return client.post(
        f"/api/v1/events/{event_id}/share",
        json={"shared_with": shared_with},
        headers=auth_headers(token),
    )


def make_expense(
    client,
    token: str,
    event_id: int,
    amount: str = "500.00",
    paid_amount: str = "200.00",
    payment_method: str = "cash",
    name: str = "Ravi",
    category: str = "DJ",
    files: list[tuple[bytes, str]] | None = None,
):
    """
    Creates an expense and returns the HTTP response.
    Passing `files` switches to a multipart body with the files under
    `attachments`; otherwise the body is JSON.
    """
    payload = {
        "name": name,
        "category": category,
        "amount": amount,
        "paid_amount": paid_amount,
        "payment_method": payment_method,
    }
    if files is None:
        return client.post(
            f"/api/v1/events/{event_id}/expenses",
            json=payload,
            headers=auth_headers(token),
        )

    payload["attachments"] = [(io.BytesIO(content), filename) for content, filename in files]
    return client.post(
        f"/api/v1/events/{event_id}/expenses",
        data=payload,
        content_type="multipart/form-data",
        headers=auth_headers(token),
    )
