"""
tests/integration/test_expense_delete.py — Soft delete and restore of expenses.

Endpoints covered:
  DELETE /expenses/:id                  → 200
  POST   /expenses/:id/restore          → 200  (owner)
  GET    /events/:id/expenses/deleted   → 200  (owner)

What is covered:
  - Deleted expenses vanish from listings and GET
  - Stored attachments are released after the delete commits; a failed release
    still deletes, and a failed commit releases nothing
  - The expense's creator may delete it even as a viewer
  - Only the owner restores or lists deleted expenses
  - Restoring an active expense is NOT_DELETED
"""

from __future__ import annotations

from sqlalchemy import event as sa_event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from .conftest import auth_headers, make_event, make_expense, register, share_event


def _delete(client, token, expense_id):
    return client.delete(f"/api/v1/expenses/{expense_id}", headers=auth_headers(token))


def _restore(client, token, expense_id):
    return client.post(f"/api/v1/expenses/{expense_id}/restore", headers=auth_headers(token))


# ═══════════════════════════════════════════════════════════════════════════
# DELETE /expenses/:id
# ═══════════════════════════════════════════════════════════════════════════

class TestDeleteExpense:

    def test_delete_hides_expense(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        expense = make_expense(client, alice["access_token"], event["id"]).get_json()["data"]
        headers = auth_headers(alice["access_token"])

        assert _delete(client, alice["access_token"], expense["id"]).status_code == 200

        assert client.get(f"/api/v1/expenses/{expense['id']}", headers=headers).status_code == 404
        listed = client.get(f"/api/v1/events/{event['id']}/expenses", headers=headers)
        assert listed.get_json()["data"] == []

    def test_delete_releases_attachments(self, client, storage):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        expense = make_expense(
            client, alice["access_token"], event["id"],
            payment_method="upi", files=[(b"a", "a.png"), (b"b", "b.png")],
        ).get_json()["data"]

        _delete(client, alice["access_token"], expense["id"])

        assert storage.released == ["1_a.png", "2_b.png"]
        assert storage.files == {}

    def test_release_failure_still_deletes(self, client, storage):
        """Storage is down: the delete goes through anyway."""
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        expense = make_expense(
            client, alice["access_token"], event["id"],
            payment_method="upi", files=[(b"a", "a.png")],
        ).get_json()["data"]
        storage.fail_release = True

        resp = _delete(client, alice["access_token"], expense["id"])

        assert resp.status_code == 200
        deleted = client.get(
            f"/api/v1/events/{event['id']}/expenses/deleted",
            headers=auth_headers(alice["access_token"]),
        ).get_json()["data"]
        assert [e["id"] for e in deleted] == [expense["id"]]
        assert deleted[0]["is_deleted"] is True
        assert deleted[0]["payments"][0]["attachment_urls"] == ["/uploads/1_a.png"]

    def test_failed_commit_releases_nothing(self, client, storage):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        expense = make_expense(
            client, alice["access_token"], event["id"],
            payment_method="upi", files=[(b"a", "a.png")],
        ).get_json()["data"]

        def _fail_commit(session):
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        sa_event.listen(Session, "before_commit", _fail_commit)
        try:
            resp = _delete(client, alice["access_token"], expense["id"])
        finally:
            sa_event.remove(Session, "before_commit", _fail_commit)

        assert resp.status_code == 500
        assert storage.released == []
        assert client.get(
            f"/api/v1/expenses/{expense['id']}", headers=auth_headers(alice["access_token"]),
        ).status_code == 200

    def test_creator_may_delete_as_viewer(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        event = make_event(client, alice["access_token"])
        share_event(client, alice["access_token"], event["id"], [
            {"user_id": bob["user"]["id"], "role": "editor"},
        ])
        expense = make_expense(client, bob["access_token"], event["id"]).get_json()["data"]
        share_event(client, alice["access_token"], event["id"], [
            {"user_id": bob["user"]["id"], "role": "viewer"},
        ])

        assert _delete(client, bob["access_token"], expense["id"]).status_code == 200

    def test_other_viewer_cannot_delete(self, client):
        alice = register(client, "alice")
        carol = register(client, "carol")
        event = make_event(client, alice["access_token"])
        share_event(client, alice["access_token"], event["id"], [
            {"user_id": carol["user"]["id"], "role": "viewer"},
        ])
        expense = make_expense(client, alice["access_token"], event["id"]).get_json()["data"]

        resp = _delete(client, carol["access_token"], expense["id"])

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"

    def test_delete_is_idempotent(self, client, storage):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        expense = make_expense(client, alice["access_token"], event["id"]).get_json()["data"]

        _delete(client, alice["access_token"], expense["id"])
        resp = _delete(client, alice["access_token"], expense["id"])

        assert resp.status_code == 200

    def test_unknown_expense_returns_404(self, client):
        alice = register(client, "alice")
        resp = _delete(client, alice["access_token"], 999999)
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "EXPENSE_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# Restore and deleted listing
# ═══════════════════════════════════════════════════════════════════════════

class TestRestoreExpense:

    def test_owner_restores(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        expense = make_expense(client, alice["access_token"], event["id"], "500.00", "200.00").get_json()["data"]
        _delete(client, alice["access_token"], expense["id"])

        resp = _restore(client, alice["access_token"], expense["id"])

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["is_deleted"] is False
        assert data["deleted_at"] is None
        assert data["pending_amount"] == "300.00"
        listed = client.get(
            f"/api/v1/events/{event['id']}/expenses",
            headers=auth_headers(alice["access_token"]),
        )
        assert [e["id"] for e in listed.get_json()["data"]] == [expense["id"]]

    def test_restore_active_expense_is_not_deleted(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        expense = make_expense(client, alice["access_token"], event["id"]).get_json()["data"]

        resp = _restore(client, alice["access_token"], expense["id"])

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "NOT_DELETED"

    def test_editor_cannot_restore_or_list_deleted(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        event = make_event(client, alice["access_token"])
        share_event(client, alice["access_token"], event["id"], [
            {"user_id": bob["user"]["id"], "role": "editor"},
        ])
        expense = make_expense(client, bob["access_token"], event["id"]).get_json()["data"]
        _delete(client, bob["access_token"], expense["id"])

        assert _restore(client, bob["access_token"], expense["id"]).status_code == 403
        resp = client.get(
            f"/api/v1/events/{event['id']}/expenses/deleted",
            headers=auth_headers(bob["access_token"]),
        )
        assert resp.status_code == 403
