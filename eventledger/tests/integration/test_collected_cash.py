"""
tests/integration/test_collected_cash.py — Cash collected from contributors.

Endpoints covered:
  POST   /events/:id/collected-cash  → 201  owner/editor
  GET    /events/:id/collected-cash  → 200  any role
  PATCH  /collected-cash/:id         → 200  owner/editor
  DELETE /collected-cash/:id         → 200  owner/editor (hard delete)
"""

from __future__ import annotations

from .conftest import auth_headers, make_event, register, share_event


def _collect(client, token, event_id, name="Anil", amount="1000.00"):
    return client.post(
        f"/api/v1/events/{event_id}/collected-cash",
        json={"contributor_name": name, "amount": amount},
        headers=auth_headers(token),
    )


class TestCollectedCash:

    def test_create_and_list(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])

        resp = _collect(client, alice["access_token"], event["id"])
        assert resp.status_code == 201
        entry = resp.get_json()["data"]
        assert entry["contributor_name"] == "Anil"
        assert entry["amount"] == "1000.00"
        assert entry["recorded_by_id"] == alice["user"]["id"]

        _collect(client, alice["access_token"], event["id"], name="Meena", amount="250.5")
        listed = client.get(
            f"/api/v1/events/{event['id']}/collected-cash",
            headers=auth_headers(alice["access_token"]),
        ).get_json()["data"]
        assert [(e["contributor_name"], e["amount"]) for e in listed] == [
            ("Meena", "250.50"),
            ("Anil", "1000.00"),
        ]

    def test_invalid_amount_rejected(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])

        resp = _collect(client, alice["access_token"], event["id"], amount="-5")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "amount"

    def test_update_changes_recorder(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        event = make_event(client, alice["access_token"])
        share_event(client, alice["access_token"], event["id"], [
            {"user_id": bob["user"]["id"], "role": "editor"},
        ])
        entry = _collect(client, alice["access_token"], event["id"]).get_json()["data"]

        resp = client.patch(
            f"/api/v1/collected-cash/{entry['id']}",
            json={"amount": "1200"},
            headers=auth_headers(bob["access_token"]),
        )

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["amount"] == "1200.00"
        assert data["contributor_name"] == "Anil"
        assert data["recorded_by_id"] == bob["user"]["id"]

    def test_delete_removes_entry(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        entry = _collect(client, alice["access_token"], event["id"]).get_json()["data"]
        headers = auth_headers(alice["access_token"])

        assert client.delete(f"/api/v1/collected-cash/{entry['id']}", headers=headers).status_code == 200

        again = client.delete(f"/api/v1/collected-cash/{entry['id']}", headers=headers)
        assert again.status_code == 404
        assert again.get_json()["error"]["code"] == "COLLECTED_CASH_NOT_FOUND"

    def test_viewer_reads_but_cannot_write(self, client):
        alice = register(client, "alice")
        carol = register(client, "carol")
        event = make_event(client, alice["access_token"])
        share_event(client, alice["access_token"], event["id"], [
            {"user_id": carol["user"]["id"], "role": "viewer"},
        ])
        entry = _collect(client, alice["access_token"], event["id"]).get_json()["data"]
        headers = auth_headers(carol["access_token"])

        assert client.get(f"/api/v1/events/{event['id']}/collected-cash", headers=headers).status_code == 200
        assert _collect(client, carol["access_token"], event["id"]).status_code == 403
        assert client.patch(
            f"/api/v1/collected-cash/{entry['id']}", json={"amount": "1"}, headers=headers,
        ).status_code == 403
        assert client.delete(f"/api/v1/collected-cash/{entry['id']}", headers=headers).status_code == 403

    def test_stranger_cannot_list(self, client):
        alice = register(client, "alice")
        dave = register(client, "dave")
        event = make_event(client, alice["access_token"])

        resp = client.get(
            f"/api/v1/events/{event['id']}/collected-cash",
            headers=auth_headers(dave["access_token"]),
        )

        assert resp.status_code == 403
