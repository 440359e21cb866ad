"""
tests/integration/test_expenses.py — Creating expenses and recording payments.

Endpoints covered:
  POST /events/:id/expenses    → 201
  GET  /events/:id/expenses    → 200
  GET  /expenses/:id           → 200
  POST /expenses/:id/payments  → 201

Derived fields are checked on every response:
  advance_paid   = sum of payments
  pending_amount = amount - advance_paid (never below zero)
  payment_status = pending | partially_paid | fully_paid

Error cases:
  PAID_AMOUNT_EXCEEDS_TOTAL   400 — first payment above the amount
  PAID_AMOUNT_EXCEEDS_PENDING 400 — later payment above what is still owed
  ATTACHMENT_REQUIRED         400 — upi payment without a file
  TOO_MANY_ATTACHMENTS        400 — more files than allowed per request
  INVALID_AMOUNT_PRECISION    400 — more than two decimal places
  UPSTREAM_FAILURE            502 — attachment storage failed
  FORBIDDEN                   403 — viewer or stranger writing
"""

from __future__ import annotations

import io

from .conftest import auth_headers, make_event, make_expense, register, share_event


def _add_payment(client, token, expense_id, paid_amount, method="cash", files=None):
    body = {"paid_amount": paid_amount, "payment_method": method}
    if files is None:
        return client.post(
            f"/api/v1/expenses/{expense_id}/payments",
            json=body,
            headers=auth_headers(token),
        )
    body["attachments"] = [(io.BytesIO(content), name) for content, name in files]
    return client.post(
        f"/api/v1/expenses/{expense_id}/payments",
        data=body,
        content_type="multipart/form-data",
        headers=auth_headers(token),
    )


# ═══════════════════════════════════════════════════════════════════════════
# POST /events/:id/expenses
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateExpense:

    def test_cash_expense_partially_paid(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])

        resp = make_expense(client, alice["access_token"], event["id"], "500.00", "200.00")

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["amount"] == "500.00"
        assert data["advance_paid"] == "200.00"
        assert data["pending_amount"] == "300.00"
        assert data["payment_status"] == "partially_paid"
        assert data["paid_by"]["id"] == alice["user"]["id"]
        assert len(data["payments"]) == 1
        assert data["payments"][0]["payment_method"] == "cash"
        assert data["payments"][0]["attachment_urls"] == []

    def test_zero_paid_is_pending(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])

        data = make_expense(client, alice["access_token"], event["id"], "80.00", "0").get_json()["data"]

        assert data["payment_status"] == "pending"
        assert data["pending_amount"] == "80.00"

    def test_paid_in_full_is_fully_paid(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])

        data = make_expense(client, alice["access_token"], event["id"], "80.00", "80.00").get_json()["data"]

        assert data["payment_status"] == "fully_paid"
        assert data["pending_amount"] == "0.00"

    def test_paid_above_amount_rejected(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])

        resp = make_expense(client, alice["access_token"], event["id"], "100.00", "150.00")

        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "PAID_AMOUNT_EXCEEDS_TOTAL"
        assert error["field"] == "paid_amount"

    def test_three_decimal_places_rejected(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])

        resp = make_expense(client, alice["access_token"], event["id"], "10.005", "0")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_AMOUNT_PRECISION"

    def test_upi_without_attachment_rejected(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])

        resp = make_expense(client, alice["access_token"], event["id"], payment_method="upi")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "ATTACHMENT_REQUIRED"

    def test_upi_with_attachments_round_trip(self, client, storage):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])

        resp = make_expense(
            client, alice["access_token"], event["id"],
            payment_method="upi",
            files=[(b"receipt-1", "one.png"), (b"receipt-2", "two.png")],
        )

        assert resp.status_code == 201, resp.get_json()
        payment = resp.get_json()["data"]["payments"][0]
        assert payment["payment_method"] == "upi"
        assert payment["attachment_urls"] == ["/uploads/1_one.png", "/uploads/2_two.png"]
        assert storage.files == {"1_one.png": b"receipt-1", "2_two.png": b"receipt-2"}

        fetched = client.get(
            f"/api/v1/expenses/{resp.get_json()['data']['id']}",
            headers=auth_headers(alice["access_token"]),
        )
        assert fetched.get_json()["data"]["payments"][0]["attachment_urls"] == payment["attachment_urls"]

    def test_cash_ignores_uploaded_files(self, client, storage):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])

        resp = make_expense(
            client, alice["access_token"], event["id"],
            payment_method="cash", files=[(b"x", "x.png")],
        )

        assert resp.status_code == 201
        assert resp.get_json()["data"]["payments"][0]["attachment_urls"] == []
        assert storage.files == {}

    def test_too_many_attachments_rejected(self, client, storage):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])

        resp = make_expense(
            client, alice["access_token"], event["id"],
            payment_method="upi",
            files=[(b"x", f"{i}.png") for i in range(6)],
        )

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "TOO_MANY_ATTACHMENTS"
        assert storage.files == {}

    def test_storage_failure_returns_502_and_creates_nothing(self, client, storage):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        storage.fail_store = True

        resp = make_expense(
            client, alice["access_token"], event["id"],
            payment_method="upi", files=[(b"x", "x.png")],
        )

        assert resp.status_code == 502
        assert resp.get_json()["error"]["code"] == "UPSTREAM_FAILURE"
        listed = client.get(
            f"/api/v1/events/{event['id']}/expenses",
            headers=auth_headers(alice["access_token"]),
        )
        assert listed.get_json()["data"] == []

    def test_missing_field_returns_400(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])

        resp = client.post(
            f"/api/v1/events/{event['id']}/expenses",
            json={"name": "Ravi", "category": "DJ", "amount": "10.00", "payment_method": "cash"},
            headers=auth_headers(alice["access_token"]),
        )

        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "MISSING_FIELD"
        assert error["field"] == "paid_amount"

    def test_unknown_event_returns_404(self, client):
        alice = register(client, "alice")
        resp = make_expense(client, alice["access_token"], 999999)
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "EVENT_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# Role checks (scenario B)
# ═══════════════════════════════════════════════════════════════════════════

class TestExpenseRoles:

    def _shared(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        carol = register(client, "carol")
        dave = register(client, "dave")
        event = make_event(client, alice["access_token"])
        share_event(client, alice["access_token"], event["id"], [
            {"user_id": bob["user"]["id"], "role": "editor"},
            {"user_id": carol["user"]["id"], "role": "viewer"},
        ])
        return event, alice, bob, carol, dave

    def test_editor_can_create(self, client):
        event, alice, bob, carol, dave = self._shared(client)
        resp = make_expense(client, bob["access_token"], event["id"])
        assert resp.status_code == 201
        assert resp.get_json()["data"]["paid_by"]["name"] == "bob"

    def test_viewer_cannot_create(self, client):
        event, alice, bob, carol, dave = self._shared(client)
        resp = make_expense(client, carol["access_token"], event["id"])
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"

    def test_viewer_can_list(self, client):
        event, alice, bob, carol, dave = self._shared(client)
        make_expense(client, alice["access_token"], event["id"])

        resp = client.get(f"/api/v1/events/{event['id']}/expenses", headers=auth_headers(carol["access_token"]))

        assert resp.status_code == 200
        assert len(resp.get_json()["data"]) == 1

    def test_stranger_cannot_list_or_get(self, client):
        event, alice, bob, carol, dave = self._shared(client)
        expense = make_expense(client, alice["access_token"], event["id"]).get_json()["data"]
        headers = auth_headers(dave["access_token"])

        assert client.get(f"/api/v1/events/{event['id']}/expenses", headers=headers).status_code == 403
        assert client.get(f"/api/v1/expenses/{expense['id']}", headers=headers).status_code == 403

    def test_viewer_cannot_add_payment(self, client):
        event, alice, bob, carol, dave = self._shared(client)
        expense = make_expense(client, alice["access_token"], event["id"]).get_json()["data"]
        resp = _add_payment(client, carol["access_token"], expense["id"], "10.00")
        assert resp.status_code == 403


# ═══════════════════════════════════════════════════════════════════════════
# POST /expenses/:id/payments (scenario A)
# ═══════════════════════════════════════════════════════════════════════════

class TestAddPayment:

    def test_settling_the_rest_makes_it_fully_paid(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        expense = make_expense(client, alice["access_token"], event["id"], "500.00", "200.00").get_json()["data"]

        resp = _add_payment(client, alice["access_token"], expense["id"], "300.00")

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["advance_paid"] == "500.00"
        assert data["pending_amount"] == "0.00"
        assert data["payment_status"] == "fully_paid"
        assert [p["paid_amount"] for p in data["payments"]] == ["200.00", "300.00"]

    def test_payment_above_pending_rejected(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        expense = make_expense(client, alice["access_token"], event["id"], "500.00", "200.00").get_json()["data"]

        resp = _add_payment(client, alice["access_token"], expense["id"], "300.01")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "PAID_AMOUNT_EXCEEDS_PENDING"

    def test_payment_on_fully_paid_expense_rejected(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        expense = make_expense(client, alice["access_token"], event["id"], "50.00", "50.00").get_json()["data"]

        resp = _add_payment(client, alice["access_token"], expense["id"], "0.01")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "PAID_AMOUNT_EXCEEDS_PENDING"

    def test_zero_payment_rejected(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        expense = make_expense(client, alice["access_token"], event["id"]).get_json()["data"]

        resp = _add_payment(client, alice["access_token"], expense["id"], "0")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "paid_amount"

    def test_upi_payment_needs_and_keeps_attachment(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        expense = make_expense(client, alice["access_token"], event["id"]).get_json()["data"]

        missing = _add_payment(client, alice["access_token"], expense["id"], "100.00", method="upi")
        assert missing.get_json()["error"]["code"] == "ATTACHMENT_REQUIRED"

        resp = _add_payment(
            client, alice["access_token"], expense["id"], "100.00",
            method="upi", files=[(b"img", "pay.png")],
        )
        assert resp.status_code == 201
        last = resp.get_json()["data"]["payments"][-1]
        assert last["payment_method"] == "upi"
        assert last["attachment_urls"] == ["/uploads/1_pay.png"]

    def test_unknown_expense_returns_404(self, client):
        alice = register(client, "alice")
        resp = _add_payment(client, alice["access_token"], 999999, "1.00")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "EXPENSE_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# Listing
# ═══════════════════════════════════════════════════════════════════════════

class TestListExpenses:

    def test_newest_first(self, client):
        alice = register(client, "alice")
        event = make_event(client, alice["access_token"])
        make_expense(client, alice["access_token"], event["id"], name="First")
        make_expense(client, alice["access_token"], event["id"], name="Second")

        resp = client.get(f"/api/v1/events/{event['id']}/expenses", headers=auth_headers(alice["access_token"]))

        assert [e["name"] for e in resp.get_json()["data"]] == ["Second", "First"]

    def test_only_this_events_expenses(self, client):
        alice = register(client, "alice")
        one = make_event(client, alice["access_token"], name="One")
        two = make_event(client, alice["access_token"], name="Two")
        make_expense(client, alice["access_token"], one["id"], name="Mine")
        make_expense(client, alice["access_token"], two["id"], name="Other")

        resp = client.get(f"/api/v1/events/{one['id']}/expenses", headers=auth_headers(alice["access_token"]))

        assert [e["name"] for e in resp.get_json()["data"]] == ["Mine"]
