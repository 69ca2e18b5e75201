from __future__ import annotations

from datetime import date
from decimal import Decimal

from bankfeed import models


def _ingest(client, account_id, items):
    res = client.post("/api/staging/ingest", json={"account_id": account_id, "items": items})
    assert res.status_code == 200, res.text
    return res.json()


def _item(external_id, amount="-12.30", date="2024-05-01", description="CARD PAYMENT"):
    return {"externalId": external_id, "date": date, "amount": amount, "description": description}


def _balance(client, account_id):
    accounts = client.get("/api/accounts").json()
    return next(a["current_balance"] for a in accounts if a["id"] == account_id)


def test_ingest_reports_staged_and_skipped(client, account):
    body = _ingest(client, account.id, [_item("a"), _item("b"), _item("a")])
    assert body["total"] == 3
    assert body["staged"] == 2
    assert body["skipped"] == 1
    assert {row["external_id"] for row in body["rows"]} == {"a", "b"}
    assert body["rows"][0]["amount"] == "-12.30"

    again = _ingest(client, account.id, [_item("a"), _item("b")])
    assert (again["staged"], again["skipped"]) == (0, 2)


def test_ingest_foreign_account_is_404(client, other_account):
    res = client.post(
        "/api/staging/ingest", json={"account_id": other_account.id, "items": [_item("x")]}
    )
    assert res.status_code == 404


def test_list_defaults_to_pending(client, account):
    rows = _ingest(client, account.id, [_item("a", date="2024-05-01"), _item("b", date="2024-05-02")])["rows"]
    client.put(f"/api/staging/{rows[0]['id']}/dismiss")

    pending = client.get("/api/staging").json()
    assert [r["external_id"] for r in pending] == ["b"]

    everything = client.get("/api/staging", params={"status": "all"}).json()
    assert [r["external_id"] for r in everything] == ["b", "a"]

    scoped = client.get("/api/staging", params={"status": "all", "account_id": account.id}).json()
    assert len(scoped) == 2

    assert client.get("/api/staging", params={"status": "bogus"}).status_code == 400


def test_list_hides_other_users_rows(client, account, other_user, act_as):
    _ingest(client, account.id, [_item("a")])
    act_as(other_user)
    assert client.get("/api/staging", params={"status": "all"}).json() == []


def test_approve_creates_transaction(client, account, food):
    row = _ingest(client, account.id, [_item("a")])["rows"][0]

    res = client.post(f"/api/staging/{row['id']}/approve", json={"categoryId": food.id})
    assert res.status_code == 201, res.text
    txn = res.json()
    assert txn["amount"] == "12.30"
    assert txn["type"] == "expense"
    assert txn["external_id"] == "a"
    assert txn["category_id"] == food.id
    assert _balance(client, account.id) == "987.70"

    listed = client.get("/api/staging", params={"status": "reconciled"}).json()
    assert [r["id"] for r in listed] == [row["id"]]

    fetched = client.get(f"/api/transactions/{txn['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["amount"] == "12.30"


def test_approve_twice_is_conflict(client, account, food):
    row = _ingest(client, account.id, [_item("a")])["rows"][0]
    assert client.post(f"/api/staging/{row['id']}/approve", json={"categoryId": food.id}).status_code == 201

    res = client.post(f"/api/staging/{row['id']}/approve", json={"categoryId": food.id})
    assert res.status_code == 409
    assert _balance(client, account.id) == "987.70"


def test_approve_validation_errors(client, account, food, other_category):
    row = _ingest(client, account.id, [_item("a")])["rows"][0]
    url = f"/api/staging/{row['id']}/approve"

    assert client.post(url, json={}).status_code == 400
    assert client.post(url, json={"categoryId": True}).status_code == 400
    assert client.post(url, json={"categoryId": 1.5}).status_code == 400
    assert client.post(url, json={"categoryId": other_category.id}).status_code == 400
    assert client.post(url, json={"categoryId": food.id, "amount": "lots"}).status_code == 400
    assert client.post(url, json={"categoryId": food.id, "date": "32/13/2024"}).status_code == 400

    still_pending = client.get("/api/staging").json()
    assert [r["id"] for r in still_pending] == [row["id"]]
    assert client.get("/api/transactions").json() == []


def test_approve_not_owned_is_404(client, account, other_user, other_category, act_as):
    row = _ingest(client, account.id, [_item("a")])["rows"][0]
    act_as(other_user)
    res = client.post(f"/api/staging/{row['id']}/approve", json={"categoryId": other_category.id})
    assert res.status_code == 404
    assert res.json()["detail"] == "Staged transaction not found"


def test_approve_missing_row_is_404(client, food):
    assert client.post("/api/staging/9999/approve", json={"categoryId": food.id}).status_code == 404


def test_dismiss_restore_delete(client, account, food):
    row = _ingest(client, account.id, [_item("a")])["rows"][0]

    assert client.put(f"/api/staging/{row['id']}/dismiss").status_code == 204
    assert client.post(f"/api/staging/{row['id']}/approve", json={"categoryId": food.id}).status_code == 409

    restored = client.put(f"/api/staging/{row['id']}/restore")
    assert restored.status_code == 200
    assert restored.json()["status"] == "pending"
    assert client.put(f"/api/staging/{row['id']}/restore").status_code == 409

    assert client.delete(f"/api/staging/{row['id']}").status_code == 204
    assert client.get("/api/staging", params={"status": "all"}).json() == []
    assert _ingest(client, account.id, [_item("a")])["staged"] == 1


def test_link_to_existing_transaction(client, account, food):
    txn = client.post(
        "/api/transactions",
        json={
            "accountId": account.id,
            "categoryId": food.id,
            "date": "2024-05-01",
            "amount": "12.30",
            "type": "expense",
            "description": "Manual entry",
        },
    ).json()
    row = _ingest(client, account.id, [_item("bank-1")])["rows"][0]

    res = client.post(f"/api/staging/{row['id']}/link", json={"transactionId": txn["id"]})
    assert res.status_code == 200, res.text
    assert res.json()["status"] == "reconciled"

    linked = client.get(f"/api/transactions/{txn['id']}").json()
    assert linked["external_id"] == "bank-1"
    # linking never touches balances
    assert _balance(client, account.id) == "987.70"


def test_link_foreign_transaction_is_403(client, db_session, account, other_account, other_category):
    foreign = models.Transaction(
        account_id=other_account.id,
        category_id=other_category.id,
        occurred_at=date(2024, 5, 1),
        amount=Decimal("5.00"),
        type=models.TxnType.EXPENSE,
    )
    db_session.add(foreign)
    db_session.commit()
    row = _ingest(client, account.id, [_item("a")])["rows"][0]

    res = client.post(f"/api/staging/{row['id']}/link", json={"transactionId": foreign.id})
    assert res.status_code == 403
    assert client.get("/api/staging").json()[0]["status"] == "pending"


def test_bulk_approve_collects_per_item_results(client, account, food):
    rows = _ingest(client, account.id, [_item("a"), _item("b", amount="-7.70")])["rows"]
    ids = sorted(r["id"] for r in rows)
    client.put(f"/api/staging/{ids[1]}/dismiss")

    res = client.post(
        "/api/staging/bulk-approve",
        json={
            "updates": [
                {"id": ids[0], "categoryId": food.id},
                {"id": ids[1], "categoryId": food.id},
                {"id": 9999, "categoryId": food.id},
            ]
        },
    )
    assert res.status_code == 200
    body = res.json()
    assert (body["total"], body["succeeded"], body["failed"]) == (3, 1, 2)
    by_id = {r["id"]: r for r in body["results"]}
    assert by_id[ids[0]]["ok"] is True
    assert by_id[ids[0]]["transaction_id"] is not None
    assert by_id[ids[1]]["status_code"] == 409
    assert by_id[9999]["status_code"] == 404
    assert len(client.get("/api/transactions").json()) == 1


def test_bulk_dismiss_and_delete(client, account):
    rows = _ingest(client, account.id, [_item("a"), _item("b")])["rows"]
    ids = [r["id"] for r in rows]

    dismissed = client.post("/api/staging/bulk-dismiss", json={"ids": ids}).json()
    assert dismissed["succeeded"] == 2
    again = client.post("/api/staging/bulk-dismiss", json={"ids": ids}).json()
    assert again["failed"] == 2
    assert {r["status_code"] for r in again["results"]} == {409}

    deleted = client.post("/api/staging/bulk-delete", json={"ids": ids + [9999]}).json()
    assert (deleted["succeeded"], deleted["failed"]) == (2, 1)
    assert client.get("/api/staging", params={"status": "all"}).json() == []


def test_bulk_requires_items(client):
    assert client.post("/api/staging/bulk-dismiss", json={"ids": []}).status_code == 422
