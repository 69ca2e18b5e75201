from __future__ import annotations


def _expense_payload(account, food, **overrides):
    payload = {
        "name": "Gym",
        "accountId": account.id,
        "categoryId": food.id,
        "amount": "50.00",
        "dayOfMonth": 5,
        "startDate": "2024-01-01",
    }
    payload.update(overrides)
    return payload


def _spend(client, account, category, on, amount, description="GYM MEMBERSHIP"):
    res = client.post(
        "/api/transactions",
        json={
            "accountId": account.id,
            "categoryId": category.id,
            "date": on,
            "amount": amount,
            "type": "expense",
            "description": description,
        },
    )
    assert res.status_code == 201, res.text
    return res.json()


def _create_expense(client, account, food, **overrides):
    res = client.post("/api/recurring-expenses", json=_expense_payload(account, food, **overrides))
    assert res.status_code == 201, res.text
    return res.json()


class TestRecurringExpenses:
    def test_crud(self, client, account, food):
        created = _create_expense(client, account, food)
        assert created["amount"] == "50.00"
        assert created["interval"] == "monthly"
        assert created["active"] is True

        listed = client.get("/api/recurring-expenses").json()
        assert [e["id"] for e in listed] == [created["id"]]

        res = client.patch(
            f"/api/recurring-expenses/{created['id']}",
            json={"amount": "60", "match_pattern": "gym"},
        )
        assert res.status_code == 200
        assert res.json()["amount"] == "60.00"
        assert res.json()["match_pattern"] == "gym"

        assert client.delete(f"/api/recurring-expenses/{created['id']}").status_code == 204
        assert client.get("/api/recurring-expenses").json() == []

    def test_duplicate_name_conflicts(self, client, account, food):
        _create_expense(client, account, food)
        res = client.post("/api/recurring-expenses", json=_expense_payload(account, food))
        assert res.status_code == 409

    def test_validation(self, client, account, food, other_account, other_category):
        bad_day = client.post("/api/recurring-expenses", json=_expense_payload(account, food, dayOfMonth=32))
        assert bad_day.status_code == 422
        bad_amount = client.post("/api/recurring-expenses", json=_expense_payload(account, food, amount="0"))
        assert bad_amount.status_code == 422

        foreign_account = _expense_payload(account, food, accountId=other_account.id)
        assert client.post("/api/recurring-expenses", json=foreign_account).status_code == 404
        foreign_category = _expense_payload(account, food, categoryId=other_category.id)
        assert client.post("/api/recurring-expenses", json=foreign_category).status_code == 400

    def test_other_user_cannot_touch(self, client, account, food, other_user, act_as):
        created = _create_expense(client, account, food)
        act_as(other_user)
        assert client.get("/api/recurring-expenses").json() == []
        assert client.patch(f"/api/recurring-expenses/{created['id']}", json={"active": False}).status_code == 404
        assert client.delete(f"/api/recurring-expenses/{created['id']}").status_code == 404


class TestMonthlyCheck:
    def test_check_month_matches_and_persists(self, client, account, food):
        expense = _create_expense(client, account, food)
        txn = _spend(client, account, food, "2024-01-07", "49.50")

        res = client.post("/api/reconciliation/check", json={"year": 2024, "month": 1})
        assert res.status_code == 200, res.text
        checks = res.json()
        assert len(checks) == 1
        check = checks[0]
        assert check["recurring_expense_id"] == expense["id"]
        assert check["status"] == "matched"
        assert check["transaction_id"] == txn["id"]
        assert check["expected_date"] == "2024-01-05"
        assert check["matched_date"] == "2024-01-07"
        assert check["matched_amount"] == "49.50"
        assert (check["year"], check["month"]) == (2024, 1)

        status = client.get("/api/reconciliation/status", params={"year": 2024, "month": 1}).json()
        assert [c["id"] for c in status] == [check["id"]]

    def test_past_month_without_payment_is_missing(self, client, account, food):
        _create_expense(client, account, food)
        checks = client.post("/api/reconciliation/check", json={"year": 2024, "month": 2}).json()
        assert checks[0]["status"] == "missing"
        assert checks[0]["transaction_id"] is None
        assert checks[0]["days_overdue"] > 0

    def test_rerun_updates_in_place(self, client, account, food):
        _create_expense(client, account, food)
        first = client.post("/api/reconciliation/check", json={"year": 2024, "month": 1}).json()
        assert first[0]["status"] == "missing"

        txn = _spend(client, account, food, "2024-01-04", "50.00")
        second = client.post("/api/reconciliation/check", json={"year": 2024, "month": 1}).json()
        assert second[0]["id"] == first[0]["id"]
        assert second[0]["status"] == "matched"
        assert second[0]["transaction_id"] == txn["id"]

        client.post("/api/reconciliation/check", json={"year": 2024, "month": 2})
        all_checks = client.get("/api/reconciliation/checks").json()
        assert [(c["year"], c["month"]) for c in all_checks] == [(2024, 2), (2024, 1)]

    def test_expense_starting_later_has_no_check(self, client, account, food):
        _create_expense(client, account, food, startDate="2024-03-01")
        assert client.post("/api/reconciliation/check", json={"year": 2024, "month": 1}).json() == []

    def test_rerun_drops_checks_for_deactivated_expense(self, client, account, food):
        expense = _create_expense(client, account, food)
        _spend(client, account, food, "2024-01-07", "49.50")
        first = client.post("/api/reconciliation/check", json={"year": 2024, "month": 1}).json()
        assert first[0]["status"] == "matched"

        res = client.patch(f"/api/recurring-expenses/{expense['id']}", json={"active": False})
        assert res.status_code == 200
        assert client.post("/api/reconciliation/check", json={"year": 2024, "month": 1}).json() == []
        assert client.get("/api/reconciliation/status", params={"year": 2024, "month": 1}).json() == []

    def test_rerun_drops_checks_for_expense_moved_later(self, client, account, food):
        expense = _create_expense(client, account, food)
        client.post("/api/reconciliation/check", json={"year": 2024, "month": 1})

        res = client.patch(f"/api/recurring-expenses/{expense['id']}", json={"start_date": "2024-03-01"})
        assert res.status_code == 200
        client.post("/api/reconciliation/check", json={"year": 2024, "month": 1})
        assert client.get("/api/reconciliation/checks").json() == []

    def test_inactive_expense_is_skipped(self, client, account, food):
        _create_expense(client, account, food, active=False)
        assert client.post("/api/reconciliation/check", json={"year": 2024, "month": 1}).json() == []

    def test_invalid_month(self, client):
        assert client.post("/api/reconciliation/check", json={"year": 2024, "month": 13}).status_code == 422
        assert client.get("/api/reconciliation/status", params={"year": 2024, "month": 0}).status_code == 422

    def test_checks_are_scoped_to_user(self, client, account, food, other_user, act_as):
        _create_expense(client, account, food)
        client.post("/api/reconciliation/check", json={"year": 2024, "month": 1})
        act_as(other_user)
        assert client.get("/api/reconciliation/checks").json() == []


class TestReport:
    def test_report_as_of(self, client, account, food):
        expense = _create_expense(client, account, food)
        txn = _spend(client, account, food, "2024-01-07", "49.50")

        res = client.get("/api/reconciliation/report", params={"as_of": "2024-02-10"})
        assert res.status_code == 200, res.text
        body = res.json()
        assert body["as_of"] == "2024-02-10"
        assert body["missing_count"] == 1
        by_date = {c["expected_date"]: c for c in body["checks"]}
        assert by_date["2024-01-05"]["status"] == "matched"
        assert by_date["2024-01-05"]["transaction_id"] == txn["id"]
        assert by_date["2024-02-05"]["status"] == "missing"
        assert by_date["2024-02-05"]["days_overdue"] == 5
        assert body["matched_transactions"][str(txn["id"])]["recurring_expense_id"] == expense["id"]

    def test_report_with_no_expenses(self, client):
        body = client.get("/api/reconciliation/report", params={"as_of": "2024-02-10"}).json()
        assert body["checks"] == []
        assert body["missing_count"] == 0

    def test_report_writes_nothing(self, client, account, food):
        _create_expense(client, account, food)
        client.get("/api/reconciliation/report", params={"as_of": "2024-02-10"})
        assert client.get("/api/reconciliation/checks").json() == []
