from __future__ import annotations

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from bankfeed.models import CheckStatus, TxnType
from bankfeed.services.recurring_matcher import (
    MatchTolerance,
    clamp_day,
    expected_dates,
    match_recurring,
)


def _expense(id=1, amount="50.00", day=5, start=date(2024, 1, 1), pattern=None, active=True):
    return SimpleNamespace(
        id=id,
        account_id=1,
        category_id=2,
        amount=Decimal(amount),
        day_of_month=day,
        start_date=start,
        active=active,
        match_pattern=pattern,
    )


def _txn(id, on, amount, description="", type=TxnType.EXPENSE, account_id=1, category_id=2):
    return SimpleNamespace(
        id=id,
        account_id=account_id,
        category_id=category_id,
        type=type,
        occurred_at=on,
        amount=Decimal(amount),
        description=description,
    )


def test_clamp_day_to_month_end():
    assert clamp_day(2024, 2, 31) == date(2024, 2, 29)
    assert clamp_day(2023, 2, 31) == date(2023, 2, 28)
    assert clamp_day(2024, 4, 31) == date(2024, 4, 30)
    assert clamp_day(2024, 1, 15) == date(2024, 1, 15)


def test_expected_dates_clamped_monthly():
    dates = expected_dates(date(2024, 1, 1), 31, date(2024, 4, 30))
    assert dates == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]


def test_expected_dates_skip_days_before_start():
    dates = expected_dates(date(2024, 1, 10), 5, date(2024, 3, 31))
    assert dates == [date(2024, 2, 5), date(2024, 3, 5)]


def test_expected_dates_since_bound():
    dates = expected_dates(date(2024, 1, 1), 5, date(2024, 3, 31), since=date(2024, 3, 1))
    assert dates == [date(2024, 3, 5)]


def test_match_within_tolerance():
    report = match_recurring(
        [_expense()],
        [_txn(10, date(2024, 1, 7), "49.50", "Gym")],
        today=date(2024, 1, 31),
    )
    assert len(report.checks) == 1
    check = report.checks[0]
    assert check.status == CheckStatus.MATCHED
    assert check.transaction_id == 10
    assert check.matched_date == date(2024, 1, 7)
    assert check.matched_amount == Decimal("49.50")
    assert report.matched_transactions[10] is check


def test_missing_reports_days_overdue():
    report = match_recurring(
        [_expense()],
        [_txn(10, date(2024, 1, 7), "49.50")],
        today=date(2024, 3, 10),
    )
    by_date = {c.expected_date: c for c in report.checks}
    assert by_date[date(2024, 1, 5)].status == CheckStatus.MATCHED
    feb = by_date[date(2024, 2, 5)]
    assert feb.status == CheckStatus.MISSING
    assert feb.days_overdue == 34
    assert by_date[date(2024, 3, 5)].days_overdue == 5
    assert len(report.missing) == 2


def test_occurrence_on_today_is_pending():
    report = match_recurring([_expense()], [], today=date(2024, 1, 5))
    assert [c.status for c in report.checks] == [CheckStatus.PENDING]
    assert report.checks[0].days_overdue == 0


def test_future_horizon_occurrences_are_pending():
    report = match_recurring([_expense()], [], today=date(2024, 1, 20), until=date(2024, 2, 29))
    statuses = {c.expected_date: c.status for c in report.checks}
    assert statuses == {date(2024, 1, 5): CheckStatus.MISSING, date(2024, 2, 5): CheckStatus.PENDING}


@pytest.mark.parametrize(
    "on, amount, matched",
    [
        (date(2024, 1, 10), "50.00", True),
        (date(2024, 1, 11), "50.00", False),
        (date(2023, 12, 31), "50.00", True),
        (date(2024, 1, 5), "54.99", True),
        (date(2024, 1, 5), "55.01", False),
        (date(2024, 1, 5), "45.00", True),
    ],
)
def test_date_and_amount_tolerance(on, amount, matched):
    report = match_recurring([_expense()], [_txn(1, on, amount)], today=date(2024, 2, 1))
    assert (report.checks[0].status == CheckStatus.MATCHED) is matched


def test_absolute_band_for_small_amounts():
    tolerance = MatchTolerance(date_days=5, amount_pct=Decimal("0.10"), amount_abs=Decimal("1.00"))
    assert tolerance.amount_band(Decimal("5.00")) == Decimal("1.00")
    report = match_recurring(
        [_expense(amount="5.00")],
        [_txn(1, date(2024, 1, 5), "5.90")],
        today=date(2024, 2, 1),
        tolerance=tolerance,
    )
    assert report.checks[0].status == CheckStatus.MATCHED


def test_ignores_other_account_category_and_income():
    txns = [
        _txn(1, date(2024, 1, 5), "50.00", account_id=99),
        _txn(2, date(2024, 1, 5), "50.00", category_id=99),
        _txn(3, date(2024, 1, 5), "50.00", type=TxnType.INCOME),
    ]
    report = match_recurring([_expense()], txns, today=date(2024, 2, 1))
    assert report.checks[0].status == CheckStatus.MISSING
    assert report.matched_transactions == {}


def test_match_pattern_is_case_insensitive_substring():
    expense = _expense(pattern="netflix")
    hit = match_recurring([expense], [_txn(1, date(2024, 1, 5), "50.00", "NETFLIX.COM 123")], today=date(2024, 2, 1))
    miss = match_recurring([expense], [_txn(1, date(2024, 1, 5), "50.00", "Spotify")], today=date(2024, 2, 1))
    assert hit.checks[0].status == CheckStatus.MATCHED
    assert miss.checks[0].status == CheckStatus.MISSING


def test_transaction_binds_at_most_one_occurrence():
    expenses = [_expense(id=1, day=5), _expense(id=2, day=6)]
    report = match_recurring(expenses, [_txn(7, date(2024, 1, 5), "50.00")], today=date(2024, 2, 1))
    by_expense = {c.recurring_expense_id: c for c in report.checks}
    assert by_expense[1].status == CheckStatus.MATCHED
    assert by_expense[2].status == CheckStatus.MISSING
    assert list(report.matched_transactions) == [7]


def test_closest_transaction_wins():
    txns = [_txn(1, date(2024, 1, 8), "50.00"), _txn(2, date(2024, 1, 6), "50.00")]
    report = match_recurring([_expense()], txns, today=date(2024, 2, 1))
    assert report.checks[0].transaction_id == 2


def test_ties_break_on_amount_then_id():
    txns = [
        _txn(3, date(2024, 1, 5), "51.00"),
        _txn(2, date(2024, 1, 5), "50.00"),
        _txn(1, date(2024, 1, 5), "50.00"),
    ]
    report = match_recurring([_expense()], txns, today=date(2024, 2, 1))
    assert report.checks[0].transaction_id == 1


def test_greedy_assignment_is_global():
    # txn 1 is nearest to both occurrences; expense 1 takes it and expense 2 falls back to txn 2
    expenses = [_expense(id=1, day=28), _expense(id=2, day=31)]
    txns = [_txn(1, date(2024, 1, 29), "50.00"), _txn(2, date(2024, 2, 3), "50.00")]
    report = match_recurring(expenses, txns, today=date(2024, 1, 31))
    by_expense = {c.recurring_expense_id: c for c in report.checks}
    assert by_expense[1].transaction_id == 1
    assert by_expense[2].transaction_id == 2


def test_excluded_transactions_are_never_bound():
    report = match_recurring(
        [_expense()],
        [_txn(10, date(2024, 1, 5), "50.00")],
        today=date(2024, 2, 1),
        excluded_transaction_ids={10},
    )
    assert report.checks[0].status == CheckStatus.MISSING


def test_inactive_expenses_are_skipped():
    report = match_recurring([_expense(active=False)], [], today=date(2024, 2, 1))
    assert report.checks == []
