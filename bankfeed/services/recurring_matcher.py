"""
Recurring-expense matcher.

Storage-free: callers pass in expenses and ledger transactions (ORM rows or
anything with the same attributes) and get back a ``MatchReport``. Nothing
here reads or writes the database.

Assignment is global and greedy. Every (occurrence, transaction) candidate
pair is ranked by date distance, then amount distance, then transaction id,
and pairs are bound in that order while both sides are still free. An
occurrence binds at most one transaction and vice versa.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Collection, Iterable, Optional, Sequence

from bankfeed.core.config import settings
from bankfeed.models import CheckStatus, TxnType


@dataclass(frozen=True)
class MatchTolerance:
    date_days: int = 5
    amount_pct: Decimal = Decimal("0.10")
    amount_abs: Decimal = Decimal("1.00")

    @classmethod
    def from_settings(cls) -> "MatchTolerance":
        return cls(
            date_days=settings.MATCH_DATE_TOLERANCE_DAYS,
            amount_pct=Decimal(str(settings.MATCH_AMOUNT_TOLERANCE_PCT)),
            amount_abs=Decimal(str(settings.MATCH_AMOUNT_TOLERANCE_ABS)),
        )

    def amount_band(self, expected: Decimal) -> Decimal:
        return max(self.amount_abs, self.amount_pct * abs(Decimal(expected)))


@dataclass(frozen=True)
class Occurrence:
    recurring_expense_id: int
    expected_date: date
    expected_amount: Decimal

    @property
    def year(self) -> int:
        return self.expected_date.year

    @property
    def month(self) -> int:
        return self.expected_date.month


@dataclass
class RecurringCheck:
    recurring_expense_id: int
    year: int
    month: int
    expected_date: date
    status: CheckStatus
    transaction_id: Optional[int] = None
    matched_date: Optional[date] = None
    matched_amount: Optional[Decimal] = None
    days_overdue: int = 0


@dataclass
class MatchReport:
    checks: list[RecurringCheck] = field(default_factory=list)
    matched_transactions: dict[int, RecurringCheck] = field(default_factory=dict)

    @property
    def missing(self) -> list[RecurringCheck]:
        return [c for c in self.checks if c.status == CheckStatus.MISSING]


def clamp_day(year: int, month: int, day_of_month: int) -> date:
    """``day_of_month`` in the given month, clamped to its last day (31 -> Feb 28/29)."""
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day_of_month, last))


def _next_month(year: int, month: int) -> tuple[int, int]:
    return (year + 1, 1) if month == 12 else (year, month + 1)


def expected_dates(
    start_date: date,
    day_of_month: int,
    until: date,
    *,
    since: Optional[date] = None,
) -> list[date]:
    """Monthly expected dates from ``start_date`` up to ``until`` inclusive.

    The first occurrence is in ``start_date``'s month unless the clamped day
    falls before ``start_date``. ``since`` drops earlier occurrences.
    """
    dates: list[date] = []
    year, month = start_date.year, start_date.month
    while True:
        expected = clamp_day(year, month, day_of_month)
        if expected > until:
            break
        if expected >= start_date and (since is None or expected >= since):
            dates.append(expected)
        year, month = _next_month(year, month)
    return dates


def occurrences_for(
    expense: Any,
    until: date,
    *,
    since: Optional[date] = None,
) -> list[Occurrence]:
    return [
        Occurrence(expense.id, expected, Decimal(expense.amount))
        for expected in expected_dates(expense.start_date, expense.day_of_month, until, since=since)
    ]


def _is_candidate(expense: Any, occurrence: Occurrence, txn: Any, tolerance: MatchTolerance) -> bool:
    if txn.account_id != expense.account_id or txn.category_id != expense.category_id:
        return False
    if txn.type != TxnType.EXPENSE:
        return False
    if abs((txn.occurred_at - occurrence.expected_date).days) > tolerance.date_days:
        return False
    amount = abs(Decimal(txn.amount))
    if abs(amount - occurrence.expected_amount) > tolerance.amount_band(occurrence.expected_amount):
        return False
    pattern = (expense.match_pattern or "").strip()
    if pattern and pattern.casefold() not in (txn.description or "").casefold():
        return False
    return True


def match_recurring(
    expenses: Iterable[Any],
    transactions: Sequence[Any],
    *,
    today: date,
    until: Optional[date] = None,
    since: Optional[date] = None,
    tolerance: Optional[MatchTolerance] = None,
    excluded_transaction_ids: Collection[int] = (),
) -> MatchReport:
    """
    Match expected occurrences of active expenses against ledger rows.

    ``until`` defaults to ``today``. Unmatched occurrences strictly before
    ``today`` are ``missing`` with ``days_overdue``; later ones are ``pending``.
    Transactions in ``excluded_transaction_ids`` are never bound.
    """
    tolerance = tolerance or MatchTolerance()
    horizon = until or today
    usable = [t for t in transactions if t.id not in excluded_transaction_ids]

    occurrences: list[tuple[Any, Occurrence]] = []
    for expense in expenses:
        if not expense.active:
            continue
        for occurrence in occurrences_for(expense, horizon, since=since):
            occurrences.append((expense, occurrence))

    ranked: list[tuple[int, Decimal, int, int, Any]] = []
    for index, (expense, occurrence) in enumerate(occurrences):
        for txn in usable:
            if not _is_candidate(expense, occurrence, txn, tolerance):
                continue
            date_distance = abs((txn.occurred_at - occurrence.expected_date).days)
            amount_distance = abs(abs(Decimal(txn.amount)) - occurrence.expected_amount)
            ranked.append((date_distance, amount_distance, txn.id, index, txn))
    ranked.sort(key=lambda pair: pair[:4])

    bound: dict[int, Any] = {}
    used_txn_ids: set[int] = set()
    for _, _, txn_id, index, txn in ranked:
        if index in bound or txn_id in used_txn_ids:
            continue
        bound[index] = txn
        used_txn_ids.add(txn_id)

    report = MatchReport()
    for index, (_, occurrence) in enumerate(occurrences):
        txn = bound.get(index)
        check = RecurringCheck(
            recurring_expense_id=occurrence.recurring_expense_id,
            year=occurrence.year,
            month=occurrence.month,
            expected_date=occurrence.expected_date,
            status=CheckStatus.PENDING,
        )
        if txn is not None:
            check.status = CheckStatus.MATCHED
            check.transaction_id = txn.id
            check.matched_date = txn.occurred_at
            check.matched_amount = abs(Decimal(txn.amount))
            report.matched_transactions[txn.id] = check
        elif occurrence.expected_date < today:
            check.status = CheckStatus.MISSING
            check.days_overdue = (today - occurrence.expected_date).days
        report.checks.append(check)
    return report
