from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import and_, not_
from sqlalchemy.orm import Session

from bankfeed import models
from bankfeed.core import errors
from bankfeed.services.ownership import owned_account_ids
from bankfeed.services.recurring_matcher import (
    MatchReport,
    MatchTolerance,
    clamp_day,
    match_recurring,
)

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Load a user's recurring expenses and ledger rows and run the matcher over them."""

    def __init__(self, db: Session, tolerance: Optional[MatchTolerance] = None) -> None:
        self.db = db
        self.tolerance = tolerance or MatchTolerance.from_settings()

    def _active_expenses(self, user_id: int) -> list[models.RecurringExpense]:
        return (
            self.db.query(models.RecurringExpense)
            .filter(
                models.RecurringExpense.user_id == user_id,
                models.RecurringExpense.active.is_(True),
            )
            .order_by(models.RecurringExpense.id)
            .all()
        )

    def _expense_transactions(self, user_id: int, start: date, end: date) -> list[models.Transaction]:
        pad = timedelta(days=self.tolerance.date_days)
        return (
            self.db.query(models.Transaction)
            .filter(
                models.Transaction.account_id.in_(owned_account_ids(user_id)),
                models.Transaction.type == models.TxnType.EXPENSE,
                models.Transaction.occurred_at >= start - pad,
                models.Transaction.occurred_at <= end + pad,
            )
            .order_by(models.Transaction.id)
            .all()
        )

    def report(self, user_id: int, today: Optional[date] = None) -> MatchReport:
        """Live run from each expense's start date up to today. Writes nothing."""
        today = today or models.today_local()
        expenses = self._active_expenses(user_id)
        if not expenses:
            return MatchReport()
        earliest = min(e.start_date for e in expenses)
        transactions = self._expense_transactions(user_id, earliest, today)
        return match_recurring(expenses, transactions, today=today, tolerance=self.tolerance)

    def _checks_query(self, user_id: int):
        return (
            self.db.query(models.RecurringExpenseCheck)
            .join(models.RecurringExpense)
            .filter(models.RecurringExpense.user_id == user_id)
        )

    def check_month(
        self,
        user_id: int,
        year: int,
        month: int,
        today: Optional[date] = None,
    ) -> list[models.RecurringExpenseCheck]:
        """
        Match one calendar month and upsert a check row per expected occurrence.

        Transactions already bound to checks of other months stay bound there.
        """
        if not 1 <= month <= 12:
            raise errors.ValidationError("Month must be between 1 and 12")
        today = today or models.today_local()
        first = date(year, month, 1)
        last = clamp_day(year, month, 31)

        expenses = self._active_expenses(user_id)
        bound_elsewhere = {
            txn_id
            for (txn_id,) in self._checks_query(user_id)
            .filter(
                models.RecurringExpenseCheck.transaction_id.is_not(None),
                not_(
                    and_(
                        models.RecurringExpenseCheck.year == year,
                        models.RecurringExpenseCheck.month == month,
                    )
                ),
            )
            .with_entities(models.RecurringExpenseCheck.transaction_id)
            .all()
        }
        transactions = self._expense_transactions(user_id, first, last)
        report = match_recurring(
            expenses,
            transactions,
            today=today,
            until=last,
            since=first,
            tolerance=self.tolerance,
            excluded_transaction_ids=bound_elsewhere,
        )

        existing = {
            check.recurring_expense_id: check
            for check in self._checks_query(user_id).filter(
                models.RecurringExpenseCheck.year == year,
                models.RecurringExpenseCheck.month == month,
            )
        }
        try:
            # unbind first so bindings can move between expenses without tripping the unique key
            for check in existing.values():
                check.transaction_id = None
            self.db.flush()

            stored: list[models.RecurringExpenseCheck] = []
            for result in report.checks:
                row = existing.get(result.recurring_expense_id)
                if row is None:
                    row = models.RecurringExpenseCheck(
                        recurring_expense_id=result.recurring_expense_id,
                        year=year,
                        month=month,
                    )
                    self.db.add(row)
                row.expected_date = result.expected_date
                row.status = result.status
                row.transaction_id = result.transaction_id
                row.matched_date = result.matched_date
                row.matched_amount = result.matched_amount
                row.days_overdue = result.days_overdue
                stored.append(row)
            # expenses deactivated or moved out of this month since the last run
            expected = {result.recurring_expense_id for result in report.checks}
            for expense_id, row in existing.items():
                if expense_id not in expected:
                    self.db.delete(row)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        for row in stored:
            self.db.refresh(row)
        logger.info(
            "Reconciliation %04d-%02d for user=%s: %d checks, %d matched, %d missing",
            year,
            month,
            user_id,
            len(report.checks),
            len(report.matched_transactions),
            len(report.missing),
        )
        return stored

    def month_status(self, user_id: int, year: int, month: int) -> list[models.RecurringExpenseCheck]:
        return (
            self._checks_query(user_id)
            .filter(
                models.RecurringExpenseCheck.year == year,
                models.RecurringExpenseCheck.month == month,
            )
            .order_by(models.RecurringExpenseCheck.recurring_expense_id)
            .all()
        )

    def all_checks(self, user_id: int) -> list[models.RecurringExpenseCheck]:
        return (
            self._checks_query(user_id)
            .order_by(
                models.RecurringExpenseCheck.year.desc(),
                models.RecurringExpenseCheck.month.desc(),
                models.RecurringExpenseCheck.recurring_expense_id,
            )
            .all()
        )
