from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bankfeed.core.database import get_db
from bankfeed.core.deps import get_current_user
from bankfeed.schemas import (
    ReconciliationCheckRequest,
    ReconciliationReportOut,
    RecurringCheckOut,
    StoredRecurringCheckOut,
)
from bankfeed import models
from bankfeed.services.reconciliation_service import ReconciliationService


router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


@router.get("/report", response_model=ReconciliationReportOut)
def reconciliation_report(
    as_of: Optional[date] = Query(None, description="Evaluate as if today were this date"),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    today = as_of or models.today_local()
    report = ReconciliationService(db).report(current_user.id, today=today)
    checks = [RecurringCheckOut.model_validate(check) for check in report.checks]
    by_txn = {
        txn_id: RecurringCheckOut.model_validate(check)
        for txn_id, check in report.matched_transactions.items()
    }
    return ReconciliationReportOut(
        as_of=today,
        checks=checks,
        matched_transactions=by_txn,
        missing_count=len(report.missing),
    )


@router.post("/check", response_model=list[StoredRecurringCheckOut])
def run_reconciliation_check(
    payload: ReconciliationCheckRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return ReconciliationService(db).check_month(current_user.id, payload.year, payload.month)


@router.get("/status", response_model=list[StoredRecurringCheckOut])
def reconciliation_status(
    year: int = Query(..., ge=1970, le=9999),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return ReconciliationService(db).month_status(current_user.id, year, month)


@router.get("/checks", response_model=list[StoredRecurringCheckOut])
def reconciliation_checks(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    return ReconciliationService(db).all_checks(current_user.id)
