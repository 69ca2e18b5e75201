from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bankfeed import models
from bankfeed.core import errors
from bankfeed.core.database import get_db
from bankfeed.core.deps import get_current_user
from bankfeed.schemas import RecurringExpenseCreate, RecurringExpenseOut, RecurringExpenseUpdate
from bankfeed.services.ownership import get_owned_account, get_owned_category


router = APIRouter(prefix="/recurring-expenses", tags=["recurring-expenses"])


def _get_owned_expense(db: Session, user_id: int, expense_id: int) -> models.RecurringExpense:
    expense = (
        db.query(models.RecurringExpense)
        .filter(models.RecurringExpense.id == expense_id, models.RecurringExpense.user_id == user_id)
        .first()
    )
    if not expense:
        raise errors.NotFoundError("Recurring expense not found")
    return expense


def _commit(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise errors.ConflictError("Recurring expense with same name already exists for user") from None


@router.get("", response_model=list[RecurringExpenseOut])
def list_recurring_expenses(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    return (
        db.query(models.RecurringExpense)
        .filter(models.RecurringExpense.user_id == current_user.id)
        .order_by(models.RecurringExpense.day_of_month, models.RecurringExpense.id)
        .all()
    )


@router.post("", response_model=RecurringExpenseOut, status_code=201)
def create_recurring_expense(
    payload: RecurringExpenseCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    get_owned_account(db, current_user.id, payload.account_id)
    get_owned_category(db, current_user.id, payload.category_id)
    expense = models.RecurringExpense(user_id=current_user.id, **payload.model_dump())
    db.add(expense)
    _commit(db)
    db.refresh(expense)
    return expense


@router.patch("/{expense_id}", response_model=RecurringExpenseOut)
def update_recurring_expense(
    expense_id: int,
    payload: RecurringExpenseUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    expense = _get_owned_expense(db, current_user.id, expense_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("account_id") is not None:
        get_owned_account(db, current_user.id, changes["account_id"])
    if changes.get("category_id") is not None:
        get_owned_category(db, current_user.id, changes["category_id"])
    for key, value in changes.items():
        if value is None and key != "match_pattern":
            continue
        setattr(expense, key, value)
    _commit(db)
    db.refresh(expense)
    return expense


@router.delete("/{expense_id}", status_code=204)
def delete_recurring_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    expense = _get_owned_expense(db, current_user.id, expense_id)
    db.delete(expense)
    db.commit()
    return Response(status_code=204)
