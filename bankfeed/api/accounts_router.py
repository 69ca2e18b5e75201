from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bankfeed import models
from bankfeed.core import errors
from bankfeed.core.config import settings
from bankfeed.core.database import get_db
from bankfeed.core.deps import get_current_user
from bankfeed.schemas import AccountCreate, AccountOut
from bankfeed.services.ownership import list_accounts


router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get("", response_model=list[AccountOut])
def get_accounts(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    return list_accounts(db, current_user.id)


@router.post("", response_model=AccountOut, status_code=201)
def create_account(
    payload: AccountCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    exists = (
        db.query(models.Account)
        .filter(models.Account.user_id == current_user.id, models.Account.name == payload.name)
        .first()
    )
    if exists:
        raise errors.ConflictError("Account with same name already exists for user")
    account = models.Account(
        user_id=current_user.id,
        name=payload.name,
        type=payload.type,
        currency=payload.currency or settings.DEFAULT_CURRENCY,
        current_balance=payload.current_balance,
        provider_account_id=payload.provider_account_id,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account
