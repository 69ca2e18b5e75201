from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bankfeed import models
from bankfeed.core import errors
from bankfeed.core.database import get_db
from bankfeed.core.deps import get_current_user
from bankfeed.schemas import TransactionCreate, TransactionOut
from bankfeed.services.ownership import (
    get_owned_account,
    get_owned_category,
    get_owned_transaction,
    owned_account_ids,
)
from bankfeed.services.transaction_service import (
    LedgerDraft,
    create_ledger_transaction,
    find_by_external_id,
)


router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get("", response_model=list[TransactionOut])
def list_transactions(
    account_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    q = db.query(models.Transaction).filter(
        models.Transaction.account_id.in_(owned_account_ids(current_user.id))
    )
    if account_id is not None:
        q = q.filter(models.Transaction.account_id == account_id)
    return q.order_by(models.Transaction.occurred_at.desc(), models.Transaction.id.desc()).all()


@router.post("", response_model=TransactionOut, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    get_owned_account(db, current_user.id, payload.account_id)
    get_owned_category(db, current_user.id, payload.category_id)
    if find_by_external_id(db, payload.account_id, payload.external_id):
        raise errors.ConflictError("Transaction with same external_id already exists for account")
    signed = payload.amount
    if payload.type is not None:
        # explicit type wins; amount is used as a magnitude
        signed = -abs(payload.amount) if payload.type == models.TxnType.EXPENSE else abs(payload.amount)
    try:
        txn, _ = create_ledger_transaction(
            db,
            LedgerDraft(
                account_id=payload.account_id,
                category_id=payload.category_id,
                occurred_at=payload.occurred_at,
                signed_amount=signed,
                description=payload.description,
                external_id=payload.external_id,
                type=payload.type,
            ),
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(txn)
    return txn


@router.get("/{txn_id}", response_model=TransactionOut)
def get_transaction(
    txn_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return get_owned_transaction(db, current_user.id, txn_id)
