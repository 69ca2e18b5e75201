from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.orm import Session

from bankfeed import models
from bankfeed.core import errors

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
# Numeric(18, 2) holds sixteen integer digits
MAX_MAGNITUDE = Decimal(10) ** 16


@dataclass(frozen=True)
class LedgerDraft:
    """Validated input for the create-transaction primitive.

    ``signed_amount`` follows the staging convention (negative = money out)
    unless ``type`` is given explicitly, in which case only its magnitude is used.
    """

    account_id: int
    category_id: int
    occurred_at: date
    signed_amount: Decimal
    description: str = ""
    external_id: Optional[str] = None
    type: Optional[models.TxnType] = None


def derive_type(signed_amount: Decimal) -> models.TxnType:
    return models.TxnType.EXPENSE if signed_amount < 0 else models.TxnType.INCOME


def to_magnitude(amount: Decimal) -> Decimal:
    try:
        magnitude = abs(Decimal(amount)).quantize(CENT)
    except InvalidOperation as exc:
        raise errors.ValidationError("Invalid amount") from exc
    if magnitude >= MAX_MAGNITUDE:
        raise errors.ValidationError("Invalid amount")
    return magnitude


class TransactionBalanceService:
    """Coordinate account balance adjustments for ledger transactions."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def apply(self, account_id: int, txn_type: models.TxnType, amount: Decimal) -> None:
        """Apply the balance effect of a ledger row.

        ``amount`` is treated as an absolute value; income adds, expense subtracts.
        """
        magnitude = abs(Decimal(amount or 0))
        if magnitude == 0:
            return
        delta = magnitude if txn_type == models.TxnType.INCOME else -magnitude
        self._apply_delta(account_id, delta)

    def _apply_delta(self, account_id: int, delta: Decimal) -> None:
        account = (
            self.db.query(models.Account)
            .filter(models.Account.id == account_id)
            .first()
        )
        if not account:
            return
        current = Decimal(account.current_balance or 0)
        account.current_balance = current + delta


def find_by_external_id(db: Session, account_id: int, external_id: str | None) -> models.Transaction | None:
    if not external_id:
        return None
    return (
        db.query(models.Transaction)
        .filter(
            models.Transaction.account_id == account_id,
            models.Transaction.external_id == external_id,
        )
        .first()
    )


def create_ledger_transaction(db: Session, draft: LedgerDraft) -> tuple[models.Transaction, bool]:
    """Create a permanent ledger row and apply its balance effect exactly once.

    Idempotent on ``(account_id, external_id)``: when a row with that key exists
    it is returned unchanged and no balance effect is applied.

    Flushes but never commits; the caller owns the unit of work.

    Returns:
        (transaction, created)
    """
    existing = find_by_external_id(db, draft.account_id, draft.external_id)
    if existing is not None:
        logger.info(
            "Ledger row for account=%s external_id=%s already exists (id=%s)",
            draft.account_id,
            draft.external_id,
            existing.id,
        )
        return existing, False

    amount = Decimal(draft.signed_amount)
    if not amount.is_finite():
        raise errors.ValidationError("Invalid amount")
    txn_type = draft.type or derive_type(amount)

    txn = models.Transaction(
        account_id=draft.account_id,
        category_id=draft.category_id,
        occurred_at=draft.occurred_at,
        amount=to_magnitude(amount),
        type=txn_type,
        description=draft.description or "",
        external_id=draft.external_id,
    )
    db.add(txn)
    db.flush()
    TransactionBalanceService(db).apply(txn.account_id, txn.type, txn.amount)
    return txn, True
