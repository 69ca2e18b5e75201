"""Per-user scoping helpers.

Staged and ledger rows carry no user id; access is authorised by walking
account -> user, so every query goes through ``owned_account_ids``.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from bankfeed import models
from bankfeed.core import errors


def owned_account_ids(user_id: int):
    """Scalar subquery of the user's account ids, for ``IN (...)`` filters."""
    return select(models.Account.id).where(models.Account.user_id == user_id).scalar_subquery()


def list_accounts(db: Session, user_id: int) -> list[models.Account]:
    return (
        db.query(models.Account)
        .filter(models.Account.user_id == user_id)
        .order_by(models.Account.name, models.Account.id)
        .all()
    )


def list_categories(db: Session, user_id: int) -> list[models.Category]:
    return (
        db.query(models.Category)
        .filter(models.Category.user_id == user_id)
        .order_by(models.Category.name, models.Category.id)
        .all()
    )


def get_owned_account(db: Session, user_id: int, account_id: int) -> models.Account:
    account = (
        db.query(models.Account)
        .filter(models.Account.id == account_id, models.Account.user_id == user_id)
        .first()
    )
    if not account:
        raise errors.NotFoundError("Account not found")
    return account


def get_owned_category(db: Session, user_id: int, category_id: int) -> models.Category:
    category = (
        db.query(models.Category)
        .filter(models.Category.id == category_id, models.Category.user_id == user_id)
        .first()
    )
    if not category:
        raise errors.ValidationError("Invalid categoryId for user")
    return category


def get_owned_transaction(db: Session, user_id: int, transaction_id: int) -> models.Transaction:
    """Load a ledger row, distinguishing missing (404) from foreign (403)."""
    txn = db.get(models.Transaction, transaction_id)
    if not txn:
        raise errors.NotFoundError("Transaction not found")
    account = db.get(models.Account, txn.account_id)
    if not account or account.user_id != user_id:
        raise errors.ForbiddenError("Forbidden: transaction not owned by user")
    return txn
