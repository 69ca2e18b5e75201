"""Name-based account/category resolution for form-style webhook payloads."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from bankfeed import models
from bankfeed.services.ownership import list_accounts, list_categories
from bankfeed.utils import available_names, find_by_name


class LookupFailed(Exception):
    """Name did not resolve; ``str(exc)`` is the user-facing message."""


def resolve_account(db: Session, user_id: int, name: Optional[str]) -> models.Account:
    accounts = list_accounts(db, user_id)
    account = find_by_name(accounts, name)
    if account is None:
        raise LookupFailed(f"Account not found: {name or ''}. Available: {available_names(accounts)}")
    return account


def resolve_category(db: Session, user_id: int, name: Optional[str]) -> models.Category:
    categories = list_categories(db, user_id)
    category = find_by_name(categories, name)
    if category is None:
        raise LookupFailed(f"Category not found: {name or ''}. Available: {available_names(categories)}")
    return category
