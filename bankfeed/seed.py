from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from .core.database import SessionLocal
from .models import Account, AccountType, Category, TxnType, User

DEFAULT_ACCOUNTS = (
    ("Main Checking", AccountType.CHECKING),
    ("Savings", AccountType.SAVINGS),
    ("Cash", AccountType.CASH),
)

DEFAULT_CATEGORIES = (
    ("Salary", TxnType.INCOME),
    ("Other Income", TxnType.INCOME),
    ("Groceries", TxnType.EXPENSE),
    ("Rent", TxnType.EXPENSE),
    ("Utilities", TxnType.EXPENSE),
    ("Subscriptions", TxnType.EXPENSE),
    ("Uncategorized", TxnType.EXPENSE),
)


def seed_user(db: Session, email: str = "demo@example.com") -> User:
    """Create the user plus default accounts/categories. Safe to run repeatedly."""
    user = db.query(User).filter_by(email=email).first()
    if not user:
        user = User(email=email, is_active=True)
        db.add(user)
        db.flush()

    for name, account_type in DEFAULT_ACCOUNTS:
        if not db.query(Account).filter_by(user_id=user.id, name=name).first():
            db.add(Account(user_id=user.id, name=name, type=account_type, current_balance=Decimal("0")))

    for name, txn_type in DEFAULT_CATEGORIES:
        if not db.query(Category).filter_by(user_id=user.id, name=name).first():
            db.add(Category(user_id=user.id, name=name, type=txn_type))
    db.flush()
    return user


def seed() -> None:
    db: Session = SessionLocal()
    try:
        seed_user(db)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
