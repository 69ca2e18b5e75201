from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .core.config import settings
from .core.database import Base


try:
    LOCAL_ZONE = ZoneInfo(getattr(settings, "TIMEZONE", "Europe/Rome"))
except Exception:
    LOCAL_ZONE = ZoneInfo("UTC")


def now_local_naive() -> datetime:
    """Return naive datetime normalized to configured local timezone."""
    return datetime.now(LOCAL_ZONE).replace(tzinfo=None)


def today_local() -> date:
    return now_local_naive().date()


def _new_webhook_id() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class User(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    accounts: Mapped[list["Account"]] = relationship("Account", back_populates="user")


class AccountType(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT_CARD = "credit_card"
    CASH = "cash"
    INVESTMENT = "investment"
    OTHER = "other"


class TxnType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class Account(Base, TimestampMixin):
    """Source/destination of money. Ownership of every staged and ledger row walks through here."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType, name="account_type", values_callable=_enum_values),
        nullable=False,
        default=AccountType.CHECKING,
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default=lambda: settings.DEFAULT_CURRENCY)
    current_balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Aggregator-side account id used by bank-feed pushes
    provider_account_id: Mapped[str | None] = mapped_column(String(128))

    user: Mapped["User"] = relationship("User", back_populates="accounts")

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_account_name"),
        Index("ix_account_provider", "provider_account_id"),
    )


class Category(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TxnType] = mapped_column(
        SAEnum(TxnType, name="category_type", values_callable=_enum_values),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_category_name"),
    )


class Transaction(Base, TimestampMixin):
    """Permanent ledger row. ``amount`` is always the unsigned magnitude; ``type`` carries the sign."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id", ondelete="CASCADE"), nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("category.id", ondelete="RESTRICT"), nullable=False)
    occurred_at: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    type: Mapped[TxnType] = mapped_column(
        SAEnum(TxnType, name="txn_type", values_callable=_enum_values),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    external_id: Mapped[str | None] = mapped_column(String(128))

    account: Mapped["Account"] = relationship("Account")
    category: Mapped["Category"] = relationship("Category")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_txn_amount_unsigned"),
        UniqueConstraint("account_id", "external_id", name="uq_txn_account_external_id"),
        Index("ix_txn_account_date", "account_id", "occurred_at"),
    )


class StagingStatus(str, Enum):
    PENDING = "pending"
    DISMISSED = "dismissed"
    RECONCILED = "reconciled"


class StagedTransaction(Base, TimestampMixin):
    """Raw bank-feed candidate awaiting review.

    ``amount`` is signed from the account's point of view (negative = money out).
    Only ``status`` changes after creation.
    """

    __tablename__ = "import_staging"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id", ondelete="CASCADE"), nullable=False)
    occurred_at: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str | None] = mapped_column(String(3))
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    external_id: Mapped[str | None] = mapped_column(String(128))
    status: Mapped[StagingStatus] = mapped_column(
        SAEnum(StagingStatus, name="staging_status", values_callable=_enum_values),
        nullable=False,
        default=StagingStatus.PENDING,
    )

    account: Mapped["Account"] = relationship("Account")

    __table_args__ = (
        # NULL external ids never collide, so manual rows are not deduplicated
        UniqueConstraint("account_id", "external_id", name="uq_staging_account_external_id"),
        Index("ix_staging_account_status", "account_id", "status"),
    )


class RecurringInterval(str, Enum):
    MONTHLY = "monthly"


class RecurringExpense(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id", ondelete="CASCADE"), nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("category.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    interval: Mapped[RecurringInterval] = mapped_column(
        SAEnum(RecurringInterval, name="recurring_interval", values_callable=_enum_values),
        nullable=False,
        default=RecurringInterval.MONTHLY,
    )
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    match_pattern: Mapped[str | None] = mapped_column(String(200))

    __table_args__ = (
        CheckConstraint("day_of_month BETWEEN 1 AND 31", name="ck_recurring_day_of_month"),
        UniqueConstraint("user_id", "name", name="uq_recurring_expense_name"),
    )


class CheckStatus(str, Enum):
    MATCHED = "matched"
    MISSING = "missing"
    PENDING = "pending"


class RecurringExpenseCheck(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    recurring_expense_id: Mapped[int] = mapped_column(
        ForeignKey("recurringexpense.id", ondelete="CASCADE"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    expected_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[CheckStatus] = mapped_column(
        SAEnum(CheckStatus, name="check_status", values_callable=_enum_values),
        nullable=False,
    )
    transaction_id: Mapped[int | None] = mapped_column(ForeignKey("transaction.id", ondelete="SET NULL"))
    matched_date: Mapped[date | None] = mapped_column(Date)
    matched_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2))
    days_overdue: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recurring_expense: Mapped["RecurringExpense"] = relationship("RecurringExpense")

    __table_args__ = (
        UniqueConstraint("recurring_expense_id", "year", "month", name="uq_recurring_check_period"),
        # a ledger row backs at most one check
        UniqueConstraint("transaction_id", name="uq_recurring_check_transaction"),
    )


class Webhook(Base, TimestampMixin):
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_webhook_id)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    secret: Mapped[str | None] = mapped_column(String(255))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime)


class WebhookLogStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INVALID_SIGNATURE = "invalid_signature"


class WebhookLog(Base):
    """Append-only audit row written for every processed delivery."""

    __tablename__ = "webhook_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    webhook_id: Mapped[str] = mapped_column(ForeignKey("webhook.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[WebhookLogStatus] = mapped_column(
        SAEnum(WebhookLogStatus, name="webhook_log_status", values_callable=_enum_values),
        nullable=False,
    )
    request_body: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    response_body: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text)
    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)

    __table_args__ = (
        Index("ix_webhook_log_webhook_created", "webhook_id", "created_at"),
    )
