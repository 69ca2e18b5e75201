from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_serializer,
    field_validator,
)

from .models import (
    AccountType,
    CheckStatus,
    RecurringInterval,
    StagingStatus,
    TxnType,
    WebhookLogStatus,
)


def _money_str(value: Decimal | float | int | None) -> str | None:
    if value is None:
        return None
    return f"{Decimal(str(value)).quantize(Decimal('0.01'))}"


# Decimal columns travel as 2-dp strings so clients never see float rounding
Money = Annotated[Decimal, PlainSerializer(_money_str, return_type=str)]
OptionalMoney = Annotated[Optional[Decimal], PlainSerializer(_money_str, return_type=Optional[str])]

SECRET_MASK = "********"


# ---------------------------------------------------------------------------
# Accounts / categories / ledger
# ---------------------------------------------------------------------------


class AccountCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    type: AccountType = AccountType.CHECKING
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    current_balance: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("current_balance", "balance", "startingBalance"),
    )
    provider_account_id: Optional[str] = Field(default=None, max_length=128)

    model_config = ConfigDict(extra="ignore")

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class AccountOut(BaseModel):
    id: int
    user_id: int
    name: str
    type: AccountType
    currency: str
    current_balance: Money
    is_active: bool
    provider_account_id: Optional[str]
    created_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    type: TxnType


class CategoryOut(BaseModel):
    id: int
    user_id: int
    name: str
    type: TxnType

    model_config = ConfigDict(from_attributes=True)


class TransactionCreate(BaseModel):
    """Manual ledger entry.

    ``amount`` may be signed; when ``type`` is omitted the sign decides it,
    mirroring staging approval.
    """

    account_id: int = Field(validation_alias=AliasChoices("account_id", "accountId"))
    category_id: int = Field(validation_alias=AliasChoices("category_id", "categoryId"))
    occurred_at: dt.date = Field(validation_alias=AliasChoices("occurred_at", "date"))
    amount: Decimal
    type: Optional[TxnType] = None
    description: str = ""
    external_id: Optional[str] = Field(default=None, max_length=128)


class TransactionOut(BaseModel):
    id: int
    account_id: int
    category_id: int
    occurred_at: dt.date
    amount: Money
    type: TxnType
    description: str
    external_id: Optional[str]
    created_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Staging
# ---------------------------------------------------------------------------


class StagedTransactionOut(BaseModel):
    id: int
    account_id: int
    occurred_at: dt.date
    amount: Money
    currency: Optional[str]
    description: str
    external_id: Optional[str]
    status: StagingStatus
    created_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class StagingCandidateIn(BaseModel):
    external_id: Optional[str] = Field(
        default=None,
        max_length=128,
        validation_alias=AliasChoices("external_id", "externalId", "transactionId"),
    )
    occurred_at: dt.date = Field(validation_alias=AliasChoices("occurred_at", "date", "bookingDate"))
    amount: Decimal
    description: str = ""
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)

    @field_validator("external_id")
    @classmethod
    def _blank_external_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None


class StagingIngestRequest(BaseModel):
    account_id: int = Field(validation_alias=AliasChoices("account_id", "accountId"))
    items: list[StagingCandidateIn]


class StagingIngestResult(BaseModel):
    total: int
    staged: int
    skipped: int
    rows: list[StagedTransactionOut]


class StagingApproveRequest(BaseModel):
    """Approval overrides.

    Fields are loosely typed on purpose: the approval engine owns their
    validation so malformed input surfaces as a 400, not a schema 422.
    """

    category_id: Any = Field(default=None, validation_alias=AliasChoices("category_id", "categoryId"))
    description: Optional[str] = None
    date: Any = Field(default=None, validation_alias=AliasChoices("date", "occurred_at"))
    amount: Any = None


class StagingApproveItem(StagingApproveRequest):
    id: int


class StagingBulkApproveRequest(BaseModel):
    items: list[StagingApproveItem] = Field(
        min_length=1,
        validation_alias=AliasChoices("items", "updates"),
    )


class StagingBulkIdsRequest(BaseModel):
    ids: list[int] = Field(min_length=1)


class StagingLinkRequest(BaseModel):
    transaction_id: int = Field(validation_alias=AliasChoices("transaction_id", "transactionId"))


class BulkItemResult(BaseModel):
    id: int
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    transaction_id: Optional[int] = None


class BulkResult(BaseModel):
    total: int
    succeeded: int
    failed: int
    results: list[BulkItemResult]


# ---------------------------------------------------------------------------
# Recurring expenses / reconciliation
# ---------------------------------------------------------------------------


class RecurringExpenseCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    account_id: int = Field(validation_alias=AliasChoices("account_id", "accountId"))
    category_id: int = Field(validation_alias=AliasChoices("category_id", "categoryId"))
    amount: Decimal = Field(gt=0)
    interval: RecurringInterval = RecurringInterval.MONTHLY
    day_of_month: int = Field(ge=1, le=31, validation_alias=AliasChoices("day_of_month", "dayOfMonth"))
    start_date: dt.date = Field(validation_alias=AliasChoices("start_date", "startDate"))
    active: bool = True
    match_pattern: Optional[str] = Field(default=None, max_length=200)


class RecurringExpenseUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    start_date: Optional[dt.date] = None
    active: Optional[bool] = None
    match_pattern: Optional[str] = Field(default=None, max_length=200)


class RecurringExpenseOut(BaseModel):
    id: int
    user_id: int
    account_id: int
    category_id: int
    name: str
    amount: Money
    interval: RecurringInterval
    day_of_month: int
    start_date: dt.date
    active: bool
    match_pattern: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class RecurringCheckOut(BaseModel):
    recurring_expense_id: int
    expected_date: dt.date
    status: CheckStatus
    transaction_id: Optional[int] = None
    matched_date: Optional[dt.date] = None
    matched_amount: OptionalMoney = None
    days_overdue: int = 0

    model_config = ConfigDict(from_attributes=True)


class StoredRecurringCheckOut(RecurringCheckOut):
    id: int
    year: int
    month: int


class ReconciliationCheckRequest(BaseModel):
    year: int = Field(ge=1970, le=9999)
    month: int = Field(ge=1, le=12)


class ReconciliationReportOut(BaseModel):
    as_of: dt.date
    checks: list[RecurringCheckOut]
    matched_transactions: dict[int, RecurringCheckOut]
    missing_count: int


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class WebhookCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    type: str = Field(min_length=1, max_length=50)
    secret: Optional[str] = Field(default=None, max_length=255)
    active: bool = True

    @field_validator("type")
    @classmethod
    def _normalize_type(cls, value: str) -> str:
        return value.strip().lower()


class WebhookUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    secret: Optional[str] = Field(default=None, max_length=255)
    active: Optional[bool] = None


class WebhookOut(BaseModel):
    id: str
    user_id: int
    name: str
    type: str
    secret: Optional[str]
    active: bool
    last_used_at: Optional[dt.datetime]
    created_at: dt.datetime
    webhook_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("secret")
    def _mask_secret(self, value: Optional[str]) -> Optional[str]:
        return SECRET_MASK if value else None


class WebhookLogOut(BaseModel):
    id: int
    webhook_id: str
    status: WebhookLogStatus
    request_body: Any = None
    response_body: Any = None
    error_message: Optional[str]
    processing_time_ms: int
    created_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class WebhookStatusOut(BaseModel):
    status: str
    type: str
    last_used: Optional[dt.datetime]
    instructions: dict[str, Any]
