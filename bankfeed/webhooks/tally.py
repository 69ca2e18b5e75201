"""
Tally.so form submissions.

Tally posts ``{"eventType": "FORM_RESPONSE", "data": {"fields": [...]}}``
where each field has a ``label``, a ``value`` and, for dropdowns, the list
of ``options`` the selected ids refer to. Forms are usually in Italian, so
both Italian and English labels are recognised.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Optional

from bankfeed import models, schemas
from bankfeed.services.transaction_service import LedgerDraft, create_ledger_transaction
from bankfeed.utils import parse_date, parse_decimal

from .base import ValidationResult, WebhookContext, WebhookResult
from .lookup import LookupFailed, resolve_account, resolve_category

LABEL_DATE = re.compile(r"^(data|date)$")
LABEL_DESCRIPTION = re.compile(r"^(causale|descrizione|description)$")
LABEL_CATEGORY = re.compile(r"^(categoria|category)$")
LABEL_ACCOUNT = re.compile(r"^(conto|account)$")
LABEL_DIRECTION = re.compile(r"^(direzione|direction)$")
LABEL_INCOME = re.compile(r"^(importo\s*entrata|income(\s*amount)?)$")
LABEL_EXPENSE = re.compile(r"^(importo\s*uscita|expense(\s*amount)?)$")

INCOME_DIRECTIONS = {"entrata", "income"}


def _fields(payload: Any) -> list[dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    data = payload.get("data")
    if not isinstance(data, dict):
        return []
    fields = data.get("fields")
    if not isinstance(fields, list):
        return []
    return [f for f in fields if isinstance(f, dict)]


def find_field(fields: list[dict[str, Any]], pattern: re.Pattern[str]) -> Optional[dict[str, Any]]:
    for item in fields:
        label = str(item.get("label") or "").strip().lower()
        if pattern.match(label):
            return item
    return None


def simple_value(item: Optional[dict[str, Any]]) -> str:
    """String, number, or the first element of a list value."""
    if not item:
        return ""
    value = item.get("value")
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, list):
        return str(value[0]) if value and value[0] is not None else ""
    return str(value)


def dropdown_text(item: Optional[dict[str, Any]]) -> str:
    """Text of the first selected option; falls back to the raw value."""
    if not item:
        return ""
    value = item.get("value")
    if isinstance(value, list):
        if not value:
            return ""
        selected = value[0]
        for option in item.get("options") or []:
            if isinstance(option, dict) and option.get("id") == selected:
                return str(option.get("text") or "")
        return ""
    return simple_value(item)


def _response_id(payload: Any) -> Optional[str]:
    """Tally's per-submission id; redelivery of the same response is a no-op."""
    response_id = payload["data"].get("responseId")
    return str(response_id) if response_id else None


def _amount(item: Optional[dict[str, Any]]) -> Decimal:
    """Typed-in amounts are European ("1.200" is twelve hundred); JSON numbers pass through."""
    if not item or item.get("value") in (None, ""):
        return Decimal("0")
    value = item.get("value")
    style = "eu" if isinstance(value, str) else "auto"
    return parse_decimal(value, style=style) or Decimal("0")


class TallyProcessor:
    type = "tally"
    expected_fields = (
        "Data (or Date) - DD/MM/YYYY format",
        "Descrizione (or Description) - transaction description",
        "Importo Entrata - income amount",
        "Importo Uscita - expense amount",
        "Conto (or Account) - account name",
        "Categoria (or Category) - category name",
    )

    def validate_payload(self, payload: Any) -> ValidationResult:
        if not _fields(payload):
            return ValidationResult.fail("No fields found in payload")
        return ValidationResult.ok()

    def process_payload(self, payload: Any, context: WebhookContext) -> WebhookResult:
        fields = _fields(payload)

        description = simple_value(find_field(fields, LABEL_DESCRIPTION)).strip()
        category_name = dropdown_text(find_field(fields, LABEL_CATEGORY))
        account_name = dropdown_text(find_field(fields, LABEL_ACCOUNT))
        direction = dropdown_text(find_field(fields, LABEL_DIRECTION)).strip().lower()
        income = _amount(find_field(fields, LABEL_INCOME))
        expense = _amount(find_field(fields, LABEL_EXPENSE))

        if direction in INCOME_DIRECTIONS or income > 0:
            amount = income if income > 0 else expense
            txn_type = models.TxnType.INCOME
        else:
            amount = expense if expense > 0 else income
            txn_type = models.TxnType.EXPENSE

        if not description or amount <= 0:
            return WebhookResult(False, error="Invalid transaction data: missing description or amount")

        try:
            account = resolve_account(context.db, context.user_id, account_name)
            category = resolve_category(context.db, context.user_id, category_name)
        except LookupFailed as exc:
            return WebhookResult(False, error=str(exc))

        occurred_at = parse_date(
            simple_value(find_field(fields, LABEL_DATE)),
            default=models.today_local(),
        )
        txn, _ = create_ledger_transaction(
            context.db,
            LedgerDraft(
                account_id=account.id,
                category_id=category.id,
                occurred_at=occurred_at,
                signed_amount=amount,
                description=description,
                type=txn_type,
                external_id=_response_id(payload),
            ),
        )
        return WebhookResult(True, data=schemas.TransactionOut.model_validate(txn).model_dump(mode="json"))
