from __future__ import annotations

import math
from decimal import Decimal
from typing import Any

from bankfeed import models, schemas
from bankfeed.services.transaction_service import LedgerDraft, create_ledger_transaction
from bankfeed.utils import parse_date

from .base import ValidationResult, WebhookContext, WebhookResult
from .lookup import LookupFailed, resolve_account, resolve_category

REQUIRED_FIELDS = ("amount", "description", "account", "category")


class GenericWebhookProcessor:
    """
    Plain JSON transaction push.

    Payload::

        {"date": "2024-05-01", "amount": 42.5, "type": "expense",
         "description": "Coffee", "account": "Main Checking", "category": "Food"}

    ``date`` defaults to today and ``type`` to expense. ``amount`` is a
    positive JSON number; the direction comes from ``type``.
    """

    type = "generic"
    expected_fields = (
        "date - ISO date, defaults to today",
        "amount - positive number",
        "type - income or expense, defaults to expense",
        "description - transaction description",
        "account - account name",
        "category - category name",
    )

    def validate_payload(self, payload: Any) -> ValidationResult:
        if not isinstance(payload, dict):
            return ValidationResult.fail("Payload must be a JSON object")

        missing = [name for name in REQUIRED_FIELDS if not payload.get(name)]
        if missing:
            return ValidationResult.fail(f"Missing required fields: {', '.join(missing)}")

        amount = payload["amount"]
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            return ValidationResult.fail("Amount must be a positive number")
        if not math.isfinite(amount) or amount <= 0:
            return ValidationResult.fail("Amount must be a positive number")

        txn_type = payload.get("type")
        if txn_type is not None and str(txn_type).strip().lower() not in ("income", "expense"):
            return ValidationResult.fail("Type must be 'income' or 'expense'")
        return ValidationResult.ok()

    def process_payload(self, payload: dict[str, Any], context: WebhookContext) -> WebhookResult:
        raw_date = payload.get("date")
        occurred_at = parse_date(raw_date) if raw_date else models.today_local()
        if occurred_at is None:
            return WebhookResult(False, error=f"Invalid date: {raw_date}")

        try:
            account = resolve_account(context.db, context.user_id, str(payload["account"]))
            category = resolve_category(context.db, context.user_id, str(payload["category"]))
        except LookupFailed as exc:
            return WebhookResult(False, error=str(exc))

        external_id = payload.get("external_id") or payload.get("externalId")
        txn_type = models.TxnType(str(payload.get("type") or "expense").strip().lower())
        txn, _ = create_ledger_transaction(
            context.db,
            LedgerDraft(
                account_id=account.id,
                category_id=category.id,
                occurred_at=occurred_at,
                signed_amount=Decimal(str(payload["amount"])),
                description=str(payload["description"]),
                type=txn_type,
                external_id=str(external_id) if external_id else None,
            ),
        )
        return WebhookResult(True, data=schemas.TransactionOut.model_validate(txn).model_dump(mode="json"))
