"""
Bank aggregator pushes.

Booked transactions arrive in the aggregator's account-information shape::

    {"accountId": "<provider account id>",      # or "account": "<name>"
     "transactions": {"booked": [
        {"transactionId": "abc", "bookingDate": "2024-05-01",
         "transactionAmount": {"amount": "-12.30", "currency": "EUR"},
         "remittanceInformationUnstructured": "CARD PAYMENT"}]}}

They are staged for review, never written to the ledger directly.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from bankfeed import models, schemas
from bankfeed.services.ownership import list_accounts
from bankfeed.services.staging_service import StagingService
from bankfeed.utils import available_names, find_by_name, parse_date, parse_decimal

from .base import ValidationResult, WebhookContext, WebhookResult

DEFAULT_DESCRIPTION = "Bank Transaction"


def booked_transactions(payload: dict[str, Any]) -> Optional[list[Any]]:
    transactions = payload.get("transactions")
    if isinstance(transactions, dict):
        transactions = transactions.get("booked")
    return transactions if isinstance(transactions, list) else None


def to_candidate(item: Any) -> schemas.StagingCandidateIn:
    """Map one aggregator transaction onto a staging candidate.

    Raises ``ValueError`` with a readable message when a field is unusable.
    """
    if not isinstance(item, dict):
        raise ValueError("transaction must be an object")
    amount_block = item.get("transactionAmount")
    if isinstance(amount_block, dict):
        raw_amount, currency = amount_block.get("amount"), amount_block.get("currency")
    else:
        raw_amount, currency = item.get("amount"), item.get("currency")
    amount = parse_decimal(raw_amount)
    if amount is None:
        raise ValueError(f"invalid amount {raw_amount!r}")

    raw_date = item.get("bookingDate") or item.get("valueDate")
    occurred_at = parse_date(raw_date)
    if occurred_at is None:
        raise ValueError(f"invalid date {raw_date!r}")

    description = (
        item.get("remittanceInformationUnstructured")
        or item.get("creditorName")
        or item.get("debtorName")
        or DEFAULT_DESCRIPTION
    )
    try:
        return schemas.StagingCandidateIn(
            external_id=item.get("transactionId") or item.get("internalTransactionId"),
            occurred_at=occurred_at,
            amount=amount,
            description=str(description),
            currency=currency or None,
        )
    except PydanticValidationError as exc:
        raise ValueError(exc.errors()[0].get("msg", "validation error")) from None


class BankFeedProcessor:
    type = "bank_feed"
    expected_fields = (
        "accountId - provider account id (or account - account name)",
        "transactions.booked[] - transactionId, bookingDate, transactionAmount.amount",
    )

    def validate_payload(self, payload: Any) -> ValidationResult:
        if not isinstance(payload, dict):
            return ValidationResult.fail("Payload must be a JSON object")
        if not (payload.get("accountId") or payload.get("account")):
            return ValidationResult.fail("Missing required fields: accountId or account")
        transactions = booked_transactions(payload)
        if transactions is None:
            return ValidationResult.fail("Missing booked transactions")
        return ValidationResult.ok()

    def _resolve_account(self, payload: dict[str, Any], context: WebhookContext) -> models.Account | str:
        accounts = list_accounts(context.db, context.user_id)
        provider_id = payload.get("accountId")
        if provider_id:
            for account in accounts:
                if account.provider_account_id and account.provider_account_id == str(provider_id):
                    return account
        name = payload.get("account")
        if name:
            account = find_by_name(accounts, str(name))
            if account is not None:
                return account
        return f"Account not found: {name or provider_id}. Available: {available_names(accounts)}"

    def process_payload(self, payload: dict[str, Any], context: WebhookContext) -> WebhookResult:
        resolved = self._resolve_account(payload, context)
        if isinstance(resolved, str):
            return WebhookResult(False, error=resolved)
        account = resolved

        candidates: list[schemas.StagingCandidateIn] = []
        for index, item in enumerate(booked_transactions(payload) or []):
            try:
                candidates.append(to_candidate(item))
            except ValueError as exc:
                return WebhookResult(False, error=f"Transaction {index}: {exc}")

        outcome = StagingService(context.db).stage_candidates(account, candidates)
        return WebhookResult(
            True,
            data={
                "account_id": account.id,
                "total": outcome.total,
                "staged": len(outcome.staged),
                "skipped": outcome.skipped,
                "staged_ids": [row.id for row in outcome.staged],
            },
        )
