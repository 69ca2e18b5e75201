"""
Staging store and approval engine.

Staged rows are raw bank-feed candidates. They never become ledger rows on
their own: a reviewer approves (promotes) them, links them to an existing
ledger row, dismisses them, or deletes them.

Status transitions are compare-and-swap updates filtered by id, expected
status and the caller's accounts, so two reviewers racing on one row cannot
both win.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bankfeed import models, schemas
from bankfeed.core import errors
from bankfeed.services.dedupe import ExternalIdDeduplicator
from bankfeed.services.ownership import (
    get_owned_account,
    get_owned_category,
    get_owned_transaction,
    owned_account_ids,
)
from bankfeed.services.transaction_service import LedgerDraft, create_ledger_transaction, to_magnitude
from bankfeed.utils.parsing import parse_date, parse_decimal

logger = logging.getLogger(__name__)

STATUS_ALL = "all"

# target status -> status the row must currently have
_TRANSITIONS: dict[models.StagingStatus, models.StagingStatus] = {
    models.StagingStatus.RECONCILED: models.StagingStatus.PENDING,
    models.StagingStatus.DISMISSED: models.StagingStatus.PENDING,
    models.StagingStatus.PENDING: models.StagingStatus.DISMISSED,
}


@dataclass
class IngestOutcome:
    staged: list[models.StagedTransaction] = field(default_factory=list)
    skipped: int = 0

    @property
    def total(self) -> int:
        return len(self.staged) + self.skipped


def parse_category_id(value: Any) -> int:
    """Accept a positive int or a string of digits; reject bools and fractions."""
    if value is None or value == "":
        raise errors.ValidationError("Missing categoryId")
    if isinstance(value, bool):
        raise errors.ValidationError("Invalid categoryId")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
    else:
        raise errors.ValidationError("Invalid categoryId")
    if parsed <= 0:
        raise errors.ValidationError("Invalid categoryId")
    return parsed


def parse_status_filter(status: Optional[str]) -> Optional[models.StagingStatus]:
    """``None`` means pending, ``"all"`` disables filtering."""
    if status is None or status == "":
        return models.StagingStatus.PENDING
    if status == STATUS_ALL:
        return None
    try:
        return models.StagingStatus(status)
    except ValueError:
        raise errors.ValidationError(f"Invalid status: {status}") from None


class StagingService:
    """Per-user operations on ``import_staging`` rows."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.deduplicator = ExternalIdDeduplicator(db)

    # ==================== Store ====================

    def list_staging(
        self,
        user_id: int,
        account_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> list[models.StagedTransaction]:
        status_filter = parse_status_filter(status)
        q = self.db.query(models.StagedTransaction).filter(
            models.StagedTransaction.account_id.in_(owned_account_ids(user_id))
        )
        if account_id is not None:
            q = q.filter(models.StagedTransaction.account_id == account_id)
        if status_filter is not None:
            q = q.filter(models.StagedTransaction.status == status_filter)
        return q.order_by(
            models.StagedTransaction.occurred_at.desc(),
            models.StagedTransaction.id.desc(),
        ).all()

    def get_owned(self, staging_id: int, user_id: int) -> models.StagedTransaction:
        row = (
            self.db.query(models.StagedTransaction)
            .filter(
                models.StagedTransaction.id == staging_id,
                models.StagedTransaction.account_id.in_(owned_account_ids(user_id)),
            )
            .first()
        )
        if not row:
            raise errors.NotFoundError("Staged transaction not found")
        return row

    def _transition(self, staging_id: int, user_id: int, target: models.StagingStatus) -> None:
        """Conditional status update; flushes nothing else and does not commit."""
        source = _TRANSITIONS[target]
        stmt = (
            update(models.StagedTransaction)
            .where(
                models.StagedTransaction.id == staging_id,
                models.StagedTransaction.status == source,
                models.StagedTransaction.account_id.in_(owned_account_ids(user_id)),
            )
            .values(status=target, updated_at=models.now_local_naive())
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount == 0:
            raise errors.ConflictError(
                f"Staged transaction {staging_id} is not {source.value}; cannot mark it {target.value}"
            )

    def set_status(
        self,
        staging_id: int,
        user_id: int,
        status: models.StagingStatus,
    ) -> models.StagedTransaction:
        row = self.get_owned(staging_id, user_id)
        try:
            self._transition(staging_id, user_id, status)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(row)
        return row

    def dismiss(self, staging_id: int, user_id: int) -> models.StagedTransaction:
        return self.set_status(staging_id, user_id, models.StagingStatus.DISMISSED)

    def restore(self, staging_id: int, user_id: int) -> models.StagedTransaction:
        return self.set_status(staging_id, user_id, models.StagingStatus.PENDING)

    def delete_staging(self, staging_id: int, user_id: int) -> None:
        """Hard delete in any status. The external id may then be staged again."""
        row = self.get_owned(staging_id, user_id)
        self.db.delete(row)
        self.db.commit()

    # ==================== Ingestion ====================

    def stage_candidates(
        self,
        account: models.Account,
        candidates: Sequence[schemas.StagingCandidateIn],
    ) -> IngestOutcome:
        """Insert fresh candidates for ``account`` without committing."""
        fresh, seen = self.deduplicator.partition(account.id, candidates)
        outcome = IngestOutcome(skipped=len(seen))
        for candidate in fresh:
            row = models.StagedTransaction(
                account_id=account.id,
                occurred_at=candidate.occurred_at,
                amount=Decimal(candidate.amount).quantize(Decimal("0.01")),
                currency=(candidate.currency or account.currency or "").upper() or None,
                description=candidate.description or "",
                external_id=candidate.external_id,
                status=models.StagingStatus.PENDING,
            )
            if self.deduplicator.insert_once(row):
                outcome.staged.append(row)
            else:
                outcome.skipped += 1
        logger.info(
            "Staged %d of %d candidates for account=%s (%d already seen)",
            len(outcome.staged),
            outcome.total,
            account.id,
            outcome.skipped,
        )
        return outcome

    def ingest(
        self,
        user_id: int,
        account_id: int,
        candidates: Sequence[schemas.StagingCandidateIn],
    ) -> IngestOutcome:
        account = get_owned_account(self.db, user_id, account_id)
        for candidate in candidates:
            if not Decimal(candidate.amount).is_finite():
                raise errors.ValidationError("Invalid amount")
        try:
            outcome = self.stage_candidates(account, candidates)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        for row in outcome.staged:
            self.db.refresh(row)
        return outcome

    # ==================== Approval ====================

    def approve(
        self,
        staging_id: int,
        user_id: int,
        payload: schemas.StagingApproveRequest,
    ) -> models.Transaction:
        """
        Promote a pending staged row into a permanent ledger transaction.

        Input is validated before anything is written. The status swap and the
        ledger insert share one commit; a failure in either rolls back both.
        """
        category_id = parse_category_id(payload.category_id)
        get_owned_category(self.db, user_id, category_id)

        row = self.get_owned(staging_id, user_id)
        if row.status != models.StagingStatus.PENDING:
            raise errors.ConflictError(f"Staged transaction is already {row.status.value}")

        amount = row.amount
        if payload.amount is not None and payload.amount != "":
            amount = parse_decimal(payload.amount)
            if amount is None:
                raise errors.ValidationError("Invalid amount")
        amount = Decimal(amount)
        if not amount.is_finite():
            raise errors.ValidationError("Invalid amount")
        to_magnitude(amount)

        occurred_at: date = row.occurred_at
        if payload.date is not None and payload.date != "":
            parsed = parse_date(payload.date)
            if parsed is None:
                raise errors.ValidationError("Invalid date")
            occurred_at = parsed

        description = payload.description or row.description

        draft = LedgerDraft(
            account_id=row.account_id,
            category_id=category_id,
            occurred_at=occurred_at,
            signed_amount=amount,
            description=description,
            external_id=row.external_id,
        )
        try:
            self._transition(staging_id, user_id, models.StagingStatus.RECONCILED)
            txn, created = create_ledger_transaction(self.db, draft)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise errors.ConflictError("A ledger transaction with this external id already exists") from None
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(txn)
        logger.info(
            "Approved staging=%s -> transaction=%s (%s)",
            staging_id,
            txn.id,
            "created" if created else "existing",
        )
        return txn

    def link(self, staging_id: int, user_id: int, transaction_id: int) -> models.StagedTransaction:
        """Reconcile a pending staged row against an existing ledger row."""
        row = self.get_owned(staging_id, user_id)
        if row.status != models.StagingStatus.PENDING:
            raise errors.ConflictError(f"Staged transaction is already {row.status.value}")
        txn = get_owned_transaction(self.db, user_id, transaction_id)

        try:
            if row.external_id:
                txn.external_id = row.external_id
            self._transition(staging_id, user_id, models.StagingStatus.RECONCILED)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise errors.ConflictError("Another ledger transaction already carries this external id") from None
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(row)
        logger.info("Linked staging=%s to transaction=%s", staging_id, transaction_id)
        return row

    # ==================== Bulk ====================

    def _run_each(
        self,
        ids: Iterable[int],
        action: Callable[[int], Optional[int]],
    ) -> schemas.BulkResult:
        """Run ``action`` per id, each as its own unit of work."""
        results: list[schemas.BulkItemResult] = []
        for item_id in ids:
            try:
                txn_id = action(item_id)
            except errors.BankfeedError as exc:
                results.append(
                    schemas.BulkItemResult(
                        id=item_id, ok=False, status_code=exc.status_code, error=exc.message
                    )
                )
                continue
            except Exception:
                logger.exception("Bulk staging action failed for id=%s", item_id)
                self.db.rollback()
                results.append(
                    schemas.BulkItemResult(id=item_id, ok=False, status_code=500, error="Internal error")
                )
                continue
            results.append(schemas.BulkItemResult(id=item_id, ok=True, transaction_id=txn_id))
        succeeded = sum(1 for r in results if r.ok)
        return schemas.BulkResult(
            total=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=results,
        )

    def bulk_approve(self, user_id: int, items: Sequence[schemas.StagingApproveItem]) -> schemas.BulkResult:
        by_id = {item.id: item for item in items}

        def _approve(item_id: int) -> int:
            return self.approve(item_id, user_id, by_id[item_id]).id

        return self._run_each([item.id for item in items], _approve)

    def bulk_dismiss(self, user_id: int, ids: Sequence[int]) -> schemas.BulkResult:
        def _dismiss(item_id: int) -> None:
            self.dismiss(item_id, user_id)

        return self._run_each(ids, _dismiss)

    def bulk_delete(self, user_id: int, ids: Sequence[int]) -> schemas.BulkResult:
        def _delete(item_id: int) -> None:
            self.delete_staging(item_id, user_id)

        return self._run_each(ids, _delete)
