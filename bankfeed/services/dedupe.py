"""
External-id deduplication for bank-feed ingestion.

Identity key is ``(account_id, external_id)``. A candidate counts as already
seen when a staged row (any status) or a ledger transaction carries the key.
Candidates without an external id are never deduplicated here.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol, Sequence, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bankfeed import models

logger = logging.getLogger(__name__)


class _HasExternalId(Protocol):
    external_id: str | None


CandidateT = TypeVar("CandidateT", bound=_HasExternalId)


class ExternalIdDeduplicator:
    def __init__(self, db: Session) -> None:
        self.db = db

    def seen_external_ids(self, account_id: int, external_ids: Iterable[str]) -> set[str]:
        """Return the subset of ``external_ids`` already known for the account."""
        wanted = {ext for ext in external_ids if ext}
        if not wanted:
            return set()
        staged = (
            self.db.query(models.StagedTransaction.external_id)
            .filter(
                models.StagedTransaction.account_id == account_id,
                models.StagedTransaction.external_id.in_(wanted),
            )
            .all()
        )
        ledger = (
            self.db.query(models.Transaction.external_id)
            .filter(
                models.Transaction.account_id == account_id,
                models.Transaction.external_id.in_(wanted),
            )
            .all()
        )
        return {row[0] for row in staged} | {row[0] for row in ledger}

    def partition(
        self,
        account_id: int,
        candidates: Sequence[CandidateT],
    ) -> tuple[list[CandidateT], list[CandidateT]]:
        """
        Split candidates into (fresh, seen).

        A repeated external id inside the same batch is kept once; later
        copies are reported as seen.
        """
        known = self.seen_external_ids(
            account_id, (c.external_id for c in candidates if c.external_id)
        )
        fresh: list[CandidateT] = []
        seen: list[CandidateT] = []
        batch: set[str] = set()
        for candidate in candidates:
            ext = candidate.external_id
            if not ext:
                fresh.append(candidate)
                continue
            if ext in known or ext in batch:
                seen.append(candidate)
                continue
            batch.add(ext)
            fresh.append(candidate)
        return fresh, seen

    def insert_once(self, row: models.StagedTransaction) -> bool:
        """
        Insert a staged row under a SAVEPOINT.

        The unique constraint is the real guard: if a concurrent ingestion
        inserted the same key after ``partition`` ran, the IntegrityError is
        absorbed and the row reported as already seen.
        """
        try:
            with self.db.begin_nested():
                self.db.add(row)
                self.db.flush()
        except IntegrityError:
            logger.info(
                "Concurrent delivery of account=%s external_id=%s; treating as already seen",
                row.account_id,
                row.external_id,
            )
            return False
        return True
