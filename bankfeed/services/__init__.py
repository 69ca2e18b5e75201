"""
Services package

Business logic for staging, approval, reconciliation and ledger writes.
"""

from .dedupe import ExternalIdDeduplicator
from .reconciliation_service import ReconciliationService
from .staging_service import StagingService
from .transaction_service import TransactionBalanceService

__all__ = [
    "ExternalIdDeduplicator",
    "ReconciliationService",
    "StagingService",
    "TransactionBalanceService",
]
