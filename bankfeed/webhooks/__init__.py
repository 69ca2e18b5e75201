"""
Webhook ingestion: signature check, per-type processors and audit logging.
"""

from .bank_feed import BankFeedProcessor
from .base import (
    ValidationResult,
    WebhookContext,
    WebhookProcessor,
    WebhookResponse,
    WebhookResult,
    WebhookService,
    compute_signature,
    verify_signature,
)
from .generic import GenericWebhookProcessor
from .tally import TallyProcessor


def build_webhook_service() -> WebhookService:
    return WebhookService([GenericWebhookProcessor(), TallyProcessor(), BankFeedProcessor()])


webhook_service = build_webhook_service()

__all__ = [
    "BankFeedProcessor",
    "GenericWebhookProcessor",
    "TallyProcessor",
    "ValidationResult",
    "WebhookContext",
    "WebhookProcessor",
    "WebhookResponse",
    "WebhookResult",
    "WebhookService",
    "build_webhook_service",
    "compute_signature",
    "verify_signature",
    "webhook_service",
]
