"""
Webhook ingestion router.

A delivery walks ``received -> signature verified -> type dispatched ->
payload validated -> processed -> logged``. Every step after the webhook row
is found writes exactly one ``WebhookLog`` row. Processing and its log row
are one unit of work: on failure the processor's writes are rolled back
before the log row is committed.

Processors are looked up by ``Webhook.type``; new providers plug in through
``WebhookService.register_processor`` without touching the HTTP layer.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy.orm import Session

from bankfeed import models
from bankfeed.core import errors

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal processing error"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(True)

    @classmethod
    def fail(cls, error: str) -> "ValidationResult":
        return cls(False, error)


@dataclass
class WebhookResult:
    success: bool
    data: Any = None
    error: Optional[str] = None


@dataclass
class WebhookContext:
    webhook: models.Webhook
    user_id: int
    db: Session


class WebhookProcessor(Protocol):
    type: str

    def validate_payload(self, payload: Any) -> ValidationResult:
        ...

    def process_payload(self, payload: Any, context: WebhookContext) -> WebhookResult:
        ...


@dataclass
class WebhookResponse:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


def compute_signature(secret: str, raw_body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """base64(HMAC-SHA256(secret, raw_body)) compared in constant time."""
    if not signature or not secret:
        return False
    expected = compute_signature(secret, raw_body).encode("ascii")
    provided = signature.strip().encode("utf-8")
    if len(provided) != len(expected):
        return False
    return hmac.compare_digest(provided, expected)


def _decode_json(raw_body: bytes) -> tuple[Any, Optional[str]]:
    if not raw_body:
        return None, "Request body must be a JSON document"
    try:
        return json.loads(raw_body), None
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None, "Request body must be a JSON document"


class WebhookService:
    """Routes deliveries to registered processors and keeps the audit log."""

    def __init__(self, processors: Iterable[WebhookProcessor] = ()) -> None:
        self._processors: dict[str, WebhookProcessor] = {}
        for processor in processors:
            self.register_processor(processor)

    def register_processor(self, processor: WebhookProcessor) -> None:
        self._processors[processor.type] = processor

    def get_processor(self, webhook_type: str) -> Optional[WebhookProcessor]:
        return self._processors.get(webhook_type)

    def supported_types(self) -> list[str]:
        return sorted(self._processors)

    def _log(
        self,
        db: Session,
        webhook_id: str,
        status: models.WebhookLogStatus,
        started: float,
        *,
        request_body: Any = None,
        response_body: Any = None,
        error_message: Optional[str] = None,
    ) -> None:
        db.add(
            models.WebhookLog(
                webhook_id=webhook_id,
                status=status,
                request_body=request_body,
                response_body=response_body,
                error_message=error_message,
                processing_time_ms=int((time.monotonic() - started) * 1000),
            )
        )

    def _reject(
        self,
        db: Session,
        webhook_id: str,
        started: float,
        status_code: int,
        message: str,
        *,
        log_status: models.WebhookLogStatus = models.WebhookLogStatus.ERROR,
        payload: Any = None,
        log_message: Optional[str] = None,
    ) -> WebhookResponse:
        db.rollback()
        self._log(
            db,
            webhook_id,
            log_status,
            started,
            request_body=payload,
            error_message=log_message or message,
        )
        db.commit()
        logger.warning("Webhook %s rejected (%s): %s", webhook_id, status_code, log_message or message)
        return WebhookResponse(status_code, {"detail": message})

    def process_webhook(
        self,
        db: Session,
        webhook_id: str,
        raw_body: bytes,
        signature: Optional[str] = None,
    ) -> WebhookResponse:
        started = time.monotonic()

        webhook = db.get(models.Webhook, webhook_id)
        if webhook is None:
            logger.warning("Delivery for unknown webhook %s", webhook_id)
            return WebhookResponse(404, {"detail": "Webhook not found"})

        payload, decode_error = _decode_json(raw_body)

        if not webhook.active:
            return self._reject(db, webhook_id, started, 403, "Webhook is disabled", payload=payload)

        if webhook.secret and not verify_signature(raw_body, signature, webhook.secret):
            return self._reject(
                db,
                webhook_id,
                started,
                401,
                "Invalid or missing signature",
                log_status=models.WebhookLogStatus.INVALID_SIGNATURE,
                payload=payload,
            )

        if decode_error:
            return self._reject(db, webhook_id, started, 400, decode_error)

        processor = self.get_processor(webhook.type)
        if processor is None:
            return self._reject(
                db,
                webhook_id,
                started,
                400,
                f"Unsupported webhook type: {webhook.type}",
                payload=payload,
                log_message=f"No processor for type: {webhook.type}",
            )

        validation = processor.validate_payload(payload)
        if not validation.valid:
            return self._reject(
                db, webhook_id, started, 400, validation.error or "Invalid payload", payload=payload
            )

        context = WebhookContext(webhook=webhook, user_id=webhook.user_id, db=db)
        try:
            result = processor.process_payload(payload, context)
        except errors.ValidationError as exc:
            return self._reject(db, webhook_id, started, 400, exc.message, payload=payload)
        except Exception as exc:
            logger.exception("Webhook %s (%s) processing failed", webhook_id, webhook.type)
            return self._reject(
                db,
                webhook_id,
                started,
                500,
                INTERNAL_ERROR_MESSAGE,
                payload=payload,
                log_message=str(exc) or exc.__class__.__name__,
            )

        if not result.success:
            return self._reject(
                db, webhook_id, started, 400, result.error or "Processing failed", payload=payload
            )

        self._log(
            db,
            webhook_id,
            models.WebhookLogStatus.SUCCESS,
            started,
            request_body=payload,
            response_body=result.data,
        )
        webhook.last_used_at = models.now_local_naive()
        db.commit()
        logger.info("Webhook %s (%s) processed", webhook_id, webhook.type)
        return WebhookResponse(201, {"status": "ok", "data": result.data})
