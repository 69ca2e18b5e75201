from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from bankfeed import models
from bankfeed.core import errors
from bankfeed.core.config import settings
from bankfeed.core.database import get_db
from bankfeed.core.deps import get_current_user
from bankfeed.schemas import (
    WebhookCreate,
    WebhookLogOut,
    WebhookOut,
    WebhookStatusOut,
    WebhookUpdate,
)
from bankfeed.services.ownership import list_accounts, list_categories
from bankfeed.webhooks import WebhookService, webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_webhook_service() -> WebhookService:
    return webhook_service


def webhook_url(webhook: models.Webhook) -> str:
    return f"/api/webhooks/{webhook.id}"


def _out(webhook: models.Webhook, *, with_url: bool = False) -> WebhookOut:
    out = WebhookOut.model_validate(webhook)
    if with_url:
        out.webhook_url = webhook_url(webhook)
    return out


def _get_owned_webhook(db: Session, user_id: int, webhook_id: str) -> models.Webhook:
    webhook = db.get(models.Webhook, webhook_id)
    if not webhook:
        raise errors.NotFoundError("Webhook not found")
    if webhook.user_id != user_id:
        raise errors.ForbiddenError("Forbidden")
    return webhook


def _signature_from(request: Request) -> Optional[str]:
    for header in settings.WEBHOOK_SIGNATURE_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return None


@router.get("", response_model=list[WebhookOut])
def list_webhooks(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    rows = (
        db.query(models.Webhook)
        .filter(models.Webhook.user_id == current_user.id)
        .order_by(models.Webhook.created_at, models.Webhook.id)
        .all()
    )
    return [_out(row) for row in rows]


@router.post("", response_model=WebhookOut, status_code=201)
def create_webhook(
    payload: WebhookCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service),
):
    if service.get_processor(payload.type) is None:
        raise errors.ValidationError(
            f"Unsupported webhook type: {payload.type}. Supported: {', '.join(service.supported_types())}"
        )
    webhook = models.Webhook(
        user_id=current_user.id,
        name=payload.name,
        type=payload.type,
        secret=payload.secret or None,
        active=payload.active,
    )
    db.add(webhook)
    db.commit()
    db.refresh(webhook)
    logger.info("Created %s webhook %s for user=%s", webhook.type, webhook.id, current_user.id)
    return _out(webhook, with_url=True)


@router.get("/{webhook_id}", response_model=WebhookOut)
def get_webhook(webhook_id: str, db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    return _out(_get_owned_webhook(db, current_user.id, webhook_id), with_url=True)


@router.patch("/{webhook_id}", response_model=WebhookOut)
def update_webhook(
    webhook_id: str,
    payload: WebhookUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    webhook = _get_owned_webhook(db, current_user.id, webhook_id)
    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes and changes["name"] is not None:
        webhook.name = changes["name"]
    if "active" in changes and changes["active"] is not None:
        webhook.active = changes["active"]
    if "secret" in changes:
        # empty string clears the secret
        webhook.secret = changes["secret"] or None
    db.commit()
    db.refresh(webhook)
    return _out(webhook)


@router.delete("/{webhook_id}", status_code=204)
def delete_webhook(webhook_id: str, db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    webhook = _get_owned_webhook(db, current_user.id, webhook_id)
    db.delete(webhook)
    db.commit()
    return Response(status_code=204)


@router.get("/{webhook_id}/logs", response_model=list[WebhookLogOut])
def get_webhook_logs(
    webhook_id: str,
    limit: Optional[int] = Query(None, description="1..100, default 50"),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    _get_owned_webhook(db, current_user.id, webhook_id)
    effective = settings.WEBHOOK_LOG_DEFAULT_LIMIT if limit is None else limit
    effective = max(1, min(effective, settings.WEBHOOK_LOG_MAX_LIMIT))
    return (
        db.query(models.WebhookLog)
        .filter(models.WebhookLog.webhook_id == webhook_id)
        .order_by(models.WebhookLog.created_at.desc(), models.WebhookLog.id.desc())
        .limit(effective)
        .all()
    )


@router.get("/{webhook_id}/status", response_model=WebhookStatusOut)
def get_webhook_status(
    webhook_id: str,
    db: Session = Depends(get_db),
    service: WebhookService = Depends(get_webhook_service),
):
    """Public setup information for whoever configures the sending side."""
    webhook = db.get(models.Webhook, webhook_id)
    if not webhook:
        raise errors.NotFoundError("Webhook not found")
    processor = service.get_processor(webhook.type)
    return WebhookStatusOut(
        status="active" if webhook.active else "disabled",
        type=webhook.type,
        last_used=webhook.last_used_at,
        instructions={
            "method": "POST",
            "contentType": "application/json",
            "url": webhook_url(webhook),
            "signatureHeaders": list(settings.WEBHOOK_SIGNATURE_HEADERS),
            "expectedFields": list(getattr(processor, "expected_fields", ())),
            "availableAccounts": [a.name for a in list_accounts(db, webhook.user_id)],
            "availableCategories": [
                {"name": c.name, "type": c.type.value} for c in list_categories(db, webhook.user_id)
            ],
        },
    )


@router.post("/{webhook_id}")
async def receive_webhook(
    webhook_id: str,
    request: Request,
    db: Session = Depends(get_db),
    service: WebhookService = Depends(get_webhook_service),
):
    """Receiver for third-party deliveries. Authenticated by webhook id and signature only."""
    raw_body = await request.body()
    logger.info("Webhook delivery received for %s (%d bytes)", webhook_id, len(raw_body))
    result = await run_in_threadpool(
        service.process_webhook, db, webhook_id, raw_body, _signature_from(request)
    )
    return JSONResponse(status_code=result.status_code, content=result.body)
