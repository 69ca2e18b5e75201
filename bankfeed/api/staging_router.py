from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from bankfeed.core.database import get_db
from bankfeed.core.deps import get_current_user
from bankfeed.schemas import (
    BulkResult,
    StagedTransactionOut,
    StagingApproveRequest,
    StagingBulkApproveRequest,
    StagingBulkIdsRequest,
    StagingIngestRequest,
    StagingIngestResult,
    StagingLinkRequest,
    TransactionOut,
)
from bankfeed.services.staging_service import StagingService


router = APIRouter(prefix="/staging", tags=["staging"])


@router.get("", response_model=list[StagedTransactionOut])
def list_staging(
    account_id: Optional[int] = Query(None, ge=1),
    status: Optional[str] = Query(None, description="pending (default), dismissed, reconciled or all"),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return StagingService(db).list_staging(current_user.id, account_id=account_id, status=status)


@router.post("/ingest", response_model=StagingIngestResult)
def ingest_staging(
    payload: StagingIngestRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    outcome = StagingService(db).ingest(current_user.id, payload.account_id, payload.items)
    return StagingIngestResult(
        total=outcome.total,
        staged=len(outcome.staged),
        skipped=outcome.skipped,
        rows=[StagedTransactionOut.model_validate(row) for row in outcome.staged],
    )


@router.post("/bulk-approve", response_model=BulkResult)
def bulk_approve(
    payload: StagingBulkApproveRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return StagingService(db).bulk_approve(current_user.id, payload.items)


@router.post("/bulk-dismiss", response_model=BulkResult)
def bulk_dismiss(
    payload: StagingBulkIdsRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return StagingService(db).bulk_dismiss(current_user.id, payload.ids)


@router.post("/bulk-delete", response_model=BulkResult)
def bulk_delete(
    payload: StagingBulkIdsRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return StagingService(db).bulk_delete(current_user.id, payload.ids)


@router.post("/{staging_id}/approve", response_model=TransactionOut, status_code=201)
def approve_staging(
    staging_id: int,
    payload: StagingApproveRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return StagingService(db).approve(staging_id, current_user.id, payload)


@router.post("/{staging_id}/link", response_model=StagedTransactionOut)
def link_staging(
    staging_id: int,
    payload: StagingLinkRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return StagingService(db).link(staging_id, current_user.id, payload.transaction_id)


@router.put("/{staging_id}/dismiss", status_code=204)
def dismiss_staging(
    staging_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    StagingService(db).dismiss(staging_id, current_user.id)
    return Response(status_code=204)


@router.put("/{staging_id}/restore", response_model=StagedTransactionOut)
def restore_staging(
    staging_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return StagingService(db).restore(staging_id, current_user.id)


@router.delete("/{staging_id}", status_code=204)
def delete_staging(
    staging_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    StagingService(db).delete_staging(staging_id, current_user.id)
    return Response(status_code=204)
