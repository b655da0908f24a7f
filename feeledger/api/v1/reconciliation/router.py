"""Reconciliation router: run passes against bank statements, review and resolve records."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_current_user
from feeledger.auth.rbac import require_roles
from feeledger.auth.schemas import CurrentUser
from feeledger.core.enums import ReconciliationStatus
from feeledger.core.exceptions import ServiceError
from feeledger.core.schemas import Page, build_page
from feeledger.db.session import get_db

from .schemas import ReconcileRequest, ReconcileResponse, ReconciliationRecordResponse, ResolveRequest
from . import service

router = APIRouter(prefix="/api/v1/reconciliation", tags=["reconciliation"])


@router.post(
    "/run",
    response_model=ReconcileResponse,
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def run_reconciliation(
    payload: ReconcileRequest,
    db: AsyncSession = Depends(get_db),
) -> ReconcileResponse:
    try:
        return await service.reconcile(db, payload.lines, as_of=payload.as_of)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post(
    "/run/excel",
    response_model=ReconcileResponse,
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def run_reconciliation_excel(
    file: UploadFile = File(..., description="Bank statement .xlsx with columns: reference, amount, date"),
    as_of: Optional[datetime] = Form(None),
    db: AsyncSession = Depends(get_db),
) -> ReconcileResponse:
    try:
        lines = await service.parse_bank_statement(file)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    try:
        return await service.reconcile(db, lines, as_of=as_of)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/records",
    response_model=Page[ReconciliationRecordResponse],
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def list_records(
    record_status: Optional[ReconciliationStatus] = Query(None, alias="status"),
    unresolved_only: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    items, total = await service.list_records(
        db,
        status_filter=record_status.value if record_status else None,
        unresolved_only=unresolved_only,
        page=page,
        limit=limit,
    )
    return build_page(items, page, limit, total)


@router.post(
    "/records/{record_id}/resolve",
    response_model=ReconciliationRecordResponse,
    dependencies=[Depends(require_roles("ADMIN"))],
)
async def resolve_record(
    record_id: UUID,
    payload: ResolveRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ReconciliationRecordResponse:
    try:
        return await service.resolve_mismatch(db, record_id, payload.remarks, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
