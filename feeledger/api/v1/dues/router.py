"""Dues router: create dues, apply payments, waive."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_current_user
from feeledger.auth.rbac import ensure_account_access, require_roles
from feeledger.auth.schemas import CurrentUser
from feeledger.core.enums import DueStatus
from feeledger.core.exceptions import ServiceError
from feeledger.core.services import get_account_or_404
from feeledger.db.session import get_db

from .schemas import (
    DueCreate,
    DuePaymentCreate,
    DuePaymentResponse,
    DuePaymentResult,
    DueResponse,
    WaiveDueRequest,
)
from . import service

router = APIRouter(prefix="/api/v1/dues", tags=["dues"])


@router.post(
    "",
    response_model=DueResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def create_due(
    payload: DueCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> DueResponse:
    try:
        return await service.create_due(db, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("", response_model=List[DueResponse])
async def list_dues(
    account_id: UUID = Query(...),
    due_status: Optional[DueStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[DueResponse]:
    try:
        account = await get_account_or_404(db, account_id)
        ensure_account_access(current_user, account)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return await service.list_dues(db, account_id, status_filter=due_status.value if due_status else None)


@router.post(
    "/{due_id}/payments",
    response_model=DuePaymentResult,
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def apply_payment(
    due_id: UUID,
    payload: DuePaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> DuePaymentResult:
    """Overpayment is clamped to the remaining balance; the response says how much was taken."""
    try:
        return await service.apply_payment(db, due_id, payload, recorded_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/{due_id}/payments",
    response_model=List[DuePaymentResponse],
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def list_due_payments(
    due_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> List[DuePaymentResponse]:
    try:
        return await service.list_due_payments(db, due_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post(
    "/{due_id}/waive",
    response_model=DueResponse,
    dependencies=[Depends(require_roles("ADMIN"))],
)
async def waive_due(
    due_id: UUID,
    payload: WaiveDueRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> DueResponse:
    try:
        return await service.waive_due(db, due_id, payload.reason, waived_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
