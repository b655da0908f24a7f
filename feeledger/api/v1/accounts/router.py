"""Fee accounts router: expectations, account lookup, student summary."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_current_user
from feeledger.auth.rbac import ensure_account_access, require_roles
from feeledger.auth.schemas import CurrentUser
from feeledger.core.enums import AccountStatus
from feeledger.core.exceptions import ServiceError
from feeledger.core.schemas import Page, build_page
from feeledger.db.session import get_db

from .schemas import (
    BulkExpectationsRequest,
    BulkExpectationsResponse,
    FeeAccountResponse,
    SetExpectationsRequest,
    StudentFeeSummary,
)
from . import service

router = APIRouter(prefix="/api/v1/accounts", tags=["accounts"])


@router.put(
    "/expectations",
    response_model=FeeAccountResponse,
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def set_expectations(
    payload: SetExpectationsRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeAccountResponse:
    """Establish (or re-set) what a student is expected to pay. Creates the account on first use."""
    try:
        return await service.set_expectations(db, payload, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post(
    "/expectations/bulk",
    response_model=BulkExpectationsResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def bulk_set_expectations(
    payload: BulkExpectationsRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BulkExpectationsResponse:
    try:
        return await service.bulk_set_expectations(db, payload, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "",
    response_model=Page[FeeAccountResponse],
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def list_accounts(
    institution_id: Optional[str] = Query(None),
    account_status: Optional[AccountStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    items, total = await service.list_accounts(
        db,
        institution_id=institution_id,
        status_filter=account_status.value if account_status else None,
        page=page,
        limit=limit,
    )
    return build_page(items, page, limit, total)


@router.get("/{account_id}", response_model=FeeAccountResponse)
async def get_account(
    account_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeAccountResponse:
    try:
        account = await service.get_account(db, account_id)
        ensure_account_access(current_user, account)
        return service.account_to_response(account)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/{account_id}/summary", response_model=StudentFeeSummary)
async def get_account_summary(
    account_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentFeeSummary:
    """Pending category balances plus recent payment history (student fee page)."""
    try:
        account = await service.get_account(db, account_id)
        ensure_account_access(current_user, account)
        return await service.student_fee_summary(db, account)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
