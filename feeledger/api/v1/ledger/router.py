"""Ledger router: manual/counter entries and transaction history."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_current_user
from feeledger.auth.rbac import ensure_account_access, require_roles
from feeledger.auth.schemas import CurrentUser
from feeledger.core.enums import FeeCategory, TransactionSource, TransactionStatus
from feeledger.core.exceptions import ServiceError
from feeledger.core.schemas import Page, build_page
from feeledger.core.services import get_account_or_404
from feeledger.db.session import get_db

from .schemas import LedgerTransactionResponse, ManualPaymentCreate, TransactionFilters
from . import service

router = APIRouter(prefix="/api/v1/ledger", tags=["ledger"])


def transaction_filters(
    txn_status: Optional[TransactionStatus] = Query(None, alias="status"),
    category: Optional[FeeCategory] = Query(None),
    source: Optional[TransactionSource] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
) -> TransactionFilters:
    return TransactionFilters(
        status=txn_status,
        category=category,
        source=source,
        date_from=date_from,
        date_to=date_to,
    )


@router.post(
    "/manual",
    response_model=LedgerTransactionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def record_manual_payment(
    payload: ManualPaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> LedgerTransactionResponse:
    """Bank transfer or counter payment. Stays pending-verification until an admin decides."""
    try:
        return await service.record_manual(db, payload, recorded_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/transactions/{transaction_id}",
    response_model=LedgerTransactionResponse,
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def get_transaction(
    transaction_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> LedgerTransactionResponse:
    try:
        return service.transaction_to_response(await service.get_transaction(db, transaction_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/accounts/{account_id}/transactions", response_model=Page[LedgerTransactionResponse])
async def list_account_transactions(
    account_id: UUID,
    filters: TransactionFilters = Depends(transaction_filters),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        account = await get_account_or_404(db, account_id)
        ensure_account_access(current_user, account)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    items, total = await service.list_for_account(db, account_id, filters, page=page, limit=limit)
    return build_page(items, page, limit, total)


@router.get(
    "/accounts/{account_id}/transactions.csv",
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def export_account_transactions(
    account_id: UUID,
    filters: TransactionFilters = Depends(transaction_filters),
    db: AsyncSession = Depends(get_db),
) -> Response:
    try:
        await get_account_or_404(db, account_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    content = await service.export_for_account(db, account_id, filters)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="transactions_{account_id}.csv"'},
    )
