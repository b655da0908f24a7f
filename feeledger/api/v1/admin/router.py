"""Admin router: verification queue and decisions, payment history, fee structures."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.api.v1.ledger.schemas import VerificationRequest, VerificationResponse
from feeledger.auth.dependencies import get_current_user
from feeledger.auth.rbac import require_roles
from feeledger.auth.schemas import CurrentUser
from feeledger.core.enums import FeeCategory, TransactionSource, TransactionStatus
from feeledger.core.exceptions import ServiceError
from feeledger.core.schemas import Page, build_page
from feeledger.db.session import get_db

from .schemas import AdminTransactionItem, FeeStructureCreate, FeeStructureResponse
from . import service

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.get(
    "/pending",
    response_model=Page[AdminTransactionItem],
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def list_pending(
    institution_id: Optional[str] = Query(None),
    category: Optional[FeeCategory] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    items, total = await service.list_pending(
        db,
        institution_id=institution_id,
        category=category.value if category else None,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return build_page(items, page, limit, total)


@router.post(
    "/transactions/{transaction_id}/decision",
    response_model=VerificationResponse,
    dependencies=[Depends(require_roles("ADMIN"))],
)
async def decide_transaction(
    transaction_id: UUID,
    payload: VerificationRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> VerificationResponse:
    """Verify (credits the account) or reject a pending payment. A second decision gets 409."""
    try:
        return await service.decide(db, transaction_id, payload.decision, current_user.id, payload.remarks)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/payments",
    response_model=Page[AdminTransactionItem],
    dependencies=[Depends(require_roles("ADMIN", "ACCOUNTANT"))],
)
async def payment_history(
    institution_id: Optional[str] = Query(None),
    txn_status: Optional[TransactionStatus] = Query(None, alias="status"),
    source: Optional[TransactionSource] = Query(None),
    student_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    items, total = await service.payment_history(
        db,
        institution_id=institution_id,
        status_filter=txn_status.value if txn_status else None,
        source=source.value if source else None,
        student_id=student_id,
        page=page,
        limit=limit,
    )
    return build_page(items, page, limit, total)


# --- Fee structures ---
@router.post(
    "/fee-structures",
    response_model=FeeStructureResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles("ADMIN"))],
)
async def create_fee_structure(
    payload: FeeStructureCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeStructureResponse:
    return await service.create_fee_structure(db, payload, created_by=current_user.id)


@router.get(
    "/fee-structures",
    response_model=List[FeeStructureResponse],
    dependencies=[Depends(require_roles("ADMIN"))],
)
async def list_fee_structures(
    institution_id: Optional[str] = Query(None),
    category: Optional[FeeCategory] = Query(None),
    active_only: bool = Query(True, description="Return only active structures by default"),
    db: AsyncSession = Depends(get_db),
) -> List[FeeStructureResponse]:
    return await service.list_fee_structures(
        db,
        institution_id=institution_id,
        category=category.value if category else None,
        active_only=active_only,
    )


@router.patch(
    "/fee-structures/{structure_id}/deactivate",
    response_model=FeeStructureResponse,
    dependencies=[Depends(require_roles("ADMIN"))],
)
async def deactivate_fee_structure(
    structure_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeStructureResponse:
    try:
        return await service.deactivate_fee_structure(db, structure_id, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
