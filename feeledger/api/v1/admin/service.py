"""Admin service: verification queue, decisions, fee structures, payment history."""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.api.v1.ledger import service as ledger_service
from feeledger.api.v1.ledger.schemas import VerificationResponse
from feeledger.core.enums import FeeStructureStatus, TransactionStatus, VerificationDecision
from feeledger.core.exceptions import NotFound
from feeledger.core.models import FeeAccount, FeeStructure, LedgerTransaction
from feeledger.core.services import log_fee_audit

from .schemas import AdminTransactionItem, FeeStructureCreate, FeeStructureResponse

logger = logging.getLogger(__name__)


def _admin_item(txn: LedgerTransaction, account: FeeAccount) -> AdminTransactionItem:
    base = ledger_service.transaction_to_response(txn)
    return AdminTransactionItem(
        **base.model_dump(),
        student_id=account.student_id,
        institution_id=account.institution_id,
        student_name=account.student_name,
        course_name=account.course_name,
    )


async def _paged_items(db: AsyncSession, stmt, page: int, limit: int) -> tuple[List[AdminTransactionItem], int]:
    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    stmt = (
        stmt.order_by(LedgerTransaction.created_at.desc(), LedgerTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await db.execute(stmt)).all()
    return [_admin_item(txn, account) for txn, account in rows], total


async def list_pending(
    db: AsyncSession,
    institution_id: Optional[str] = None,
    category: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[List[AdminTransactionItem], int]:
    """Manual and counter payments waiting for an admin decision."""
    stmt = (
        select(LedgerTransaction, FeeAccount)
        .join(FeeAccount, FeeAccount.id == LedgerTransaction.account_id)
        .where(LedgerTransaction.status == TransactionStatus.pending_verification.value)
    )
    if institution_id:
        stmt = stmt.where(FeeAccount.institution_id == institution_id)
    if category:
        stmt = stmt.where(LedgerTransaction.category == category)
    if date_from:
        stmt = stmt.where(LedgerTransaction.created_at >= date_from)
    if date_to:
        stmt = stmt.where(LedgerTransaction.created_at <= date_to)
    return await _paged_items(db, stmt, page, limit)


async def decide(
    db: AsyncSession,
    transaction_id: UUID,
    decision: VerificationDecision,
    admin_id: UUID,
    remarks: Optional[str] = None,
) -> VerificationResponse:
    return await ledger_service.verify(db, transaction_id, admin_id, decision, remarks)


async def payment_history(
    db: AsyncSession,
    institution_id: Optional[str] = None,
    status_filter: Optional[str] = None,
    source: Optional[str] = None,
    student_id: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[List[AdminTransactionItem], int]:
    stmt = select(LedgerTransaction, FeeAccount).join(FeeAccount, FeeAccount.id == LedgerTransaction.account_id)
    if institution_id:
        stmt = stmt.where(FeeAccount.institution_id == institution_id)
    if status_filter:
        stmt = stmt.where(LedgerTransaction.status == status_filter)
    if source:
        stmt = stmt.where(LedgerTransaction.source == source)
    if student_id:
        stmt = stmt.where(FeeAccount.student_id == student_id)
    return await _paged_items(db, stmt, page, limit)


# --- Fee structures ---


async def create_fee_structure(
    db: AsyncSession,
    payload: FeeStructureCreate,
    created_by: Optional[UUID] = None,
) -> FeeStructureResponse:
    structure = FeeStructure(
        institution_id=payload.institution_id.strip(),
        category=payload.category.value,
        course_name=(payload.course_name or "").strip() or None,
        session=(payload.session or "").strip() or None,
        batch=(payload.batch or "").strip() or None,
        program_pattern=(payload.program_pattern or "").strip() or None,
        fee_amount=payload.fee_amount,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
        status=FeeStructureStatus.active.value,
        created_by=created_by,
    )
    db.add(structure)
    await db.flush()
    await log_fee_audit(
        db, "fee_structures", structure.id, "CREATE",
        None,
        {"category": structure.category, "fee_amount": str(payload.fee_amount)},
        created_by,
    )
    await db.commit()
    await db.refresh(structure)
    logger.info("Fee structure %s created for institution %s", structure.id, structure.institution_id)
    return FeeStructureResponse.model_validate(structure)


async def list_fee_structures(
    db: AsyncSession,
    institution_id: Optional[str] = None,
    category: Optional[str] = None,
    active_only: bool = True,
) -> List[FeeStructureResponse]:
    stmt = select(FeeStructure)
    if institution_id:
        stmt = stmt.where(FeeStructure.institution_id == institution_id)
    if category:
        stmt = stmt.where(FeeStructure.category == category)
    if active_only:
        stmt = stmt.where(FeeStructure.status == FeeStructureStatus.active.value)
    stmt = stmt.order_by(FeeStructure.created_at.desc())
    rows = (await db.execute(stmt)).scalars().all()
    return [FeeStructureResponse.model_validate(s) for s in rows]


async def deactivate_fee_structure(
    db: AsyncSession,
    structure_id: UUID,
    changed_by: Optional[UUID] = None,
) -> FeeStructureResponse:
    structure = await db.get(FeeStructure, structure_id)
    if not structure:
        raise NotFound("Fee structure not found")
    if structure.status != FeeStructureStatus.inactive.value:
        structure.status = FeeStructureStatus.inactive.value
        await log_fee_audit(
            db, "fee_structures", structure.id, "DEACTIVATE",
            {"status": FeeStructureStatus.active.value},
            {"status": FeeStructureStatus.inactive.value},
            changed_by,
        )
        await db.commit()
        await db.refresh(structure)
    return FeeStructureResponse.model_validate(structure)
