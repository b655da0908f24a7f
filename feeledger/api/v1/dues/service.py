"""Due tracker: obligations paid incrementally, never beyond their original amount."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.enums import DueStatus
from feeledger.core.exceptions import AlreadyPaid, Conflict, DueWaived, NotFound
from feeledger.core.models import Due, DuePayment, FeeStructure
from feeledger.core.services import get_account_or_404, log_fee_audit, to_decimal, to_uuid

from .schemas import DueCreate, DuePaymentCreate, DuePaymentResponse, DuePaymentResult, DueResponse

logger = logging.getLogger(__name__)

# Compare-and-set attempts before giving up on a contended due
MAX_APPLY_ATTEMPTS = 5


def due_status_for(original_amount: Decimal, amount_paid: Decimal) -> str:
    original_amount = to_decimal(original_amount)
    amount_paid = to_decimal(amount_paid)
    if amount_paid >= original_amount:
        return DueStatus.paid.value
    if amount_paid > 0:
        return DueStatus.partial.value
    return DueStatus.due.value


def due_to_response(d: Due) -> DueResponse:
    original = to_decimal(d.original_amount)
    paid = to_decimal(d.amount_paid)
    return DueResponse(
        id=to_uuid(d.id),
        account_id=to_uuid(d.account_id),
        fee_head=d.fee_head,
        category=d.category,
        fee_structure_id=to_uuid(d.fee_structure_id),
        original_amount=original,
        amount_paid=paid,
        remaining=Decimal("0") if d.status == DueStatus.waived.value else original - paid,
        due_date=d.due_date,
        status=d.status,
        waived_by=to_uuid(d.waived_by),
        waived_at=d.waived_at,
        waiver_reason=d.waiver_reason,
        created_at=d.created_at,
        updated_at=d.updated_at,
    )


async def get_due(db: AsyncSession, due_id: UUID) -> Due:
    due = await db.get(Due, due_id, populate_existing=True)
    if not due:
        raise NotFound("Due not found")
    return due


async def create_due(
    db: AsyncSession,
    payload: DueCreate,
    created_by: Optional[UUID] = None,
) -> DueResponse:
    await get_account_or_404(db, payload.account_id)
    category = payload.category.value if payload.category else None
    if payload.fee_structure_id:
        structure = await db.get(FeeStructure, payload.fee_structure_id)
        if not structure:
            raise NotFound("Fee structure not found")
        category = category or structure.category

    due = Due(
        account_id=payload.account_id,
        fee_head=payload.fee_head.strip(),
        category=category,
        fee_structure_id=payload.fee_structure_id,
        original_amount=payload.original_amount,
        amount_paid=Decimal("0"),
        due_date=payload.due_date,
        status=DueStatus.due.value,
        created_by=created_by,
    )
    db.add(due)
    try:
        await db.flush()
        await log_fee_audit(
            db, "fee_dues", due.id, "CREATE",
            None,
            {"fee_head": due.fee_head, "original_amount": str(payload.original_amount)},
            created_by,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict(f"A due for '{payload.fee_head.strip()}' already exists on this account")
    await db.refresh(due)
    logger.info("Due %s created for account %s (%s %s)", due.id, due.account_id, due.fee_head, due.original_amount)
    return due_to_response(due)


async def apply_payment(
    db: AsyncSession,
    due_id: UUID,
    payload: DuePaymentCreate,
    recorded_by: Optional[UUID] = None,
) -> DuePaymentResult:
    """
    Apply up to payload.amount to the due, clamped to what is still owed.

    amount_paid is advanced with a compare-and-set UPDATE on the value that was read, so two
    concurrent payments can never push it past original_amount.
    """
    requested = to_decimal(payload.amount)
    for _ in range(MAX_APPLY_ATTEMPTS):
        due = await get_due(db, due_id)
        if due.status == DueStatus.waived.value:
            raise DueWaived()
        original = to_decimal(due.original_amount)
        observed = to_decimal(due.amount_paid)
        remaining = original - observed
        if remaining <= 0:
            raise AlreadyPaid()

        applied = min(requested, remaining)
        new_paid = observed + applied
        new_status = due_status_for(original, new_paid)
        result = await db.execute(
            update(Due)
            .where(
                Due.id == due_id,
                Due.amount_paid == observed,
                Due.status != DueStatus.waived.value,
            )
            .values(amount_paid=new_paid, status=new_status, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            break
        await db.rollback()
        logger.info("Due %s changed while applying payment, retrying", due_id)
    else:
        raise Conflict("Due is being updated concurrently, retry the payment")

    payment = DuePayment(
        due_id=due_id,
        account_id=due.account_id,
        requested_amount=requested,
        applied_amount=applied,
        payment_method=payload.payment_method.strip().upper(),
        note=(payload.note or "").strip() or None,
        recorded_by=recorded_by,
    )
    db.add(payment)
    await db.flush()
    await log_fee_audit(
        db, "fee_dues", due_id, "PAYMENT",
        {"amount_paid": str(observed)},
        {"amount_paid": str(new_paid), "applied": str(applied), "status": new_status},
        recorded_by,
    )
    await db.commit()
    logger.info(
        "Applied %s of %s to due %s (status=%s, remaining=%s)",
        applied, requested, due_id, new_status, original - new_paid,
    )
    return DuePaymentResult(
        due_id=to_uuid(due_id),
        payment_id=to_uuid(payment.id),
        requested=requested,
        applied=applied,
        clamped=applied < requested,
        status=new_status,
        remaining=original - new_paid,
    )


async def waive_due(
    db: AsyncSession,
    due_id: UUID,
    reason: str,
    waived_by: Optional[UUID] = None,
) -> DueResponse:
    """Mark an unpaid or partly paid due as waived. Waiving twice returns the due unchanged."""
    result = await db.execute(
        update(Due)
        .where(
            Due.id == due_id,
            Due.status.in_([DueStatus.due.value, DueStatus.partial.value]),
        )
        .values(
            status=DueStatus.waived.value,
            waived_by=waived_by,
            waived_at=datetime.utcnow(),
            waiver_reason=reason.strip(),
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        due = await get_due(db, due_id)
        if due.status == DueStatus.paid.value:
            raise AlreadyPaid()
        return due_to_response(due)

    await log_fee_audit(
        db, "fee_dues", due_id, "WAIVE",
        None,
        {"status": DueStatus.waived.value, "reason": reason.strip()},
        waived_by,
    )
    await db.commit()
    due = await get_due(db, due_id)
    logger.info("Due %s waived by %s", due_id, waived_by)
    return due_to_response(due)


async def list_dues(
    db: AsyncSession,
    account_id: UUID,
    status_filter: Optional[str] = None,
) -> List[DueResponse]:
    stmt = select(Due).where(Due.account_id == account_id)
    if status_filter:
        stmt = stmt.where(Due.status == status_filter)
    stmt = stmt.order_by(Due.due_date.asc().nulls_last(), Due.created_at.asc())
    rows = (await db.execute(stmt)).scalars().all()
    return [due_to_response(d) for d in rows]


async def list_due_payments(db: AsyncSession, due_id: UUID) -> List[DuePaymentResponse]:
    await get_due(db, due_id)
    rows = (
        await db.execute(
            select(DuePayment).where(DuePayment.due_id == due_id).order_by(DuePayment.paid_at.desc())
        )
    ).scalars().all()
    return [DuePaymentResponse.model_validate(p) for p in rows]
