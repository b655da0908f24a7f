"""Ledger service: manual entries, admin verification, account history."""

import csv
import io
import logging
from datetime import datetime
from typing import AsyncIterator, List, Optional
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.api.v1.accounts.service import account_totals
from feeledger.core.enums import TransactionStatus, VerificationDecision
from feeledger.core.exceptions import AlreadyFinalized, NotFound
from feeledger.core.models import FeeAccount, LedgerTransaction
from feeledger.core.services import credit_account, get_account_or_404, log_fee_audit, to_decimal, to_uuid

from .schemas import (
    LedgerTransactionResponse,
    ManualPaymentCreate,
    TransactionFilters,
    VerificationResponse,
)

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "id", "created_at", "category", "amount", "source", "status",
    "external_reference", "gateway_order_id", "gateway_payment_id", "verified_at",
]


def transaction_to_response(t: LedgerTransaction) -> LedgerTransactionResponse:
    return LedgerTransactionResponse(
        id=to_uuid(t.id),
        account_id=to_uuid(t.account_id),
        category=t.category,
        amount=to_decimal(t.amount),
        source=t.source,
        status=t.status,
        gateway_order_id=t.gateway_order_id,
        gateway_payment_id=t.gateway_payment_id,
        external_reference=t.external_reference,
        note=t.note,
        recorded_by=to_uuid(t.recorded_by),
        created_at=t.created_at,
        verified_by=to_uuid(t.verified_by),
        verified_at=t.verified_at,
        decision_remarks=t.decision_remarks,
    )


def apply_filters(stmt, filters: Optional[TransactionFilters]):
    if filters is None:
        return stmt
    if filters.status is not None:
        stmt = stmt.where(LedgerTransaction.status == filters.status.value)
    if filters.category is not None:
        stmt = stmt.where(LedgerTransaction.category == filters.category.value)
    if filters.source is not None:
        stmt = stmt.where(LedgerTransaction.source == filters.source.value)
    if filters.date_from is not None:
        stmt = stmt.where(LedgerTransaction.created_at >= filters.date_from)
    if filters.date_to is not None:
        stmt = stmt.where(LedgerTransaction.created_at <= filters.date_to)
    return stmt


async def record_manual(
    db: AsyncSession,
    payload: ManualPaymentCreate,
    recorded_by: Optional[UUID] = None,
) -> LedgerTransactionResponse:
    """Insert a pending-verification row. The account is not credited until an admin verifies it."""
    await get_account_or_404(db, payload.account_id)
    txn = LedgerTransaction(
        account_id=payload.account_id,
        category=payload.category.value,
        amount=payload.amount,
        source=payload.source.value,
        status=TransactionStatus.pending_verification.value,
        external_reference=(payload.reference or "").strip() or None,
        note=(payload.note or "").strip() or None,
        recorded_by=recorded_by,
    )
    db.add(txn)
    await db.flush()
    await log_fee_audit(
        db, "ledger_transactions", txn.id, "CREATE",
        None,
        {
            "account_id": str(payload.account_id),
            "category": txn.category,
            "amount": str(payload.amount),
            "source": txn.source,
            "status": txn.status,
        },
        recorded_by,
    )
    await db.commit()
    await db.refresh(txn)
    logger.info("Manual %s payment %s recorded for account %s", txn.source, txn.id, txn.account_id)
    return transaction_to_response(txn)


async def get_transaction(db: AsyncSession, transaction_id: UUID) -> LedgerTransaction:
    txn = await db.get(LedgerTransaction, transaction_id)
    if not txn:
        raise NotFound("Transaction not found")
    return txn


async def verify(
    db: AsyncSession,
    transaction_id: UUID,
    admin_id: UUID,
    decision: VerificationDecision,
    remarks: Optional[str] = None,
) -> VerificationResponse:
    """
    Move a pending-verification transaction to settled (crediting the account) or rejected.

    The status change is a conditional UPDATE, so of two concurrent calls only one matches
    the pending row; the other sees AlreadyFinalized.
    """
    decision = VerificationDecision(decision)
    new_status = (
        TransactionStatus.settled if decision == VerificationDecision.verify else TransactionStatus.rejected
    ).value
    result = await db.execute(
        update(LedgerTransaction)
        .where(
            LedgerTransaction.id == transaction_id,
            LedgerTransaction.status == TransactionStatus.pending_verification.value,
        )
        .values(
            status=new_status,
            verified_by=admin_id,
            verified_at=datetime.utcnow(),
            decision_remarks=(remarks or "").strip() or None,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        txn = await db.get(LedgerTransaction, transaction_id, populate_existing=True)
        if not txn:
            raise NotFound("Transaction not found")
        raise AlreadyFinalized(txn.id, txn.status)

    try:
        txn = await db.get(LedgerTransaction, transaction_id, populate_existing=True)
        if new_status == TransactionStatus.settled.value:
            account = await credit_account(
                db, txn.account_id, txn.category, txn.amount,
                changed_by=admin_id, reference_id=txn.id,
            )
        else:
            account = await db.get(FeeAccount, txn.account_id)
        await log_fee_audit(
            db, "ledger_transactions", txn.id,
            "VERIFY" if decision == VerificationDecision.verify else "REJECT",
            {"status": TransactionStatus.pending_verification.value},
            {"status": new_status, "remarks": txn.decision_remarks},
            admin_id,
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Failed to commit decision for transaction %s", transaction_id)
        raise
    await db.refresh(account)
    logger.info("Transaction %s %s by %s", transaction_id, new_status, admin_id)
    return VerificationResponse(
        transaction_id=to_uuid(transaction_id),
        status=new_status,
        account=account_totals(account),
    )


async def iter_for_account(
    db: AsyncSession,
    account_id: UUID,
    filters: Optional[TransactionFilters] = None,
    batch_size: int = 100,
) -> AsyncIterator[LedgerTransaction]:
    """
    Yield the account's transactions newest first, fetching keyset batches lazily.
    Each call starts a fresh pass from the newest row.
    """
    base = apply_filters(select(LedgerTransaction).where(LedgerTransaction.account_id == account_id), filters)
    last: Optional[LedgerTransaction] = None
    while True:
        stmt = base
        if last is not None:
            stmt = stmt.where(
                or_(
                    LedgerTransaction.created_at < last.created_at,
                    and_(LedgerTransaction.created_at == last.created_at, LedgerTransaction.id < last.id),
                )
            )
        stmt = stmt.order_by(LedgerTransaction.created_at.desc(), LedgerTransaction.id.desc()).limit(batch_size)
        rows = (await db.execute(stmt)).scalars().all()
        for row in rows:
            yield row
        if len(rows) < batch_size:
            return
        last = rows[-1]


async def list_for_account(
    db: AsyncSession,
    account_id: UUID,
    filters: Optional[TransactionFilters] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[List[LedgerTransactionResponse], int]:
    base = apply_filters(select(LedgerTransaction).where(LedgerTransaction.account_id == account_id), filters)
    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar() or 0
    stmt = (
        base.order_by(LedgerTransaction.created_at.desc(), LedgerTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await db.execute(stmt)).scalars().all()
    return [transaction_to_response(t) for t in rows], total


async def export_for_account(
    db: AsyncSession,
    account_id: UUID,
    filters: Optional[TransactionFilters] = None,
) -> str:
    """CSV of the account's full history in display order."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(EXPORT_COLUMNS)
    async for t in iter_for_account(db, account_id, filters):
        writer.writerow([
            t.id,
            t.created_at.isoformat() if t.created_at else "",
            t.category,
            to_decimal(t.amount),
            t.source,
            t.status,
            t.external_reference or "",
            t.gateway_order_id or "",
            t.gateway_payment_id or "",
            t.verified_at.isoformat() if t.verified_at else "",
        ])
    return buf.getvalue()
