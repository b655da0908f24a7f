"""Shared fee-account services: the single writer of paid totals, status derivation, audit."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.enums import AccountStatus, FeeCategory
from feeledger.core.exceptions import NotFound
from feeledger.core.models import FeeAccount, FeeAuditLog

logger = logging.getLogger(__name__)


EXPECTED_COLUMNS = {
    FeeCategory.registration: "registration_expected",
    FeeCategory.examination: "examination_expected",
    FeeCategory.miscellaneous: "miscellaneous_expected",
}

PAID_COLUMNS = {
    FeeCategory.registration: "registration_paid",
    FeeCategory.examination: "examination_paid",
    FeeCategory.miscellaneous: "miscellaneous_paid",
}


def to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def to_uuid(val):
    if val is None:
        return None
    return val if isinstance(val, UUID) else UUID(str(val))


def derive_account_status(
    total_expected: Decimal,
    total_paid: Decimal,
    due_date: Optional[date],
    today: Optional[date] = None,
) -> str:
    """clear when paid covers expected; overdue when a balance remains past due_date; else due."""
    if to_decimal(total_paid) >= to_decimal(total_expected):
        return AccountStatus.clear.value
    today = today or date.today()
    if due_date is not None and due_date < today:
        return AccountStatus.overdue.value
    return AccountStatus.due.value


async def log_fee_audit(
    db: AsyncSession,
    reference_table: str,
    reference_id: UUID,
    action_type: str,
    old_value: Optional[dict],
    new_value: Optional[dict],
    changed_by: Optional[UUID],
) -> None:
    """Append one audit log entry. Caller must commit."""
    db.add(
        FeeAuditLog(
            reference_table=reference_table,
            reference_id=reference_id,
            action_type=action_type,
            old_value=old_value,
            new_value=new_value,
            changed_by=changed_by,
        )
    )


async def get_account_or_404(db: AsyncSession, account_id: UUID) -> FeeAccount:
    account = await db.get(FeeAccount, account_id)
    if not account:
        raise NotFound("Fee account not found")
    return account


async def credit_account(
    db: AsyncSession,
    account_id: UUID,
    category: FeeCategory,
    amount: Decimal,
    changed_by: Optional[UUID] = None,
    reference_id: Optional[UUID] = None,
) -> FeeAccount:
    """
    Add a settled amount to the account's category and total paid columns.

    Runs inside the caller's transaction and never commits. The increment happens in SQL
    so concurrent credits to the same account cannot lose an update.
    """
    category = FeeCategory(category)
    amount = to_decimal(amount)
    paid_col = getattr(FeeAccount, PAID_COLUMNS[category])
    result = await db.execute(
        update(FeeAccount)
        .where(FeeAccount.id == account_id)
        .values(
            {
                paid_col: paid_col + amount,
                FeeAccount.total_paid: FeeAccount.total_paid + amount,
            }
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFound("Fee account not found")

    account = await db.get(FeeAccount, account_id, populate_existing=True)
    new_status = derive_account_status(account.total_expected, account.total_paid, account.due_date)
    old_status = account.overall_status
    if new_status != old_status:
        account.overall_status = new_status
    await log_fee_audit(
        db,
        "fee_accounts",
        account.id,
        "CREDIT",
        {"overall_status": old_status},
        {
            "category": category.value,
            "amount": str(amount),
            "total_paid": str(to_decimal(account.total_paid)),
            "overall_status": new_status,
            "transaction_id": str(reference_id) if reference_id else None,
        },
        changed_by,
    )
    await db.flush()
    logger.info(
        "Credited account %s %s %s (total_paid=%s)",
        account.id, category.value, amount, account.total_paid,
    )
    return account
