"""Fee account service: lazy creation, expectations, summaries."""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.enums import FeeCategory
from feeledger.core.exceptions import Conflict, NotFound
from feeledger.core.models import FeeAccount, LedgerTransaction
from feeledger.core.services import (
    EXPECTED_COLUMNS,
    PAID_COLUMNS,
    derive_account_status,
    get_account_or_404,
    log_fee_audit,
    to_decimal,
    to_uuid,
)

from .schemas import (
    AccountContext,
    AccountTotals,
    BulkExpectationsRequest,
    BulkExpectationsResponse,
    CategoryBalance,
    FeeAccountResponse,
    FeeHistoryItem,
    PendingCategoryDue,
    SetExpectationsRequest,
    StudentFeeSummary,
)

logger = logging.getLogger(__name__)

CATEGORY_HEADS = {
    FeeCategory.registration: "Registration Fee",
    FeeCategory.examination: "Examination Fee",
    FeeCategory.miscellaneous: "Miscellaneous Fee",
}

SUMMARY_HISTORY_LIMIT = 20


def account_to_response(account: FeeAccount) -> FeeAccountResponse:
    total_expected = to_decimal(account.total_expected)
    total_paid = to_decimal(account.total_paid)
    return FeeAccountResponse(
        id=to_uuid(account.id),
        student_id=account.student_id,
        institution_id=account.institution_id,
        student_name=account.student_name,
        institution_name=account.institution_name,
        course_name=account.course_name,
        program_pattern=account.program_pattern,
        session=account.session,
        batch=account.batch,
        registration_expected=to_decimal(account.registration_expected),
        examination_expected=to_decimal(account.examination_expected),
        miscellaneous_expected=to_decimal(account.miscellaneous_expected),
        total_expected=total_expected,
        registration_paid=to_decimal(account.registration_paid),
        examination_paid=to_decimal(account.examination_paid),
        miscellaneous_paid=to_decimal(account.miscellaneous_paid),
        total_paid=total_paid,
        balance=total_expected - total_paid,
        due_date=account.due_date,
        overall_status=account.overall_status,
        created_at=account.created_at,
        updated_at=account.updated_at,
    )


def account_totals(account: FeeAccount) -> AccountTotals:
    return AccountTotals(
        account_id=to_uuid(account.id),
        registration_paid=to_decimal(account.registration_paid),
        examination_paid=to_decimal(account.examination_paid),
        miscellaneous_paid=to_decimal(account.miscellaneous_paid),
        total_paid=to_decimal(account.total_paid),
        total_expected=to_decimal(account.total_expected),
        overall_status=account.overall_status,
    )


def _apply_context(account: FeeAccount, context: AccountContext) -> None:
    for field, value in context.model_dump(exclude_none=True).items():
        setattr(account, field, value.strip() if isinstance(value, str) else value)


def _apply_expectations(
    account: FeeAccount,
    registration: Decimal,
    examination: Decimal,
    miscellaneous: Decimal,
    due_date: Optional[date],
) -> None:
    account.registration_expected = registration
    account.examination_expected = examination
    account.miscellaneous_expected = miscellaneous
    account.total_expected = registration + examination + miscellaneous
    if due_date is not None:
        account.due_date = due_date
    account.overall_status = derive_account_status(
        account.total_expected, to_decimal(account.total_paid), account.due_date
    )


async def _find_account(db: AsyncSession, student_id: str, institution_id: str) -> Optional[FeeAccount]:
    return (
        await db.execute(
            select(FeeAccount).where(
                FeeAccount.student_id == student_id,
                FeeAccount.institution_id == institution_id,
            )
        )
    ).scalar_one_or_none()


async def _upsert_expectations(
    db: AsyncSession,
    student_id: str,
    institution_id: str,
    registration: Decimal,
    examination: Decimal,
    miscellaneous: Decimal,
    due_date: Optional[date],
    context: AccountContext,
    changed_by: Optional[UUID],
) -> FeeAccount:
    """Create the account on first expectation, otherwise overwrite expected columns only. Caller must commit."""
    account = await _find_account(db, student_id, institution_id)
    old_value = None
    if account is None:
        account = FeeAccount(
            student_id=student_id,
            institution_id=institution_id,
            registration_paid=Decimal("0"),
            examination_paid=Decimal("0"),
            miscellaneous_paid=Decimal("0"),
            total_paid=Decimal("0"),
        )
        db.add(account)
        action = "CREATE"
    else:
        old_value = {
            "registration_expected": str(account.registration_expected),
            "examination_expected": str(account.examination_expected),
            "miscellaneous_expected": str(account.miscellaneous_expected),
            "total_expected": str(account.total_expected),
            "overall_status": account.overall_status,
        }
        action = "UPDATE"
    _apply_context(account, context)
    _apply_expectations(account, registration, examination, miscellaneous, due_date)
    await db.flush()
    await log_fee_audit(
        db, "fee_accounts", account.id, action,
        old_value,
        {
            "registration_expected": str(registration),
            "examination_expected": str(examination),
            "miscellaneous_expected": str(miscellaneous),
            "total_expected": str(account.total_expected),
            "overall_status": account.overall_status,
        },
        changed_by,
    )
    return account


async def set_expectations(
    db: AsyncSession,
    payload: SetExpectationsRequest,
    changed_by: Optional[UUID] = None,
) -> FeeAccountResponse:
    try:
        account = await _upsert_expectations(
            db,
            payload.student_id.strip(),
            payload.institution_id.strip(),
            payload.registration,
            payload.examination,
            payload.miscellaneous,
            payload.due_date,
            payload.context,
            changed_by,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        # Lost a race creating the same account; the other request's row stands
        raise Conflict("Fee account was created concurrently, retry the request")
    await db.refresh(account)
    logger.info(
        "Expectations set for student %s at %s (total_expected=%s)",
        account.student_id, account.institution_id, account.total_expected,
    )
    return account_to_response(account)


async def bulk_set_expectations(
    db: AsyncSession,
    payload: BulkExpectationsRequest,
    changed_by: Optional[UUID] = None,
) -> BulkExpectationsResponse:
    """Apply one expectation to every listed student of a course; all or nothing."""
    account_ids: List[UUID] = []
    institution_id = payload.institution_id.strip()
    try:
        for student in payload.students:
            context = AccountContext(
                student_name=student.student_name,
                institution_name=payload.institution_name,
                course_name=payload.course_name,
                session=student.session,
                batch=student.batch,
            )
            account = await _upsert_expectations(
                db,
                student.student_id.strip(),
                institution_id,
                payload.registration,
                payload.examination,
                payload.miscellaneous,
                payload.due_date,
                context,
                changed_by,
            )
            account_ids.append(to_uuid(account.id))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Fee accounts were modified concurrently, retry the request")
    logger.info(
        "Bulk expectations set for %d students of %s at %s",
        len(account_ids), payload.course_name, institution_id,
    )
    return BulkExpectationsResponse(
        message="Fees created successfully for students",
        students_count=len(account_ids),
        account_ids=account_ids,
    )


async def get_account(db: AsyncSession, account_id: UUID) -> FeeAccount:
    return await get_account_or_404(db, account_id)


async def get_account_for_student(db: AsyncSession, student_id: str, institution_id: str) -> FeeAccount:
    account = await _find_account(db, student_id, institution_id)
    if not account:
        raise NotFound("Fee account not found")
    return account


async def list_accounts(
    db: AsyncSession,
    institution_id: Optional[str] = None,
    status_filter: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[List[FeeAccountResponse], int]:
    stmt = select(FeeAccount)
    if institution_id:
        stmt = stmt.where(FeeAccount.institution_id == institution_id)
    if status_filter:
        stmt = stmt.where(FeeAccount.overall_status == status_filter)
    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    stmt = stmt.order_by(FeeAccount.institution_id, FeeAccount.student_id).offset((page - 1) * limit).limit(limit)
    rows = (await db.execute(stmt)).scalars().all()
    return [account_to_response(a) for a in rows], total


async def student_fee_summary(db: AsyncSession, account: FeeAccount) -> StudentFeeSummary:
    """Category balances, categories still owing, and the latest ledger rows."""
    categories: List[CategoryBalance] = []
    pending: List[PendingCategoryDue] = []
    for category in FeeCategory:
        expected = to_decimal(getattr(account, EXPECTED_COLUMNS[category]))
        paid = to_decimal(getattr(account, PAID_COLUMNS[category]))
        categories.append(
            CategoryBalance(category=category, expected=expected, paid=paid, balance=expected - paid)
        )
        if expected - paid > 0:
            pending.append(
                PendingCategoryDue(
                    category=category,
                    fee_head=CATEGORY_HEADS[category],
                    original_amount=expected,
                    amount_paid=paid,
                    balance=expected - paid,
                    due_date=account.due_date,
                )
            )

    rows = (
        await db.execute(
            select(LedgerTransaction)
            .where(LedgerTransaction.account_id == account.id)
            .order_by(LedgerTransaction.created_at.desc(), LedgerTransaction.id.desc())
            .limit(SUMMARY_HISTORY_LIMIT)
        )
    ).scalars().all()
    history = [
        FeeHistoryItem(
            id=to_uuid(t.id),
            category=t.category,
            amount=to_decimal(t.amount),
            source=t.source,
            status=t.status,
            external_reference=t.external_reference,
            created_at=t.created_at,
        )
        for t in rows
    ]
    return StudentFeeSummary(
        account=account_to_response(account),
        categories=categories,
        pending=pending,
        history=history,
    )
