"""
Reconciliation engine: match settled ledger transactions against a bank statement snapshot.

A pass considers every settled transaction with no record yet, plus those whose record is
unmatched or mismatched and still unresolved. Records are upserted per transaction, so
re-running a pass on the same statement never duplicates them.
"""

import io
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from fastapi import UploadFile
from openpyxl import load_workbook
from pydantic import ValidationError
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.config import settings
from feeledger.core.enums import ReconciliationStatus, TransactionStatus
from feeledger.core.exceptions import Conflict, NotFound
from feeledger.core.models import LedgerTransaction, ReconciliationRecord
from feeledger.core.services import log_fee_audit, to_decimal, to_uuid

from .schemas import (
    BankLine,
    ReconcileResponse,
    ReconciliationRecordResponse,
    ReconciliationResultItem,
)

logger = logging.getLogger(__name__)

STATEMENT_HEADERS = ("reference", "amount", "date")
STATEMENT_MAX_ROWS = 5000

OPEN_STATUSES = (ReconciliationStatus.unmatched.value, ReconciliationStatus.mismatched.value)


def record_to_response(r: ReconciliationRecord) -> ReconciliationRecordResponse:
    return ReconciliationRecordResponse(
        id=to_uuid(r.id),
        transaction_id=to_uuid(r.transaction_id),
        bank_reference=r.bank_reference,
        bank_date=r.bank_date,
        reconciled_amount=to_decimal(r.reconciled_amount) if r.reconciled_amount is not None else None,
        difference_amount=to_decimal(r.difference_amount) if r.difference_amount is not None else None,
        status=r.status,
        remarks=r.remarks,
        reconciled_at=r.reconciled_at,
        resolved_by=to_uuid(r.resolved_by),
        resolved_at=r.resolved_at,
    )


def _pick_line(candidates: List[int], lines: Sequence[BankLine], amount: Decimal) -> Optional[int]:
    """Prefer a line with the exact amount; otherwise the first unused line with the reference."""
    if not candidates:
        return None
    for idx in candidates:
        if to_decimal(lines[idx].amount) == amount:
            return idx
    return candidates[0]


async def reconcile(
    db: AsyncSession,
    lines: Sequence[BankLine],
    as_of: Optional[datetime] = None,
    grace_days: Optional[int] = None,
) -> ReconcileResponse:
    as_of = as_of or datetime.utcnow()
    if as_of.tzinfo is not None:
        as_of = as_of.replace(tzinfo=None) - (as_of.utcoffset() or timedelta(0))
    grace = settings.reconciliation_grace_days if grace_days is None else grace_days
    cutoff = as_of - timedelta(days=grace)

    by_reference: Dict[str, List[int]] = defaultdict(list)
    for idx, line in enumerate(lines):
        ref = line.reference.strip()
        if by_reference[ref]:
            logger.warning("Bank statement has duplicate reference %s", ref)
        by_reference[ref].append(idx)
    consumed = set()

    stmt = (
        select(
            LedgerTransaction,
            ReconciliationRecord,
            (LedgerTransaction.created_at < cutoff).label("past_grace"),
        )
        .outerjoin(ReconciliationRecord, ReconciliationRecord.transaction_id == LedgerTransaction.id)
        .where(
            LedgerTransaction.status == TransactionStatus.settled.value,
            or_(
                ReconciliationRecord.id.is_(None),
                and_(
                    ReconciliationRecord.status.in_(OPEN_STATUSES),
                    ReconciliationRecord.resolved_at.is_(None),
                ),
            ),
        )
        .order_by(LedgerTransaction.created_at.asc(), LedgerTransaction.id.asc())
    )
    rows = (await db.execute(stmt)).all()

    now = datetime.utcnow()
    results: List[ReconciliationResultItem] = []
    counts = {s.value: 0 for s in ReconciliationStatus}
    within_grace = 0

    for txn, record, past_grace in rows:
        ledger_amount = to_decimal(txn.amount)
        ref = (txn.external_reference or "").strip()
        candidates = [i for i in by_reference.get(ref, []) if i not in consumed] if ref else []
        idx = _pick_line(candidates, lines, ledger_amount)

        if idx is not None:
            consumed.add(idx)
            line = lines[idx]
            bank_amount = to_decimal(line.amount)
            difference = ledger_amount - bank_amount
            new_status = (
                ReconciliationStatus.matched if difference == 0 else ReconciliationStatus.mismatched
            ).value
            values = {
                "bank_reference": line.reference.strip(),
                "bank_date": line.value_date,
                "reconciled_amount": bank_amount,
                "difference_amount": difference,
            }
            if new_status == ReconciliationStatus.mismatched.value:
                logger.warning(
                    "Transaction %s differs from bank line %s by %s", txn.id, values["bank_reference"], difference
                )
        elif past_grace:
            new_status = ReconciliationStatus.unmatched.value
            bank_amount = difference = None
            values = {
                "bank_reference": None,
                "bank_date": None,
                "reconciled_amount": None,
                "difference_amount": None,
            }
        else:
            within_grace += 1
            continue

        if record is None:
            record = ReconciliationRecord(transaction_id=txn.id, status=new_status, reconciled_at=now, **values)
            db.add(record)
        else:
            record.status = new_status
            record.reconciled_at = now
            for field, value in values.items():
                setattr(record, field, value)
        await db.flush()
        counts[new_status] += 1
        results.append(
            ReconciliationResultItem(
                transaction_id=to_uuid(txn.id),
                record_id=to_uuid(record.id),
                status=new_status,
                external_reference=txn.external_reference,
                ledger_amount=ledger_amount,
                bank_amount=bank_amount,
                difference=difference,
            )
        )

    leftover = [lines[i] for i in range(len(lines)) if i not in consumed]
    if leftover:
        # Lines already settled by an earlier pass are not news
        known = set(
            (
                await db.execute(
                    select(ReconciliationRecord.bank_reference).where(
                        ReconciliationRecord.bank_reference.in_(sorted({line.reference.strip() for line in leftover}))
                    )
                )
            ).scalars().all()
        )
        leftover = [line for line in leftover if line.reference.strip() not in known]

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Another reconciliation pass wrote the same transactions; run it again")

    logger.info(
        "Reconciliation as of %s: %s considered, %s matched, %s mismatched, %s unmatched, %s within grace, %s bank lines unmatched",
        as_of, len(rows), counts["matched"], counts["mismatched"], counts["unmatched"], within_grace, len(leftover),
    )
    return ReconcileResponse(
        as_of=as_of,
        considered=len(rows),
        matched=counts["matched"],
        mismatched=counts["mismatched"],
        unmatched=counts["unmatched"],
        within_grace=within_grace,
        results=results,
        unmatched_bank_lines=leftover,
    )


def _cell_str(row: tuple, idx: int) -> str:
    if idx >= len(row) or row[idx] is None:
        return ""
    val = row[idx]
    if isinstance(val, float) and val.is_integer():
        val = int(val)
    return str(val).strip()


def _cell_date(value) -> Optional[date]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


async def parse_bank_statement(file: UploadFile) -> List[BankLine]:
    """Read an .xlsx bank export. First row = headers (reference, amount, date). Raises ValueError on bad format."""
    if not file.filename or not file.filename.lower().endswith(".xlsx"):
        raise ValueError("File must be an Excel file (.xlsx)")

    content = await file.read()
    if not content:
        raise ValueError("File is empty")

    try:
        wb = load_workbook(filename=io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ValueError(f"Invalid Excel file: {e}") from e

    try:
        ws = wb.active
        if not ws:
            raise ValueError("Excel file has no active sheet")

        rows_iter = ws.iter_rows(values_only=True)
        header_row = next(rows_iter, None)
        if not header_row:
            raise ValueError("Excel file has no header row")
        header_row = [(str(c).strip().lower() if c is not None else "") for c in header_row]

        col_idx = {}
        for h in STATEMENT_HEADERS:
            try:
                col_idx[h] = header_row.index(h)
            except ValueError:
                raise ValueError(f"Missing required column: {h}. Found: {header_row}")

        lines: List[BankLine] = []
        for row_num, row in enumerate(rows_iter, start=2):
            if row_num - 1 > STATEMENT_MAX_ROWS:
                raise ValueError(f"Maximum {STATEMENT_MAX_ROWS} data rows allowed")
            if not row or all(c is None or (isinstance(c, str) and not c.strip()) for c in row):
                continue
            reference = _cell_str(row, col_idx["reference"])
            if not reference:
                raise ValueError(f"Row {row_num}: reference is required")
            try:
                amount = Decimal(_cell_str(row, col_idx["amount"]).replace(",", ""))
            except InvalidOperation:
                raise ValueError(f"Row {row_num}: amount is not a number")
            try:
                value_date = _cell_date(row[col_idx["date"]] if col_idx["date"] < len(row) else None)
            except ValueError:
                raise ValueError(f"Row {row_num}: date must be YYYY-MM-DD")
            try:
                lines.append(BankLine(reference=reference, amount=amount, value_date=value_date))
            except ValidationError:
                raise ValueError(f"Row {row_num}: amount must have at most 2 decimal places")
    finally:
        wb.close()
    return lines


async def resolve_mismatch(
    db: AsyncSession,
    record_id: UUID,
    remarks: str,
    resolver_id: UUID,
) -> ReconciliationRecordResponse:
    """Annotate an unmatched or mismatched record as handled. The ledger and account stay as they are."""
    record = await db.get(ReconciliationRecord, record_id)
    if not record:
        raise NotFound("Reconciliation record not found")
    if record.status == ReconciliationStatus.matched.value:
        raise Conflict("Matched records need no resolution")

    old = {"remarks": record.remarks, "resolved_at": record.resolved_at.isoformat() if record.resolved_at else None}
    record.remarks = remarks.strip()
    record.resolved_by = resolver_id
    record.resolved_at = datetime.utcnow()
    await log_fee_audit(
        db, "reconciliation_records", record.id, "RESOLVE",
        old,
        {"remarks": record.remarks, "status": record.status},
        resolver_id,
    )
    await db.commit()
    await db.refresh(record)
    logger.info("Reconciliation record %s resolved by %s", record.id, resolver_id)
    return record_to_response(record)


async def list_records(
    db: AsyncSession,
    status_filter: Optional[str] = None,
    unresolved_only: bool = False,
    page: int = 1,
    limit: int = 20,
) -> tuple[List[ReconciliationRecordResponse], int]:
    stmt = select(ReconciliationRecord)
    if status_filter:
        stmt = stmt.where(ReconciliationRecord.status == status_filter)
    if unresolved_only:
        stmt = stmt.where(ReconciliationRecord.resolved_at.is_(None))
    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    stmt = (
        stmt.order_by(ReconciliationRecord.reconciled_at.desc(), ReconciliationRecord.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await db.execute(stmt)).scalars().all()
    return [record_to_response(r) for r in rows], total
