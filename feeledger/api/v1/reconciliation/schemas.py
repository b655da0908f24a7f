"""Reconciliation schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from feeledger.core.enums import ReconciliationStatus


class BankLine(BaseModel):
    """One line of a bank statement export."""

    reference: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    value_date: Optional[date] = Field(None, alias="date")

    class Config:
        populate_by_name = True


class ReconcileRequest(BaseModel):
    lines: List[BankLine] = Field(default_factory=list)
    as_of: Optional[datetime] = None


class ReconciliationResultItem(BaseModel):
    transaction_id: UUID
    record_id: UUID
    status: ReconciliationStatus
    external_reference: Optional[str] = None
    ledger_amount: Decimal
    bank_amount: Optional[Decimal] = None
    difference: Optional[Decimal] = None


class ReconcileResponse(BaseModel):
    as_of: datetime
    considered: int
    matched: int
    mismatched: int
    unmatched: int
    within_grace: int
    results: List[ReconciliationResultItem]
    unmatched_bank_lines: List[BankLine]


class ReconciliationRecordResponse(BaseModel):
    id: UUID
    transaction_id: UUID
    bank_reference: Optional[str] = None
    bank_date: Optional[date] = None
    reconciled_amount: Optional[Decimal] = None
    difference_amount: Optional[Decimal] = None
    status: ReconciliationStatus
    remarks: Optional[str] = None
    reconciled_at: datetime
    resolved_by: Optional[UUID] = None
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ResolveRequest(BaseModel):
    remarks: str = Field(..., min_length=1, max_length=2000)
