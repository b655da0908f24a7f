"""Due tracker schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from feeledger.core.enums import DueStatus, FeeCategory


class DueCreate(BaseModel):
    account_id: UUID
    fee_head: str = Field(..., min_length=1, max_length=100)
    original_amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    due_date: Optional[date] = None
    category: Optional[FeeCategory] = None
    fee_structure_id: Optional[UUID] = None


class DueResponse(BaseModel):
    id: UUID
    account_id: UUID
    fee_head: str
    category: Optional[FeeCategory] = None
    fee_structure_id: Optional[UUID] = None
    original_amount: Decimal
    amount_paid: Decimal
    remaining: Decimal
    due_date: Optional[date] = None
    status: DueStatus
    waived_by: Optional[UUID] = None
    waived_at: Optional[datetime] = None
    waiver_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DuePaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    payment_method: str = Field(..., min_length=1, max_length=30, description="CASH, UPI, CARD, BANK")
    note: Optional[str] = Field(None, max_length=2000)


class DuePaymentResult(BaseModel):
    """Outcome of applying money to a due. clamped is true when more was offered than owed."""

    due_id: UUID
    payment_id: UUID
    requested: Decimal
    applied: Decimal
    clamped: bool
    status: DueStatus
    remaining: Decimal


class DuePaymentResponse(BaseModel):
    id: UUID
    due_id: UUID
    account_id: UUID
    requested_amount: Decimal
    applied_amount: Decimal
    payment_method: str
    note: Optional[str] = None
    recorded_by: Optional[UUID] = None
    paid_at: datetime

    class Config:
        from_attributes = True


class WaiveDueRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)
