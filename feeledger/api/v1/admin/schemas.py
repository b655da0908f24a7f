"""Admin workflow schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from feeledger.api.v1.ledger.schemas import LedgerTransactionResponse
from feeledger.core.enums import FeeCategory, FeeStructureStatus


class AdminTransactionItem(LedgerTransactionResponse):
    """Ledger row with the owning student's context, for review screens."""

    student_id: str
    institution_id: str
    student_name: Optional[str] = None
    course_name: Optional[str] = None


class FeeStructureCreate(BaseModel):
    institution_id: str = Field(..., min_length=1, max_length=50)
    category: FeeCategory
    course_name: Optional[str] = Field(None, max_length=255)
    session: Optional[str] = Field(None, max_length=50)
    batch: Optional[str] = Field(None, max_length=50)
    program_pattern: Optional[str] = Field(None, max_length=50)
    fee_amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None

    @model_validator(mode="after")
    def _check_dates(self) -> "FeeStructureCreate":
        if self.effective_from and self.effective_to and self.effective_to < self.effective_from:
            raise ValueError("effective_to must not be before effective_from")
        return self


class FeeStructureResponse(BaseModel):
    id: UUID
    institution_id: str
    category: FeeCategory
    course_name: Optional[str] = None
    session: Optional[str] = None
    batch: Optional[str] = None
    program_pattern: Optional[str] = None
    fee_amount: Decimal
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    status: FeeStructureStatus
    created_by: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True
