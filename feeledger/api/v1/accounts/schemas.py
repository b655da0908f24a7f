"""Fee account schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from feeledger.core.enums import AccountStatus, FeeCategory


class AccountContext(BaseModel):
    """Master-data context copied onto the account (owned by other services)."""

    student_name: Optional[str] = Field(None, max_length=255)
    institution_name: Optional[str] = Field(None, max_length=255)
    course_name: Optional[str] = Field(None, max_length=255)
    program_pattern: Optional[str] = Field(None, max_length=50)
    session: Optional[str] = Field(None, max_length=50)
    batch: Optional[str] = Field(None, max_length=50)


class ExpectationAmounts(BaseModel):
    registration: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    examination: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    miscellaneous: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    due_date: Optional[date] = None


class SetExpectationsRequest(ExpectationAmounts):
    student_id: str = Field(..., min_length=1, max_length=50)
    institution_id: str = Field(..., min_length=1, max_length=50)
    context: AccountContext = Field(default_factory=AccountContext)


class BulkStudent(BaseModel):
    student_id: str = Field(..., min_length=1, max_length=50)
    student_name: Optional[str] = Field(None, max_length=255)
    session: Optional[str] = Field(None, max_length=50)
    batch: Optional[str] = Field(None, max_length=50)


class BulkExpectationsRequest(ExpectationAmounts):
    """Same expectation for a cohort, e.g. all active students of a course at an institute."""

    institution_id: str = Field(..., min_length=1, max_length=50)
    institution_name: Optional[str] = Field(None, max_length=255)
    course_name: str = Field(..., min_length=1, max_length=255)
    students: List[BulkStudent] = Field(..., min_length=1)


class BulkExpectationsResponse(BaseModel):
    message: str
    students_count: int
    account_ids: List[UUID]


class CategoryBalance(BaseModel):
    category: FeeCategory
    expected: Decimal
    paid: Decimal
    balance: Decimal


class FeeAccountResponse(BaseModel):
    id: UUID
    student_id: str
    institution_id: str
    student_name: Optional[str] = None
    institution_name: Optional[str] = None
    course_name: Optional[str] = None
    program_pattern: Optional[str] = None
    session: Optional[str] = None
    batch: Optional[str] = None
    registration_expected: Decimal
    examination_expected: Decimal
    miscellaneous_expected: Decimal
    total_expected: Decimal
    registration_paid: Decimal
    examination_paid: Decimal
    miscellaneous_paid: Decimal
    total_paid: Decimal
    balance: Decimal
    due_date: Optional[date] = None
    overall_status: AccountStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AccountTotals(BaseModel):
    """Totals echoed back after a settlement so clients can invalidate caches."""

    account_id: UUID
    registration_paid: Decimal
    examination_paid: Decimal
    miscellaneous_paid: Decimal
    total_paid: Decimal
    total_expected: Decimal
    overall_status: AccountStatus


class PendingCategoryDue(BaseModel):
    category: FeeCategory
    fee_head: str
    original_amount: Decimal
    amount_paid: Decimal
    balance: Decimal
    due_date: Optional[date] = None


class FeeHistoryItem(BaseModel):
    id: UUID
    category: FeeCategory
    amount: Decimal
    source: str
    status: str
    external_reference: Optional[str] = None
    created_at: datetime


class StudentFeeSummary(BaseModel):
    """Outstanding category balances plus recent ledger history for one account."""

    account: FeeAccountResponse
    categories: List[CategoryBalance]
    pending: List[PendingCategoryDue]
    history: List[FeeHistoryItem]
