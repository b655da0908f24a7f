"""Ledger schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from feeledger.api.v1.accounts.schemas import AccountTotals
from feeledger.core.enums import FeeCategory, TransactionSource, TransactionStatus, VerificationDecision


class ManualPaymentCreate(BaseModel):
    """Payment recorded by staff (bank transfer slip, counter cash). Needs admin verification."""

    account_id: UUID
    category: FeeCategory
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    source: TransactionSource = TransactionSource.manual
    reference: Optional[str] = Field(None, max_length=100, description="Bank transaction number or receipt number")
    note: Optional[str] = Field(None, max_length=2000)

    @field_validator("source")
    @classmethod
    def _not_gateway(cls, v: TransactionSource) -> TransactionSource:
        if v == TransactionSource.gateway:
            raise ValueError("gateway payments are recorded through the gateway callback")
        return v


class LedgerTransactionResponse(BaseModel):
    id: UUID
    account_id: UUID
    category: FeeCategory
    amount: Decimal
    source: TransactionSource
    status: TransactionStatus
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    external_reference: Optional[str] = None
    note: Optional[str] = None
    recorded_by: Optional[UUID] = None
    created_at: datetime
    verified_by: Optional[UUID] = None
    verified_at: Optional[datetime] = None
    decision_remarks: Optional[str] = None

    class Config:
        from_attributes = True


class TransactionFilters(BaseModel):
    status: Optional[TransactionStatus] = None
    category: Optional[FeeCategory] = None
    source: Optional[TransactionSource] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class VerificationRequest(BaseModel):
    decision: VerificationDecision
    remarks: Optional[str] = Field(None, max_length=2000)


class VerificationResponse(BaseModel):
    transaction_id: UUID
    status: TransactionStatus
    account: AccountTotals
