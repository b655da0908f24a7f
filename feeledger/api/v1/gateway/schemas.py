"""Gateway checkout and callback schemas."""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from feeledger.api.v1.accounts.schemas import AccountTotals
from feeledger.api.v1.ledger.schemas import LedgerTransactionResponse
from feeledger.core.enums import FeeCategory


class Prefill(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    contact: Optional[str] = Field(None, max_length=20)


class CreateOrderRequest(BaseModel):
    account_id: UUID
    category: FeeCategory
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    prefill: Prefill = Field(default_factory=Prefill)


class CheckoutOrderResponse(BaseModel):
    """Everything the client needs to open the gateway's checkout."""

    order_id: str
    key_id: str
    amount: Decimal
    amount_minor: int
    currency: str
    name: str
    description: str
    receipt: str
    prefill: Prefill


class GatewayCallbackRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=100)
    payment_id: str = Field(..., min_length=1, max_length=100)
    signature: str = Field(..., min_length=1, max_length=256)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    category: FeeCategory
    account_id: UUID


class CallbackResponse(BaseModel):
    duplicate: bool = False
    transaction: LedgerTransactionResponse
    account: AccountTotals
