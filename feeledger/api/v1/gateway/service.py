"""Gateway service: checkout orders and signed payment callbacks."""

import logging
import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.api.v1.accounts.service import CATEGORY_HEADS, account_totals
from feeledger.api.v1.ledger.service import transaction_to_response
from feeledger.core.config import settings
from feeledger.core.enums import FeeCategory, GatewayOrderStatus, TransactionSource, TransactionStatus
from feeledger.core.exceptions import (
    AmountMismatch,
    Conflict,
    DuplicateCallback,
    InvalidSignature,
    NotFound,
    OrderMismatch,
)
from feeledger.core.models import FeeAccount, GatewayOrder, LedgerTransaction
from feeledger.core.services import credit_account, log_fee_audit, to_decimal

from .client import GatewayClient
from .schemas import CallbackResponse, CheckoutOrderResponse, CreateOrderRequest, GatewayCallbackRequest, Prefill
from .signature import verify_signature

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    return int((to_decimal(amount) * settings.gateway_amount_multiplier).to_integral_value(rounding=ROUND_HALF_UP))


async def create_order(
    db: AsyncSession,
    client: GatewayClient,
    account: FeeAccount,
    payload: CreateOrderRequest,
    created_by: Optional[UUID] = None,
) -> CheckoutOrderResponse:
    """
    Create a gateway order and remember the ordered amount.

    No ledger row is written here; money only moves once a signed callback arrives.
    """
    category = FeeCategory(payload.category)
    amount = to_decimal(payload.amount).quantize(Decimal("0.01"))
    receipt = f"rcpt_{uuid.uuid4().hex[:20]}"
    data = await client.create_order(
        amount_minor=to_minor_units(amount),
        currency=settings.gateway_currency,
        receipt=receipt,
        notes={
            "account_id": str(account.id),
            "student_id": account.student_id,
            "category": category.value,
        },
    )
    order = GatewayOrder(
        order_id=str(data["id"]),
        account_id=account.id,
        category=category.value,
        amount=amount,
        currency=str(data.get("currency") or settings.gateway_currency),
        receipt=receipt,
        status=GatewayOrderStatus.created.value,
        created_by=created_by,
    )
    db.add(order)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Gateway returned an order id that is already recorded")
    logger.info("Gateway order %s created for account %s (%s %s)", order.order_id, account.id, category.value, amount)

    prefill = payload.prefill
    if not prefill.name and account.student_name:
        prefill = Prefill(name=account.student_name, email=prefill.email, contact=prefill.contact)
    return CheckoutOrderResponse(
        order_id=order.order_id,
        key_id=client.key_id,
        amount=amount,
        amount_minor=to_minor_units(amount),
        currency=order.currency,
        name=settings.gateway_display_name,
        description=f"{CATEGORY_HEADS[category]} - {account.student_id}",
        receipt=receipt,
        prefill=prefill,
    )


async def _get_order(db: AsyncSession, order_id: str) -> GatewayOrder:
    order = (
        await db.execute(select(GatewayOrder).where(GatewayOrder.order_id == order_id))
    ).scalar_one_or_none()
    if not order:
        raise NotFound("Gateway order not found")
    return order


async def _insert_settled(db: AsyncSession, payload: GatewayCallbackRequest) -> LedgerTransaction:
    txn = LedgerTransaction(
        account_id=payload.account_id,
        category=payload.category.value,
        amount=payload.amount,
        source=TransactionSource.gateway.value,
        status=TransactionStatus.settled.value,
        gateway_order_id=payload.order_id,
        gateway_payment_id=payload.payment_id,
        external_reference=payload.payment_id,
        verified_at=datetime.utcnow(),
    )
    db.add(txn)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise DuplicateCallback(payload.order_id, payload.payment_id)
    return txn


async def _duplicate_outcome(db: AsyncSession, exc: DuplicateCallback) -> CallbackResponse:
    existing = (
        await db.execute(
            select(LedgerTransaction).where(
                LedgerTransaction.gateway_order_id == exc.order_id,
                LedgerTransaction.gateway_payment_id == exc.payment_id,
            )
        )
    ).scalar_one_or_none()
    if existing is None:
        raise Conflict(str(exc))
    account = await db.get(FeeAccount, existing.account_id, populate_existing=True)
    logger.warning("Duplicate callback for order %s payment %s ignored", exc.order_id, exc.payment_id)
    return CallbackResponse(
        duplicate=True,
        transaction=transaction_to_response(existing),
        account=account_totals(account),
    )


async def verify_and_record(
    db: AsyncSession,
    payload: GatewayCallbackRequest,
    changed_by: Optional[UUID] = None,
) -> CallbackResponse:
    """
    Authenticate a gateway completion callback and record it as a settled payment.

    The ledger insert, the account credit and the created -> paid order transition commit together.
    A different payment id against an order that is already paid is a Conflict.
    A replay of the same (order, payment) pair is a successful no-op reported with duplicate=True.
    """
    if not verify_signature(settings.gateway_key_secret, payload.order_id, payload.payment_id, payload.signature):
        logger.warning("Rejected callback with invalid signature for order %s", payload.order_id)
        raise InvalidSignature()

    order = await _get_order(db, payload.order_id)
    if order.account_id != payload.account_id or order.category != payload.category.value:
        logger.warning("Callback for order %s does not match the order's account or category", payload.order_id)
        raise OrderMismatch()
    if to_decimal(order.amount) != to_decimal(payload.amount):
        logger.warning(
            "Callback amount %s differs from ordered amount %s for order %s",
            payload.amount, order.amount, payload.order_id,
        )
        raise AmountMismatch(to_decimal(order.amount), payload.amount)

    try:
        txn = await _insert_settled(db, payload)
    except DuplicateCallback as exc:
        return await _duplicate_outcome(db, exc)

    # An order settles once; a second payment id against it must not credit again
    claimed = await db.execute(
        update(GatewayOrder)
        .where(
            GatewayOrder.order_id == payload.order_id,
            GatewayOrder.status == GatewayOrderStatus.created.value,
        )
        .values(status=GatewayOrderStatus.paid.value, paid_at=datetime.utcnow())
    )
    if claimed.rowcount == 0:
        await db.rollback()
        logger.warning(
            "Order %s is already paid; callback with payment %s not recorded",
            payload.order_id, payload.payment_id,
        )
        raise Conflict("Gateway order is already paid under another payment")

    try:
        account = await credit_account(
            db, payload.account_id, payload.category, payload.amount,
            changed_by=changed_by, reference_id=txn.id,
        )
        await log_fee_audit(
            db, "ledger_transactions", txn.id, "GATEWAY_SETTLED",
            None,
            {
                "order_id": payload.order_id,
                "payment_id": payload.payment_id,
                "category": payload.category.value,
                "amount": str(payload.amount),
            },
            changed_by,
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Failed to commit gateway payment for order %s", payload.order_id)
        raise

    await db.refresh(txn)
    await db.refresh(account)
    logger.info(
        "Gateway payment %s settled for account %s (%s %s)",
        payload.payment_id, payload.account_id, payload.category.value, payload.amount,
    )
    return CallbackResponse(
        duplicate=False,
        transaction=transaction_to_response(txn),
        account=account_totals(account),
    )
