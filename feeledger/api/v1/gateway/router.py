"""Gateway router: checkout order creation and payment completion callback."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_current_user
from feeledger.auth.rbac import ensure_account_access
from feeledger.auth.schemas import CurrentUser
from feeledger.core.exceptions import ServiceError
from feeledger.core.services import get_account_or_404
from feeledger.db.session import get_db

from .client import GatewayClient, get_gateway_client
from .schemas import CallbackResponse, CheckoutOrderResponse, CreateOrderRequest, GatewayCallbackRequest
from . import service

router = APIRouter(prefix="/api/v1/gateway", tags=["gateway"])


@router.post("/orders", response_model=CheckoutOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: CreateOrderRequest,
    db: AsyncSession = Depends(get_db),
    client: GatewayClient = Depends(get_gateway_client),
    current_user: CurrentUser = Depends(get_current_user),
) -> CheckoutOrderResponse:
    try:
        account = await get_account_or_404(db, payload.account_id)
        ensure_account_access(current_user, account)
        return await service.create_order(db, client, account, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post("/callback", response_model=CallbackResponse)
async def payment_callback(
    payload: GatewayCallbackRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> CallbackResponse:
    """Record a signed completion. Replays return the original transaction with duplicate=true."""
    try:
        account = await get_account_or_404(db, payload.account_id)
        ensure_account_access(current_user, account)
        return await service.verify_and_record(db, payload, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
