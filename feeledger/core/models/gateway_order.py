"""Gateway order: the amount a client was asked to pay, persisted at order creation."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from feeledger.core.enums import GatewayOrderStatus
from feeledger.db.session import FEES_SCHEMA, Base


class GatewayOrder(Base):
    """Order created with the payment gateway. Has no financial effect until a verified callback."""

    __tablename__ = "gateway_orders"
    __table_args__ = {"schema": FEES_SCHEMA}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(String(100), nullable=False, unique=True)
    account_id = Column(
        Uuid,
        ForeignKey(f"{FEES_SCHEMA}.fee_accounts.id", ondelete="RESTRICT"),
        nullable=False,
    )
    category = Column(String(20), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    receipt = Column(String(40), nullable=False)
    status = Column(String(20), nullable=False, default=GatewayOrderStatus.created.value)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    account = relationship("FeeAccount")
