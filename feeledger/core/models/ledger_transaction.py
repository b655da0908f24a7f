"""Ledger transaction: one row per payment event, across all fee categories and sources."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from feeledger.core.enums import TransactionStatus
from feeledger.db.session import FEES_SCHEMA, Base


class LedgerTransaction(Base):
    """
    Payment event against a fee account.

    Gateway rows carry (gateway_order_id, gateway_payment_id); the pair is unique so a
    replayed callback cannot insert a second row. Status moves out of
    pending-verification exactly once.
    """

    __tablename__ = "ledger_transactions"
    __table_args__ = (
        UniqueConstraint("gateway_order_id", "gateway_payment_id", name="uq_ledger_gateway_order_payment"),
        CheckConstraint("amount > 0", name="chk_ledger_amount_positive"),
        CheckConstraint(
            "category IN ('registration','examination','miscellaneous')",
            name="chk_ledger_category",
        ),
        CheckConstraint("source IN ('gateway','manual','counter')", name="chk_ledger_source"),
        CheckConstraint(
            "status IN ('pending-verification','settled','rejected')",
            name="chk_ledger_status",
        ),
        Index("ix_ledger_account_created", "account_id", "created_at"),
        {"schema": FEES_SCHEMA},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id = Column(
        Uuid,
        ForeignKey(f"{FEES_SCHEMA}.fee_accounts.id", ondelete="RESTRICT"),
        nullable=False,
    )
    category = Column(String(20), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    source = Column(String(20), nullable=False)  # gateway, manual, counter
    status = Column(String(30), nullable=False, default=TransactionStatus.pending_verification.value)

    gateway_order_id = Column(String(100), nullable=True)
    gateway_payment_id = Column(String(100), nullable=True)
    # Bank transaction number / receipt number; gateway payment id for gateway rows
    external_reference = Column(String(100), nullable=True, index=True)
    note = Column(Text, nullable=True)
    recorded_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    verified_by = Column(Uuid, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    decision_remarks = Column(Text, nullable=True)

    account = relationship("FeeAccount")
