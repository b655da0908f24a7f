"""Fee dues: arbitrary obligations payable incrementally, and the payments applied to them."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from feeledger.core.enums import DueStatus
from feeledger.db.session import FEES_SCHEMA, Base


class Due(Base):
    """
    Amount owed under one fee head by a date. amount_paid never exceeds original_amount;
    status follows the two amounts except for an explicit waiver.
    """

    __tablename__ = "fee_dues"
    __table_args__ = (
        UniqueConstraint("account_id", "fee_head", name="uq_fee_due_account_head"),
        CheckConstraint("original_amount > 0", name="chk_fee_due_original_positive"),
        CheckConstraint(
            "amount_paid >= 0 AND amount_paid <= original_amount",
            name="chk_fee_due_amount_paid_bounds",
        ),
        CheckConstraint(
            "status IN ('due','partial','paid','waived')",
            name="chk_fee_due_status",
        ),
        {"schema": FEES_SCHEMA},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id = Column(
        Uuid,
        ForeignKey(f"{FEES_SCHEMA}.fee_accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    fee_head = Column(String(100), nullable=False)  # e.g. "Hostel Fee"
    category = Column(String(20), nullable=True)
    fee_structure_id = Column(
        Uuid,
        ForeignKey(f"{FEES_SCHEMA}.fee_structures.id", ondelete="SET NULL"),
        nullable=True,
    )
    original_amount = Column(Numeric(12, 2), nullable=False)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=0)
    due_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default=DueStatus.due.value)

    waived_by = Column(Uuid, nullable=True)
    waived_at = Column(DateTime(timezone=True), nullable=True)
    waiver_reason = Column(Text, nullable=True)

    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    account = relationship("FeeAccount")
    fee_structure = relationship("FeeStructure")


class DuePayment(Base):
    """One application of money against a due. applied_amount is what was actually taken."""

    __tablename__ = "fee_due_payments"
    __table_args__ = (
        CheckConstraint("applied_amount > 0", name="chk_fee_due_payment_applied_positive"),
        {"schema": FEES_SCHEMA},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    due_id = Column(
        Uuid,
        ForeignKey(f"{FEES_SCHEMA}.fee_dues.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    account_id = Column(
        Uuid,
        ForeignKey(f"{FEES_SCHEMA}.fee_accounts.id", ondelete="RESTRICT"),
        nullable=False,
    )
    requested_amount = Column(Numeric(12, 2), nullable=False)
    applied_amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(30), nullable=False)  # CASH, UPI, CARD, BANK, ...
    note = Column(Text, nullable=True)
    recorded_by = Column(Uuid, nullable=True)
    paid_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    due = relationship("Due", backref="payments")
