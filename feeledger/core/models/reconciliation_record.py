"""Reconciliation record: audit link between a settled ledger transaction and a bank statement line."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from feeledger.db.session import FEES_SCHEMA, Base


class ReconciliationRecord(Base):
    """At most one per ledger transaction; reconciliation passes upsert it."""

    __tablename__ = "reconciliation_records"
    __table_args__ = (
        CheckConstraint(
            "status IN ('matched','mismatched','unmatched')",
            name="chk_reconciliation_status",
        ),
        {"schema": FEES_SCHEMA},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    transaction_id = Column(
        Uuid,
        ForeignKey(f"{FEES_SCHEMA}.ledger_transactions.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    bank_reference = Column(String(100), nullable=True)
    bank_date = Column(Date, nullable=True)
    reconciled_amount = Column(Numeric(12, 2), nullable=True)
    difference_amount = Column(Numeric(12, 2), nullable=True)
    status = Column(String(20), nullable=False)
    remarks = Column(Text, nullable=True)
    reconciled_at = Column(DateTime(timezone=True), nullable=False)
    resolved_by = Column(Uuid, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    transaction = relationship("LedgerTransaction")
