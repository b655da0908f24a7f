"""Fee audit log: immutable financial change tracking for audit safety."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, String, Uuid

from feeledger.db.session import FEES_SCHEMA, Base


class FeeAuditLog(Base):
    """Immutable audit trail for fee-related financial changes."""

    __tablename__ = "fee_audit_logs"
    __table_args__ = {"schema": FEES_SCHEMA}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    reference_table = Column(String(50), nullable=False)
    reference_id = Column(Uuid, nullable=False, index=True)
    action_type = Column(String(30), nullable=False)  # CREATE, CREDIT, VERIFY, REJECT, APPLY, WAIVE, RESOLVE
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    changed_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
