"""Fee structure: template fee amounts per course/session/batch, set by administrators."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Numeric, String, Uuid

from feeledger.core.enums import FeeStructureStatus
from feeledger.db.session import FEES_SCHEMA, Base


class FeeStructure(Base):
    __tablename__ = "fee_structures"
    __table_args__ = (
        CheckConstraint("fee_amount > 0", name="chk_fee_structure_amount_positive"),
        CheckConstraint("status IN ('active','inactive')", name="chk_fee_structure_status"),
        {"schema": FEES_SCHEMA},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    institution_id = Column(String(50), nullable=False, index=True)
    category = Column(String(20), nullable=False)
    course_name = Column(String(255), nullable=True)
    session = Column(String(50), nullable=True)
    batch = Column(String(50), nullable=True)
    program_pattern = Column(String(50), nullable=True)
    fee_amount = Column(Numeric(12, 2), nullable=False)
    effective_from = Column(Date, nullable=True)
    effective_to = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default=FeeStructureStatus.active.value)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
