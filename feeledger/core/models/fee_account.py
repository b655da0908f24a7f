"""Fee account: per-student, per-institution aggregate of expected and paid fees."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Numeric, String, UniqueConstraint, Uuid

from feeledger.core.enums import AccountStatus
from feeledger.db.session import FEES_SCHEMA, Base


class FeeAccount(Base):
    """
    Expected vs paid summary for one student at one institution.

    Paid columns are written only by core.services.credit_account; total_paid always
    equals the sum of the account's settled ledger transactions.
    """

    __tablename__ = "fee_accounts"
    __table_args__ = (
        UniqueConstraint("student_id", "institution_id", name="uq_fee_account_student_institution"),
        CheckConstraint(
            "overall_status IN ('clear','due','overdue')",
            name="chk_fee_account_overall_status",
        ),
        {"schema": FEES_SCHEMA},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # Enrollment number / external student identifier
    student_id = Column(String(50), nullable=False, index=True)
    institution_id = Column(String(50), nullable=False, index=True)

    # Context copied from master data (institute/course/program live outside this service)
    student_name = Column(String(255), nullable=True)
    institution_name = Column(String(255), nullable=True)
    course_name = Column(String(255), nullable=True)
    program_pattern = Column(String(50), nullable=True)
    session = Column(String(50), nullable=True)
    batch = Column(String(50), nullable=True)

    registration_expected = Column(Numeric(12, 2), nullable=False, default=0)
    examination_expected = Column(Numeric(12, 2), nullable=False, default=0)
    miscellaneous_expected = Column(Numeric(12, 2), nullable=False, default=0)
    total_expected = Column(Numeric(12, 2), nullable=False, default=0)

    registration_paid = Column(Numeric(12, 2), nullable=False, default=0)
    examination_paid = Column(Numeric(12, 2), nullable=False, default=0)
    miscellaneous_paid = Column(Numeric(12, 2), nullable=False, default=0)
    total_paid = Column(Numeric(12, 2), nullable=False, default=0)

    due_date = Column(Date, nullable=True)
    overall_status = Column(String(20), nullable=False, default=AccountStatus.due.value)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
