from enum import Enum


class FeeCategory(str, Enum):
    registration = "registration"
    examination = "examination"
    miscellaneous = "miscellaneous"


class TransactionSource(str, Enum):
    gateway = "gateway"
    manual = "manual"
    counter = "counter"


class TransactionStatus(str, Enum):
    pending_verification = "pending-verification"
    settled = "settled"
    rejected = "rejected"


class VerificationDecision(str, Enum):
    verify = "verify"
    reject = "reject"


class AccountStatus(str, Enum):
    clear = "clear"
    due = "due"
    overdue = "overdue"


class DueStatus(str, Enum):
    due = "due"
    partial = "partial"
    paid = "paid"
    waived = "waived"


class ReconciliationStatus(str, Enum):
    matched = "matched"
    mismatched = "mismatched"
    unmatched = "unmatched"


class GatewayOrderStatus(str, Enum):
    created = "created"
    paid = "paid"


class FeeStructureStatus(str, Enum):
    active = "active"
    inactive = "inactive"


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    ACCOUNTANT = "ACCOUNTANT"
    STUDENT = "STUDENT"


STAFF_ROLES = (UserRole.SUPER_ADMIN.value, UserRole.ADMIN.value, UserRole.ACCOUNTANT.value)
ADMIN_ROLES = (UserRole.SUPER_ADMIN.value, UserRole.ADMIN.value)
