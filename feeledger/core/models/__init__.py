from feeledger.core.models.fee_account import FeeAccount
from feeledger.core.models.fee_structure import FeeStructure
from feeledger.core.models.ledger_transaction import LedgerTransaction
from feeledger.core.models.gateway_order import GatewayOrder
from feeledger.core.models.due import Due, DuePayment
from feeledger.core.models.reconciliation_record import ReconciliationRecord
from feeledger.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "FeeAccount",
    "FeeStructure",
    "LedgerTransaction",
    "GatewayOrder",
    "Due",
    "DuePayment",
    "ReconciliationRecord",
    "FeeAuditLog",
]
