"""Payment record and result models.

Records (``models.records``) are the value-like inputs the engine reads
through its providers. Results (``models.results``) are what the engine
returns.
"""

from models.audit import AuditEvent, AuditSeverity
from models.records import (
    AdvanceDeduction,
    BatchReassessment,
    BatchStatus,
    Cheque,
    ChequeKey,
    ChequeStatus,
    ChequeSummary,
    GRADES,
    PaymentBatch,
    PriceCell,
    PriceTable,
    RateType,
    Receipt,
    ReceiptLine,
    ReceiptStatus,
    TIERS,
)
from models.results import (
    BatchBreakdown,
    BatchReconciliationReport,
    BreakdownWarning,
    ChequeBreakdown,
    ChequeHeader,
    ChequeVoidResult,
    DeductionLine,
    PaymentHistory,
    PaymentSummary,
    PriceIssueCode,
    PriceTableValidation,
    PriceValidationIssue,
    VoidImpact,
    VoidResult,
    WarningKind,
)

__all__ = [
    # Audit
    "AuditEvent",
    "AuditSeverity",
    # Records
    "AdvanceDeduction",
    "BatchReassessment",
    "BatchStatus",
    "Cheque",
    "ChequeKey",
    "ChequeStatus",
    "ChequeSummary",
    "GRADES",
    "PaymentBatch",
    "PriceCell",
    "PriceTable",
    "RateType",
    "Receipt",
    "ReceiptLine",
    "ReceiptStatus",
    "TIERS",
    # Results
    "BatchBreakdown",
    "BatchReconciliationReport",
    "BreakdownWarning",
    "ChequeBreakdown",
    "ChequeHeader",
    "ChequeVoidResult",
    "DeductionLine",
    "PaymentHistory",
    "PaymentSummary",
    "PriceIssueCode",
    "PriceTableValidation",
    "PriceValidationIssue",
    "VoidImpact",
    "VoidResult",
    "WarningKind",
]
