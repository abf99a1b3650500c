"""Activity definitions module."""

from activities.payments import (
    PAYMENT_ACTIVITIES,
    AnalyzeVoidImpactInput,
    BuildChequeBreakdownInput,
    ReconcileBatchInput,
    ValidatePriceTableInput,
    VoidReceiptInput,
    analyze_void_impact_activity,
    build_cheque_breakdown_activity,
    reconcile_batch_activity,
    validate_price_table_activity,
    void_receipt_activity,
)

__all__ = [
    "PAYMENT_ACTIVITIES",
    "AnalyzeVoidImpactInput",
    "BuildChequeBreakdownInput",
    "ReconcileBatchInput",
    "ValidatePriceTableInput",
    "VoidReceiptInput",
    "analyze_void_impact_activity",
    "build_cheque_breakdown_activity",
    "reconcile_batch_activity",
    "validate_price_table_activity",
    "void_receipt_activity",
]
