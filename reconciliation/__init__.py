"""Cheque reconciliation engine: breakdowns, voids and batch reports."""

from reconciliation.engine import (
    ReconciliationEngine,
    as_cheque_key,
    build_engine,
    get_engine,
    set_engine,
)
from reconciliation.providers import (
    BatchProvider,
    ChequeProvider,
    DeductionProvider,
    HistoryProvider,
    NullTransactionManager,
    ReceiptProvider,
    TransactionManager,
)

__all__ = [
    "ReconciliationEngine",
    "as_cheque_key",
    "build_engine",
    "get_engine",
    "set_engine",
    "BatchProvider",
    "ChequeProvider",
    "DeductionProvider",
    "HistoryProvider",
    "NullTransactionManager",
    "ReceiptProvider",
    "TransactionManager",
]
