"""Reconciliation engine for grower cheques and payment batches.

Exposes:
- validate_price_table(table) -> PriceTableValidation
- build_cheque_breakdown(key, deductions=None) -> ChequeBreakdown
- analyze_void_impact(receipt_id) -> VoidImpact
- void_receipt(receipt_id, reason, actor) -> VoidResult
- can_void_receipt(receipt_id) -> bool
- void_cheque(key, reason, actor) -> ChequeVoidResult
- reconcile_batch(batch_id) -> BatchReconciliationReport

The engine holds no state beyond its providers. Each call is one unit of
work that logs start and finish, records operation metrics, and scopes
correlation ids for everything logged underneath it.
"""

import time
from contextlib import contextmanager
from decimal import Decimal
from typing import Optional, Sequence, Union

from core.audit.events import AuditEventType, AuditLogger
from core.errors import NotFoundError
from core.money import AMOUNT_TOLERANCE
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics
from models.records import AdvanceDeduction, ChequeKey, ChequeStatus, PriceTable
from models.results import (
    BatchReconciliationReport,
    ChequeBreakdown,
    ChequeVoidResult,
    PriceTableValidation,
    VoidImpact,
    VoidResult,
)
from pricing.validator import validate_price_table
from reconciliation.breakdown import ChequeBreakdownBuilder
from reconciliation.providers import (
    BatchProvider,
    ChequeProvider,
    DeductionProvider,
    HistoryProvider,
    ReceiptProvider,
    TransactionManager,
)
from reconciliation.report import build_batch_report
from reconciliation.voids import VoidService


logger = get_logger(__name__)

ChequeRef = Union[ChequeKey, str]


def as_cheque_key(key: ChequeRef) -> ChequeKey:
    """Accept either a ChequeKey or its ``SERIES-NUMBER`` text."""
    if isinstance(key, ChequeKey):
        return key
    return ChequeKey.parse(key)


class ReconciliationEngine:
    """Facade over price validation, cheque breakdowns, voids and batch reports.

    Example:
        store = SqlitePaymentStore(settings.db_path)
        engine = ReconciliationEngine.from_store(store)

        breakdown = await engine.build_cheque_breakdown("A-1001")
        impact = await engine.analyze_void_impact(42)
        if impact.can_void:
            result = await engine.void_receipt(42, "Duplicate entry", "jsmith")
    """

    def __init__(
        self,
        cheques: ChequeProvider,
        receipts: ReceiptProvider,
        batches: BatchProvider,
        deductions: DeductionProvider,
        history: HistoryProvider,
        transactions: Optional[TransactionManager] = None,
        audit: Optional[AuditLogger] = None,
        tolerance: Decimal = AMOUNT_TOLERANCE,
    ):
        self._cheques = cheques
        self._receipts = receipts
        self._batches = batches
        self.audit = audit or AuditLogger()
        self.tolerance = tolerance

        self._builder = ChequeBreakdownBuilder(
            cheques, receipts, batches, deductions, history, tolerance=tolerance
        )
        self._voids = VoidService(
            receipts, batches, cheques, deductions, transactions=transactions, audit=self.audit
        )

    @classmethod
    def from_store(
        cls,
        store,
        audit: Optional[AuditLogger] = None,
        tolerance: Decimal = AMOUNT_TOLERANCE,
    ) -> "ReconciliationEngine":
        """Build an engine from one store implementing every provider and transactions."""
        return cls(store, store, store, store, store, transactions=store, audit=audit, tolerance=tolerance)

    @contextmanager
    def _operation(self, name: str, **ids):
        metrics = get_metrics()
        with with_correlation(operation=name, **ids):
            metrics.record_operation_started(name)
            logger.info(f"{name} started")
            start = time.monotonic()
            try:
                yield
            except Exception as e:
                metrics.record_operation_failed(name, str(e))
                logger.error(f"{name} failed: {e}", extra_fields={"error_type": type(e).__name__})
                raise
            duration_ms = (time.monotonic() - start) * 1000
            metrics.record_operation_completed(name, duration_ms)
            logger.info(f"{name} completed", extra_fields={"duration_ms": round(duration_ms, 2)})

    # =========================================================================
    # Price Tables
    # =========================================================================

    def validate_price_table(self, table: PriceTable) -> PriceTableValidation:
        """Validate a price table. Pure apart from logging, metrics and audit."""
        with self._operation("validate_price_table"):
            validation = validate_price_table(table)
            label = f"{table.product_id}/{table.process_id} effective {table.effective_date}"
            if validation.valid:
                self.audit.log_info(
                    AuditEventType.PRICE_TABLE_VALIDATED,
                    f"Price table {label} is valid",
                )
            else:
                logger.warning(
                    f"Price table {label} has {validation.error_count} issue(s)",
                    extra_fields={"flagged": validation.flagged},
                )
                self.audit.log_warning(
                    AuditEventType.PRICE_TABLE_REJECTED,
                    f"Price table {label} has {validation.error_count} issue(s)",
                    details={"flagged": validation.flagged},
                )
            return validation

    # =========================================================================
    # Cheques
    # =========================================================================

    async def build_cheque_breakdown(
        self,
        key: ChequeRef,
        deductions: Optional[Sequence[AdvanceDeduction]] = None,
    ) -> ChequeBreakdown:
        """Assemble and reconcile a cheque's breakdown.

        Raises:
            InvalidRequestError: If ``key`` is not SERIES-NUMBER text
            NotFoundError: If the cheque does not exist
        """
        key = as_cheque_key(key)
        with self._operation("build_cheque_breakdown", cheque_id=key):
            breakdown = await self._builder.build(key, deductions=deductions)
            self.audit.log_info(
                AuditEventType.BREAKDOWN_BUILT,
                f"Breakdown built for cheque {key}",
                cheque_id=str(key),
                grower_id=breakdown.header.grower_id,
                details={
                    "net_amount": str(breakdown.summary.net_amount),
                    "warnings": len(breakdown.warnings),
                    "deduction_source": breakdown.deduction_source,
                },
            )
            mismatch = breakdown.mismatch
            if mismatch is not None:
                self.audit.log_warning(
                    AuditEventType.RECONCILIATION_MISMATCH,
                    mismatch.message,
                    cheque_id=str(key),
                    grower_id=breakdown.header.grower_id,
                    details={"computed": str(mismatch.computed), "recorded": str(mismatch.recorded)},
                )
            return breakdown

    async def void_cheque(self, key: ChequeRef, reason: str, actor: str) -> ChequeVoidResult:
        key = as_cheque_key(key)
        with self._operation("void_cheque", cheque_id=key, actor=actor):
            return await self._voids.void_cheque(key, reason, actor)

    # =========================================================================
    # Receipts
    # =========================================================================

    async def analyze_void_impact(self, receipt_id: int) -> VoidImpact:
        with self._operation("analyze_void_impact", receipt_id=receipt_id):
            return await self._voids.analyze_void_impact(receipt_id)

    async def can_void_receipt(self, receipt_id: int) -> bool:
        return await self._voids.can_void_receipt(receipt_id)

    async def void_receipt(self, receipt_id: int, reason: str, actor: str) -> VoidResult:
        with self._operation("void_receipt", receipt_id=receipt_id, actor=actor):
            return await self._voids.void_receipt(receipt_id, reason, actor)

    # =========================================================================
    # Batches
    # =========================================================================

    async def reconcile_batch(self, batch_id: int) -> BatchReconciliationReport:
        """Reconcile a batch subtotal and every live cheque paid from the batch.

        Raises:
            NotFoundError: If the batch does not exist
        """
        with self._operation("reconcile_batch", batch_id=batch_id):
            batch = await self._batches.get_batch(batch_id)
            if batch is None:
                raise NotFoundError("Batch", batch_id)

            receipts = await self._receipts.get_receipts_for_batch(batch_id)
            cheques = await self._cheques.list_cheques_for_batch(batch_id)

            live = [c for c in cheques if c.status != ChequeStatus.VOIDED]
            breakdowns = []
            for cheque in live:
                with with_correlation(cheque_id=cheque.key):
                    breakdowns.append(await self._builder.build(cheque.key))

            report = build_batch_report(
                batch,
                receipts,
                breakdowns,
                tolerance=self.tolerance,
                voided_cheques=len(cheques) - len(live),
            )
            logger.info(
                f"Batch {batch.batch_number} reconciled: {report.status}",
                extra_fields=report.summary,
            )
            return report


# =============================================================================
# Default Engine
# =============================================================================

_default_engine: Optional[ReconciliationEngine] = None


def build_engine(settings=None) -> ReconciliationEngine:
    """Engine over the SQLite store and audit directory named in settings."""
    from core.audit.events import build_audit_logger
    from core.config import get_settings
    from storage.sqlite_store import SqlitePaymentStore

    settings = settings or get_settings()
    store = SqlitePaymentStore(settings.db_path)
    logger.info(f"Opened payment store at {settings.db_path}")
    return ReconciliationEngine.from_store(
        store,
        audit=build_audit_logger(settings.audit_dir),
        tolerance=settings.amount_tolerance,
    )


def get_engine() -> ReconciliationEngine:
    """Process-wide engine, built from settings on first use."""
    global _default_engine
    if _default_engine is None:
        _default_engine = build_engine()
    return _default_engine


def set_engine(engine: Optional[ReconciliationEngine]) -> None:
    """Replace the process-wide engine (None rebuilds it on next use)."""
    global _default_engine
    _default_engine = engine
