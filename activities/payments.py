"""Payment reconciliation activities.

Temporal activities wrapping the reconciliation engine operations. Inputs
are dataclasses; outputs are JSON-safe dicts (pydantic ``model_dump`` in
json mode) so Decimal amounts survive the default data converter as text.

Every activity scopes workflow/activity correlation ids around the engine
call so engine logs can be traced back to the workflow that caused them.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass

from temporalio import activity

from core.observability.logging import log_activity, with_correlation
from models.records import PriceTable
from reconciliation.engine import get_engine


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class ValidatePriceTableInput:
    """Input for validate_price_table_activity.

    Attributes:
        price_table: Serialized PriceTable
    """
    price_table: dict


@dataclass
class BuildChequeBreakdownInput:
    """Input for build_cheque_breakdown_activity.

    Attributes:
        cheque: Cheque key as SERIES-NUMBER text (e.g. "A-1001")
    """
    cheque: str


@dataclass
class AnalyzeVoidImpactInput:
    receipt_id: int


@dataclass
class VoidReceiptInput:
    """Input for void_receipt_activity.

    Attributes:
        receipt_id: Receipt to void
        reason: Why the receipt is being voided (required, non-blank)
        actor: User performing the void
    """
    receipt_id: int
    reason: str
    actor: str


@dataclass
class ReconcileBatchInput:
    batch_id: int


# =============================================================================
# Helpers
# =============================================================================

@contextmanager
def _activity_scope(name: str, **ids):
    info = activity.info()
    with with_correlation(workflow_id=info.workflow_id, activity_name=name, **ids):
        log_activity(name, "started", attempt=info.attempt)
        start = time.monotonic()
        try:
            yield
        except Exception as e:
            log_activity(name, "failed", error=str(e), error_type=type(e).__name__)
            raise
        log_activity(name, "completed", duration_ms=round((time.monotonic() - start) * 1000, 2))


# =============================================================================
# Activity Definitions
# =============================================================================

@activity.defn
async def validate_price_table_activity(input: ValidatePriceTableInput) -> dict:
    """Validate a price table.

    Returns:
        Serialized PriceTableValidation

    Raises:
        PriceTableShapeError: If the table does not hold exactly nine well-formed cells
    """
    with _activity_scope("validate_price_table"):
        table = PriceTable.model_validate(input.price_table)
        validation = get_engine().validate_price_table(table)
        return validation.model_dump(mode="json")


@activity.defn
async def build_cheque_breakdown_activity(input: BuildChequeBreakdownInput) -> dict:
    """Build and reconcile a cheque breakdown.

    Returns:
        Serialized ChequeBreakdown
    """
    with _activity_scope("build_cheque_breakdown", cheque_id=input.cheque):
        breakdown = await get_engine().build_cheque_breakdown(input.cheque)
        activity.logger.info(
            f"Cheque {input.cheque}: net {breakdown.summary.net_amount}, "
            f"{len(breakdown.warnings)} warning(s)"
        )
        return breakdown.model_dump(mode="json")


@activity.defn
async def analyze_void_impact_activity(input: AnalyzeVoidImpactInput) -> dict:
    with _activity_scope("analyze_void_impact", receipt_id=input.receipt_id):
        impact = await get_engine().analyze_void_impact(input.receipt_id)
        return impact.model_dump(mode="json")


@activity.defn
async def void_receipt_activity(input: VoidReceiptInput) -> dict:
    """Void a receipt and reassess its batch.

    State is re-validated here even when an impact analysis ran earlier,
    since the receipt may have changed while the workflow waited.

    Returns:
        Serialized VoidResult. A failed result is returned, not raised:
        the transaction already rolled back and retrying will not help.

    Raises:
        InvalidRequestError: If the reason is blank
        NotFoundError: If the receipt does not exist
        InvalidStateError: If the receipt is not Active
    """
    with _activity_scope("void_receipt", receipt_id=input.receipt_id, actor=input.actor):
        result = await get_engine().void_receipt(input.receipt_id, input.reason, input.actor)
        if not result.success:
            activity.logger.warning(
                f"Void of receipt {input.receipt_id} failed at {result.failed_step}: {result.error_message}"
            )
        return result.model_dump(mode="json")


@activity.defn
async def reconcile_batch_activity(input: ReconcileBatchInput) -> dict:
    """Reconcile a batch and every live cheque paid from it.

    Returns:
        Serialized BatchReconciliationReport
    """
    with _activity_scope("reconcile_batch", batch_id=input.batch_id):
        report = await get_engine().reconcile_batch(input.batch_id)
        return report.model_dump(mode="json")


PAYMENT_ACTIVITIES = [
    validate_price_table_activity,
    build_cheque_breakdown_activity,
    analyze_void_impact_activity,
    void_receipt_activity,
    reconcile_batch_activity,
]
