"""
Void Receipt Workflow

Confirm-then-void orchestration for a single receipt:
ANALYZE_IMPACT → (AWAITING_CONFIRMATION) → VOID → VOIDED

Voiding a receipt in a batch that has already been paid out reverts the
batch to Draft for every grower in it, so the workflow stops after the
impact analysis and waits for an operator to send ``confirm`` (or
``cancel``). If nobody answers within the confirmation window the
workflow ends as EXPIRED without touching anything. The void activity
re-checks the receipt's state, so a stale analysis cannot void a receipt
that changed in the meantime.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError, ApplicationError

with workflow.unsafe.imports_passed_through():
    from activities.payments import (
        AnalyzeVoidImpactInput,
        VoidReceiptInput,
        analyze_void_impact_activity,
        void_receipt_activity,
    )


# =============================================================================
# Workflow Input/Output
# =============================================================================

class VoidWorkflowStatus(str, Enum):
    ANALYZING = "ANALYZING"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    VOIDING = "VOIDING"
    VOIDED = "VOIDED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"


@dataclass
class VoidReceiptWorkflowInput:
    """Input for the void receipt workflow.

    Attributes:
        receipt_id: Receipt to void
        reason: Why the receipt is being voided
        actor: User requesting the void
        confirmation_timeout_minutes: How long to wait for ``confirm``
            when the batch has been paid out
    """
    receipt_id: int
    reason: str
    actor: str
    confirmation_timeout_minutes: int = 60


@dataclass
class VoidReceiptWorkflowOutput:
    receipt_id: int
    status: str
    impact: Dict[str, Any] = field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    confirmed_by: Optional[str] = None
    error_message: Optional[str] = None


# Errors that will not fix themselves on retry
NON_RETRYABLE_ERRORS = ["NotFoundError", "InvalidStateError", "InvalidRequestError"]


# =============================================================================
# Void Receipt Workflow
# =============================================================================

# Signals are accepted until the void starts; an operator may answer before
# the analysis activity has returned.
_OPEN_FOR_SIGNALS = (VoidWorkflowStatus.ANALYZING, VoidWorkflowStatus.AWAITING_CONFIRMATION)


def _failure_status(error: Exception) -> VoidWorkflowStatus:
    """REJECTED when the activity refused the request, FAILED otherwise."""
    cause = error.cause if isinstance(error, ActivityError) else None
    if isinstance(cause, ApplicationError) and cause.type in NON_RETRYABLE_ERRORS:
        return VoidWorkflowStatus.REJECTED
    return VoidWorkflowStatus.FAILED


def _failure_message(error: Exception) -> str:
    cause = error.cause if isinstance(error, ActivityError) else None
    if isinstance(cause, ApplicationError):
        return f"{cause.type}: {cause.message}" if cause.type else cause.message
    return str(error)


@workflow.defn
class VoidReceiptWorkflow:
    """Analyze, optionally wait for confirmation, then void a receipt."""

    def __init__(self):
        self.status = VoidWorkflowStatus.ANALYZING
        self.confirmed_by: Optional[str] = None
        self.cancelled = False

    @workflow.signal
    def confirm(self, actor: str) -> None:
        """Operator accepts the impact of the void."""
        if self.status in _OPEN_FOR_SIGNALS and not self.cancelled:
            self.confirmed_by = actor

    @workflow.signal
    def cancel(self) -> None:
        if self.status in _OPEN_FOR_SIGNALS and self.confirmed_by is None:
            self.cancelled = True

    @workflow.query
    def get_status(self) -> str:
        return self.status.value

    @workflow.run
    async def run(self, input: VoidReceiptWorkflowInput) -> VoidReceiptWorkflowOutput:
        workflow.logger.info(f"Starting void workflow for receipt {input.receipt_id}")

        activity_options = {
            "start_to_close_timeout": timedelta(seconds=30),
            "retry_policy": RetryPolicy(
                maximum_attempts=3,
                initial_interval=timedelta(seconds=1),
                backoff_coefficient=2.0,
                non_retryable_error_types=NON_RETRYABLE_ERRORS,
            ),
        }
        output = VoidReceiptWorkflowOutput(receipt_id=input.receipt_id, status=self.status.value)

        try:
            # =================================================================
            # Stage: ANALYZE_IMPACT
            # =================================================================
            impact = await workflow.execute_activity(
                analyze_void_impact_activity,
                AnalyzeVoidImpactInput(receipt_id=input.receipt_id),
                **activity_options,
            )
            output.impact = impact

            if not impact["can_void"]:
                workflow.logger.info(f"Receipt {input.receipt_id} cannot be voided: {impact['warning_message']}")
                return self._finish(output, VoidWorkflowStatus.REJECTED, impact["warning_message"])

            # =================================================================
            # Stage: AWAITING_CONFIRMATION
            # =================================================================
            if impact["requires_confirmation"]:
                self.status = VoidWorkflowStatus.AWAITING_CONFIRMATION
                workflow.logger.info(
                    f"Receipt {input.receipt_id} is in a paid-out batch; waiting for confirmation "
                    f"({len(impact['affected_growers'])} grower(s) affected)"
                )
                try:
                    await workflow.wait_condition(
                        lambda: self.confirmed_by is not None or self.cancelled,
                        timeout=timedelta(minutes=input.confirmation_timeout_minutes),
                    )
                except asyncio.TimeoutError:
                    return self._finish(
                        output,
                        VoidWorkflowStatus.EXPIRED,
                        "Confirmation window expired; receipt was not voided",
                    )
                output.confirmed_by = self.confirmed_by

            if self.cancelled:
                output.confirmed_by = None
                return self._finish(output, VoidWorkflowStatus.CANCELLED)

            # =================================================================
            # Stage: VOID
            # =================================================================
            self.status = VoidWorkflowStatus.VOIDING
            result = await workflow.execute_activity(
                void_receipt_activity,
                VoidReceiptInput(receipt_id=input.receipt_id, reason=input.reason, actor=input.actor),
                **activity_options,
            )
            output.result = result

            if not result["success"]:
                return self._finish(
                    output,
                    VoidWorkflowStatus.FAILED,
                    f"{result['failed_step']}: {result['error_message']}",
                )
            return self._finish(output, VoidWorkflowStatus.VOIDED)

        except Exception as e:
            workflow.logger.error(f"Void workflow for receipt {input.receipt_id} stopped: {e}")
            return self._finish(output, _failure_status(e), _failure_message(e))

    def _finish(
        self,
        output: VoidReceiptWorkflowOutput,
        status: VoidWorkflowStatus,
        error_message: Optional[str] = None,
    ) -> VoidReceiptWorkflowOutput:
        self.status = status
        output.status = status.value
        output.error_message = error_message
        workflow.logger.info(f"Void workflow for receipt {output.receipt_id} finished: {output.status}")
        return output
