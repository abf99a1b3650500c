"""Batch reconciliation report.

Runs reconciliation checks over a payment batch and every cheque paid from
it, and rolls them up into a BatchReconciliationReport.

Checks:
- C1_CHEQUE_NET: cheque's computed net matches its recorded amount
- C2_CHEQUE_DATA: every source the cheque breakdown needed was available
- B1_BATCH_SUBTOTAL: stored batch subtotal equals the sum of its active receipts
- B2_VOIDED_RECEIPTS: no voided receipts left in a batch that has been paid out
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Sequence

from core.money import AMOUNT_TOLERANCE, sum_money
from models.records import PaymentBatch, Receipt
from models.results import BatchReconciliationReport, ChequeBreakdown, WarningKind, money_text


# =============================================================================
# Check Results
# =============================================================================

class Severity(str, Enum):
    BLOCK = "BLOCK"
    WARN = "WARN"
    INFO = "INFO"


class CheckStatus(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


class CheckResult:
    """Result of a single reconciliation check."""

    def __init__(
        self,
        check_id: str,
        severity: Severity,
        passed: bool,
        message: str,
        evidence: Optional[Dict] = None,
    ):
        self.check_id = check_id
        self.severity = severity
        self.passed = passed
        self.message = message
        self.evidence = evidence or {}

    def to_dict(self) -> Dict:
        return {
            "check_id": self.check_id,
            "severity": self.severity.value,
            "passed": self.passed,
            "message": self.message,
            "evidence": self.evidence,
        }


# =============================================================================
# Cheque Checks
# =============================================================================

def check_c1_cheque_net(breakdown: ChequeBreakdown) -> CheckResult:
    """C1: Verify the computed net matches the recorded cheque amount."""
    cheque_number = breakdown.header.cheque_number
    summary = breakdown.summary
    evidence = {
        "cheque_number": cheque_number,
        "total_gross": money_text(summary.total_gross),
        "total_deductions": money_text(summary.total_deductions),
        "computed_net": money_text(summary.net_amount),
        "recorded_amount": money_text(summary.recorded_amount),
    }

    mismatch = breakdown.mismatch
    if mismatch is None:
        return CheckResult(
            check_id="C1_CHEQUE_NET",
            severity=Severity.INFO,
            passed=True,
            message=f"Cheque {cheque_number} reconciles",
            evidence=evidence,
        )

    evidence["difference"] = money_text(summary.difference)
    return CheckResult(
        check_id="C1_CHEQUE_NET",
        severity=Severity.WARN,
        passed=False,
        message=mismatch.message,
        evidence=evidence,
    )


def check_c2_cheque_data(breakdown: ChequeBreakdown) -> CheckResult:
    """C2: Flag cheques whose breakdown is missing data."""
    cheque_number = breakdown.header.cheque_number
    incomplete = [w for w in breakdown.warnings if w.kind == WarningKind.INCOMPLETE_DATA]

    if incomplete:
        return CheckResult(
            check_id="C2_CHEQUE_DATA",
            severity=Severity.WARN,
            passed=False,
            message=f"Cheque {cheque_number} breakdown is incomplete ({len(incomplete)} source(s))",
            evidence={
                "cheque_number": cheque_number,
                "sources": [w.source for w in incomplete],
                "messages": [w.message for w in incomplete],
            },
        )

    return CheckResult(
        check_id="C2_CHEQUE_DATA",
        severity=Severity.INFO,
        passed=True,
        message=f"Cheque {cheque_number} breakdown is complete",
        evidence={"cheque_number": cheque_number},
    )


# =============================================================================
# Batch Checks
# =============================================================================

def check_b1_batch_subtotal(
    batch: PaymentBatch,
    receipts: Sequence[Receipt],
    tolerance: Decimal = AMOUNT_TOLERANCE,
) -> CheckResult:
    """B1: Verify the stored batch subtotal equals the sum of its active receipts."""
    receipt_sum = sum_money(r.amount for r in receipts if r.is_active)
    evidence = {
        "batch_number": batch.batch_number,
        "stored_subtotal": money_text(batch.subtotal),
        "receipt_sum": money_text(receipt_sum),
        "active_receipts": sum(1 for r in receipts if r.is_active),
    }

    if abs(receipt_sum - batch.subtotal) <= tolerance:
        return CheckResult(
            check_id="B1_BATCH_SUBTOTAL",
            severity=Severity.INFO,
            passed=True,
            message=f"Batch {batch.batch_number} subtotal matches its receipts",
            evidence=evidence,
        )

    evidence["difference"] = money_text(batch.subtotal - receipt_sum)
    return CheckResult(
        check_id="B1_BATCH_SUBTOTAL",
        severity=Severity.BLOCK,
        passed=False,
        message=(
            f"Batch {batch.batch_number} subtotal {batch.subtotal} does not match "
            f"active receipts {receipt_sum}"
        ),
        evidence=evidence,
    )


def check_b2_voided_receipts(batch: PaymentBatch, receipts: Sequence[Receipt]) -> CheckResult:
    """B2: Voided receipts should not remain in a batch that has been paid out."""
    voided = [r.receipt_number for r in receipts if not r.is_active]

    if voided and batch.status.is_paid_out:
        return CheckResult(
            check_id="B2_VOIDED_RECEIPTS",
            severity=Severity.WARN,
            passed=False,
            message=f"Batch {batch.batch_number} is {batch.status.value} but holds {len(voided)} voided receipt(s)",
            evidence={
                "batch_number": batch.batch_number,
                "batch_status": batch.status.value,
                "voided_receipts": voided,
            },
        )

    return CheckResult(
        check_id="B2_VOIDED_RECEIPTS",
        severity=Severity.INFO,
        passed=True,
        message=f"Batch {batch.batch_number} has no voided receipts awaiting reprocessing",
        evidence={"batch_number": batch.batch_number, "voided_receipts": voided},
    )


# =============================================================================
# Report
# =============================================================================

def overall_status(checks: Sequence[CheckResult]) -> str:
    if any(not c.passed and c.severity == Severity.BLOCK for c in checks):
        return CheckStatus.FAIL.value
    if any(not c.passed and c.severity == Severity.WARN for c in checks):
        return CheckStatus.WARN.value
    return CheckStatus.PASS.value


def build_batch_report(
    batch: PaymentBatch,
    receipts: Sequence[Receipt],
    breakdowns: Sequence[ChequeBreakdown],
    tolerance: Decimal = AMOUNT_TOLERANCE,
    voided_cheques: int = 0,
) -> BatchReconciliationReport:
    """Run all checks for a batch and its cheques and return the report.

    Args:
        batch: Batch being reconciled
        receipts: Every receipt in the batch, voided ones included
        breakdowns: Breakdown of each live cheque paid from the batch
        tolerance: Largest difference treated as a match
        voided_cheques: Cheques from the batch skipped because they are voided

    Returns:
        BatchReconciliationReport with status, checks, summary and metrics
    """
    checks: List[CheckResult] = [
        check_b1_batch_subtotal(batch, receipts, tolerance),
        check_b2_voided_receipts(batch, receipts),
    ]

    for breakdown in breakdowns:
        checks.append(check_c1_cheque_net(breakdown))
        checks.append(check_c2_cheque_data(breakdown))

    status = overall_status(checks)

    return BatchReconciliationReport(
        batch_id=batch.batch_id,
        batch_number=batch.batch_number,
        status=status,
        checks=[c.to_dict() for c in checks],
        summary={
            "batch_number": batch.batch_number,
            "batch_status": batch.status.value,
            "status": status,
            "total_checks": len(checks),
            "passed_checks": sum(1 for c in checks if c.passed),
            "blocking_issues": sum(1 for c in checks if not c.passed and c.severity == Severity.BLOCK),
            "warnings": sum(1 for c in checks if not c.passed and c.severity == Severity.WARN),
        },
        metrics={
            "receipt_count": len(receipts),
            "active_receipt_total": money_text(sum_money(r.amount for r in receipts if r.is_active)),
            "stored_subtotal": money_text(batch.subtotal),
            "cheque_count": len(breakdowns),
            "voided_cheques": voided_cheques,
            "cheque_recorded_total": money_text(sum_money(b.summary.recorded_amount for b in breakdowns)),
            "cheque_computed_total": money_text(sum_money(b.summary.net_amount for b in breakdowns)),
        },
    )
