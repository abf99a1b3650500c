"""Result models returned by the pricing and reconciliation operations.

These are computed, transient records: validation outcomes, cheque
breakdowns, void impact analyses and void results, and batch reports.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from core.money import format_money, round_money
from models.records import (
    BatchStatus,
    ChequeStatus,
    ChequeSummary,
    ReceiptLine,
    ReceiptStatus,
)


# =============================================================================
# Price Table Validation
# =============================================================================

class PriceIssueCode(str, Enum):
    """Why a price table value was flagged."""
    A2_BELOW_A1 = "A2_BELOW_A1"
    A3_BELOW_A2 = "A3_BELOW_A2"
    FINAL_BELOW_ADVANCE = "FINAL_BELOW_ADVANCE"
    NEGATIVE_RATE = "NEGATIVE_RATE"
    PREMIUM_TIME_REQUIRED = "PREMIUM_TIME_REQUIRED"
    NEGATIVE_PREMIUM = "NEGATIVE_PREMIUM"


class PriceValidationIssue(BaseModel):
    """A single flagged value in a price table.

    ``cell`` is the cell identifier (``T1G2``) or ``TABLE`` for table-level
    settings such as the time premium.
    """
    cell: str
    field: Optional[str] = None
    code: PriceIssueCode
    message: str
    value: Optional[Decimal] = None
    limit: Optional[Decimal] = None


class PriceTableValidation(BaseModel):
    """Outcome of validating a price table.

    Attributes:
        valid: True when nothing was flagged
        flagged: Cell id -> rate fields flagged in that cell (A1, A2, A3, FN)
        issues: Every flagged value with the reason it was flagged
    """
    valid: bool
    flagged: Dict[str, List[str]] = Field(default_factory=dict)
    issues: List[PriceValidationIssue] = Field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.issues)

    def is_flagged(self, cell: str, field: str) -> bool:
        return field in self.flagged.get(cell, [])


# =============================================================================
# Warnings
# =============================================================================

class WarningKind(str, Enum):
    """Non-fatal conditions attached to an otherwise complete result."""
    RECONCILIATION_MISMATCH = "RECONCILIATION_MISMATCH"
    INCOMPLETE_DATA = "INCOMPLETE_DATA"


class BreakdownWarning(BaseModel):
    kind: WarningKind
    source: str = Field(..., description="Section or provider the warning is about")
    message: str
    computed: Optional[Decimal] = None
    recorded: Optional[Decimal] = None


# =============================================================================
# Cheque Breakdown
# =============================================================================

class ChequeHeader(BaseModel):
    """Header of a cheque breakdown."""
    cheque_number: str
    series: str
    number: int
    cheque_date: date
    grower_id: str
    payee_name: Optional[str] = None
    status: ChequeStatus
    recorded_amount: Decimal

    @property
    def fiscal_year(self) -> int:
        return self.cheque_date.year


class BatchBreakdown(BaseModel):
    """Receipts paid from one batch on this cheque."""
    batch_id: Optional[int] = None
    batch_number: str = "Unknown"
    batch_date: Optional[date] = None
    status: Optional[BatchStatus] = None
    receipts: List[ReceiptLine] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")

    @property
    def receipt_count(self) -> int:
        return len(self.receipts)


class DeductionLine(BaseModel):
    deduction_id: int
    advance_cheque_id: int
    original_amount: Decimal
    deduction_amount: Decimal
    description: str


class PaymentSummary(BaseModel):
    """Gross, deductions and net for a cheque, with the recorded amount alongside."""
    total_gross: Decimal
    total_deductions: Decimal
    net_amount: Decimal
    recorded_amount: Decimal

    @property
    def difference(self) -> Decimal:
        return self.net_amount - self.recorded_amount

    @property
    def display(self) -> Dict[str, str]:
        return {
            "total_gross": format_money(self.total_gross),
            "total_deductions": format_money(self.total_deductions),
            "net_amount": format_money(self.net_amount),
            "recorded_amount": format_money(self.recorded_amount),
        }


class PaymentHistory(BaseModel):
    """Prior cheques for the grower, oldest first."""
    payments: List[ChequeSummary] = Field(default_factory=list)
    season_total: Optional[Decimal] = None

    @property
    def payment_count(self) -> int:
        return len(self.payments)


class ChequeBreakdown(BaseModel):
    """Everything that makes up a cheque: receipts by batch, deductions, net and history."""
    header: ChequeHeader
    batches: List[BatchBreakdown] = Field(default_factory=list)
    deductions: List[DeductionLine] = Field(default_factory=list)
    deduction_source: str = "provider"
    summary: PaymentSummary
    history: PaymentHistory = Field(default_factory=PaymentHistory)
    warnings: List[BreakdownWarning] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def mismatch(self) -> Optional[BreakdownWarning]:
        for warning in self.warnings:
            if warning.kind == WarningKind.RECONCILIATION_MISMATCH:
                return warning
        return None

    @property
    def has_mismatch(self) -> bool:
        return self.mismatch is not None

    @property
    def is_complete(self) -> bool:
        return not any(w.kind == WarningKind.INCOMPLETE_DATA for w in self.warnings)


# =============================================================================
# Void Impact / Void Results
# =============================================================================

class VoidImpact(BaseModel):
    """What voiding a receipt would do. Advisory only; nothing is changed."""
    receipt_id: int
    receipt_number: str
    receipt_status: ReceiptStatus
    grower_id: str
    amount: Decimal

    batch_id: Optional[int] = None
    batch_number: Optional[str] = None
    batch_status: Optional[BatchStatus] = None
    batch_subtotal_before: Optional[Decimal] = None
    batch_subtotal_after: Optional[Decimal] = None

    affected_growers: List[str] = Field(default_factory=list)
    requires_confirmation: bool = False
    can_void: bool = True
    warning_message: str = ""


class VoidResult(BaseModel):
    """Outcome of a receipt void.

    On failure nothing was committed and ``failed_step`` names the step
    that raised.
    """
    success: bool
    receipt_id: int
    receipt_number: Optional[str] = None
    batch_id: Optional[int] = None
    batch_number: Optional[str] = None
    batch_status: Optional[BatchStatus] = None
    batch_reverted: bool = False
    amount_voided: Decimal = Decimal("0")
    reason: Optional[str] = None
    voided_by: Optional[str] = None
    voided_at: Optional[datetime] = None
    failed_step: Optional[str] = None
    error_message: Optional[str] = None


class ChequeVoidResult(BaseModel):
    """Outcome of voiding a cheque and reversing its advance deductions."""
    success: bool
    cheque_number: str
    amount_reversed: Decimal = Decimal("0")
    deductions_reversed: int = 0
    batches_reverted: List[str] = Field(default_factory=list)
    voided_by: Optional[str] = None
    voided_at: Optional[datetime] = None
    warnings: List[str] = Field(default_factory=list)
    failed_step: Optional[str] = None
    error_message: Optional[str] = None


# =============================================================================
# Batch Reconciliation Report
# =============================================================================

class BatchReconciliationReport(BaseModel):
    """Reconciliation results for every cheque paid from a batch.

    Attributes:
        batch_id: Batch that was reconciled
        batch_number: Human batch number
        status: Overall status ("PASS", "WARN", or "FAIL")
        checks: Individual check results
        summary: Counts of passed checks, blocking issues and warnings
        metrics: Key amounts (receipt total, cheque totals)
    """
    batch_id: int
    batch_number: str
    status: str = Field(..., description="Overall status: PASS, WARN, or FAIL")
    checks: List[dict] = Field(default_factory=list)
    summary: dict = Field(default_factory=dict)
    metrics: dict = Field(default_factory=dict)


def money_text(value: Optional[Decimal]) -> Optional[str]:
    """Amount as a two-decimal string for JSON evidence."""
    if value is None:
        return None
    return str(round_money(value))
