"""Payment records - value-like models shared by the pricing and reconciliation core.

Records reference each other by identifier only (a receipt carries a
``batch_id``, a cheque carries ``batch_ids``), never by embedded objects.
Providers look the related records up when the engine asks for them.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated

from core.errors import InvalidRequestError, PriceTableShapeError


# =============================================================================
# Value Parsers
# =============================================================================

def _parse_decimal(value):
    """Parse decimal from various formats (string with $ or commas, floats, etc.)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        s = s.replace("$", "").replace(",", "")
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        return Decimal(s)
    return value


def _parse_date(value):
    """Parse date from ISO or North American formats."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%Y/%m/%d"):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
        raise ValueError(f"Cannot parse date: {s}")
    return value


DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
DateValue = Annotated[date, BeforeValidator(_parse_date)]


class RecordBase(BaseModel):
    """Base model for all payment records."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)


# =============================================================================
# Status Enums
# =============================================================================

class RateType(str, Enum):
    """The four rates held by every price cell."""
    A1 = "A1"
    A2 = "A2"
    A3 = "A3"
    FINAL = "FN"


class ReceiptStatus(str, Enum):
    ACTIVE = "Active"
    VOIDED = "Voided"


class BatchStatus(str, Enum):
    DRAFT = "Draft"
    APPROVED = "Approved"
    FINALIZED = "Finalized"
    POSTED = "Posted"
    PAID = "Paid"

    @property
    def is_paid_out(self) -> bool:
        """Batches in these states have had cheques issued against them."""
        return self in (BatchStatus.FINALIZED, BatchStatus.POSTED, BatchStatus.PAID)


class ChequeStatus(str, Enum):
    GENERATED = "Generated"
    ISSUED = "Issued"
    PRINTED = "Printed"
    VOIDED = "Voided"
    CLEARED = "Cleared"

    @property
    def can_be_voided(self) -> bool:
        return self in (ChequeStatus.GENERATED, ChequeStatus.ISSUED, ChequeStatus.PRINTED)


# =============================================================================
# Identifiers
# =============================================================================

_CHEQUE_KEY_PATTERN = re.compile(r"^\s*([A-Za-z0-9]+)-(\d+)\s*$")


class ChequeKey(RecordBase):
    """Composite cheque identifier: series + number (e.g. ``A-1001``)."""
    series: str
    number: int

    def __str__(self) -> str:
        return f"{self.series}-{self.number}"

    @classmethod
    def parse(cls, text: str) -> "ChequeKey":
        """Parse ``SERIES-NUMBER`` text.

        Raises:
            InvalidRequestError: If the text is not a cheque key
        """
        match = _CHEQUE_KEY_PATTERN.match(text or "")
        if not match:
            raise InvalidRequestError(f"Invalid cheque key {text!r}; expected SERIES-NUMBER")
        return cls(series=match.group(1).upper(), number=int(match.group(2)))


# =============================================================================
# Price Tables
# =============================================================================

TIERS = (1, 2, 3)
GRADES = (1, 2, 3)

_LEGACY_COLUMN = "CL{tier}G{grade}{rate}"


class PriceCell(RecordBase):
    """Rates for one (tier, grade) combination of a price table."""
    tier: int
    grade: int
    a1: DecimalValue = Decimal("0")
    a2: DecimalValue = Decimal("0")
    a3: DecimalValue = Decimal("0")
    final: DecimalValue = Decimal("0")

    @property
    def cell_id(self) -> str:
        return f"T{self.tier}G{self.grade}"

    @property
    def is_unset(self) -> bool:
        """All four rates zero: the cell has not been priced."""
        return self.a1 == 0 and self.a2 == 0 and self.a3 == 0 and self.final == 0

    def rate(self, rate_type: RateType) -> Decimal:
        return {
            RateType.A1: self.a1,
            RateType.A2: self.a2,
            RateType.A3: self.a3,
            RateType.FINAL: self.final,
        }[RateType(rate_type)]

    def rates(self) -> Dict[RateType, Decimal]:
        return {rate_type: self.rate(rate_type) for rate_type in RateType}


class PriceTable(RecordBase):
    """A grower price schedule for one product/process from an effective date.

    Holds nine cells (3 tiers x 3 grades), each with advance 1-3 and final
    rates, plus the optional time premium settings of the price editor.
    """
    product_id: str
    process_id: str
    effective_date: DateValue
    price_level: Optional[int] = None
    cells: List[PriceCell] = Field(default_factory=list)

    time_premium_enabled: bool = False
    premium_time: Optional[str] = None
    canadian_premium: DecimalValue = Decimal("0")

    def cell(self, tier: int, grade: int) -> PriceCell:
        """Get the cell for a tier/grade.

        Raises:
            PriceTableShapeError: If the table has no such cell
        """
        for cell in self.cells:
            if cell.tier == tier and cell.grade == grade:
                return cell
        raise PriceTableShapeError(f"Price table has no cell for tier {tier}, grade {grade}")

    @classmethod
    def from_legacy_columns(
        cls,
        columns: Mapping[str, Any],
        product_id: str,
        process_id: str,
        effective_date: Any,
        **extra: Any,
    ) -> "PriceTable":
        """Build a table from the 36 legacy ``CL{tier}G{grade}{A1|A2|A3|FN}`` columns.

        Column names are matched case-insensitively.

        Raises:
            PriceTableShapeError: If any of the 36 columns is missing
        """
        normalized = {str(k).upper(): v for k, v in columns.items()}
        missing: List[str] = []
        cells: List[PriceCell] = []

        for tier in TIERS:
            for grade in GRADES:
                values: Dict[str, Any] = {}
                for rate_type, field_name in (
                    (RateType.A1, "a1"),
                    (RateType.A2, "a2"),
                    (RateType.A3, "a3"),
                    (RateType.FINAL, "final"),
                ):
                    column = _LEGACY_COLUMN.format(tier=tier, grade=grade, rate=rate_type.value)
                    if column not in normalized:
                        missing.append(column)
                        continue
                    values[field_name] = normalized[column]
                if len(values) == 4:
                    cells.append(PriceCell(tier=tier, grade=grade, **values))

        if missing:
            raise PriceTableShapeError(f"Missing price columns: {', '.join(missing)}")

        return cls(
            product_id=product_id,
            process_id=process_id,
            effective_date=effective_date,
            cells=cells,
            **extra,
        )


# =============================================================================
# Receipts, Batches, Deductions, Cheques
# =============================================================================

class Receipt(RecordBase):
    """A grower delivery as recorded at intake."""
    receipt_id: int
    receipt_number: str
    grower_id: str
    grower_name: Optional[str] = None
    receipt_date: Optional[DateValue] = None

    product_id: Optional[str] = None
    process_id: Optional[str] = None
    grade: int = 1

    gross_weight: DecimalValue = Decimal("0")
    tare_weight: DecimalValue = Decimal("0")
    dock_percentage: DecimalValue = Decimal("0")
    final_weight: DecimalValue = Decimal("0")
    amount: DecimalValue = Decimal("0")

    status: ReceiptStatus = ReceiptStatus.ACTIVE
    batch_id: Optional[int] = None

    voided_reason: Optional[str] = None
    voided_by: Optional[str] = None
    voided_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == ReceiptStatus.ACTIVE


class ReceiptLine(RecordBase):
    """A receipt as it appears on a cheque: one paid line item."""
    receipt_id: int
    receipt_number: str
    batch_id: Optional[int] = None
    grower_id: Optional[str] = None
    product_name: Optional[str] = None
    process_name: Optional[str] = None
    grade: Optional[int] = None
    weight: DecimalValue = Decimal("0")
    price_per_pound: DecimalValue = Decimal("0")
    amount: DecimalValue = Decimal("0")
    status: ReceiptStatus = ReceiptStatus.ACTIVE


class PaymentBatch(RecordBase):
    """Receipts assembled for payment in one run."""
    batch_id: int
    batch_number: str
    batch_date: Optional[DateValue] = None
    status: BatchStatus = BatchStatus.DRAFT
    subtotal: DecimalValue = Decimal("0")
    payment_type: Optional[str] = None


class BatchReassessment(RecordBase):
    """What the batch provider decided after a void touched the batch."""
    batch_id: int
    reverted: bool
    batch_number: str
    status: BatchStatus


class AdvanceDeduction(RecordBase):
    """Repayment, on a later cheque, of an earlier advance cheque."""
    deduction_id: int
    advance_cheque_id: int
    advance_cheque_number: Optional[str] = None
    original_amount: DecimalValue = Decimal("0")
    deduction_amount: DecimalValue = Decimal("0")
    deduction_date: Optional[DateValue] = None
    batch_id: Optional[int] = None


class Cheque(RecordBase):
    """An issued grower cheque.

    ``net_amount`` is the authoritative recorded amount; it is never
    overwritten by reconciliation.
    """
    key: ChequeKey
    cheque_date: DateValue
    grower_id: str
    payee_name: Optional[str] = None
    status: ChequeStatus = ChequeStatus.ISSUED
    gross_amount: Optional[DecimalValue] = None
    net_amount: DecimalValue = Decimal("0")
    batch_ids: List[int] = Field(default_factory=list)


class ChequeSummary(RecordBase):
    """A cheque as listed in a grower's payment history."""
    key: ChequeKey
    cheque_date: DateValue
    net_amount: DecimalValue = Decimal("0")
    batch_number: Optional[str] = None
    status: ChequeStatus = ChequeStatus.ISSUED


def cell_sort_key(cell: PriceCell) -> Tuple[int, int]:
    return (cell.tier, cell.grade)
