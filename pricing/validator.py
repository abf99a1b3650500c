"""Price table validation.

Exposes:
- validate_price_table(table) -> PriceTableValidation
- validate_cells(rows) -> PriceTableValidation

Rules, applied to each (tier, grade) cell independently:

- A cell whose four rates are all zero has not been priced and is skipped.
- A2 is flagged when A1 > 0, A2 > 0 and A2 < A1.
- A3 is flagged when A2 > 0, A3 > 0 and A3 < A2.
- FN is flagged when max(A1, A2, A3) > 0 and FN < max(A1, A2, A3).
- Any negative rate is flagged, whether or not the cell is otherwise unset.

Problems with the data are returned, never raised. A table with the wrong
shape (missing, duplicate or out-of-range cells) is a caller bug and raises
``PriceTableShapeError``.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from core.errors import PriceTableShapeError
from models.records import GRADES, TIERS, PriceCell, PriceTable, RateType, cell_sort_key
from models.results import PriceIssueCode, PriceTableValidation, PriceValidationIssue


TABLE_CELL = "TABLE"
EXPECTED_CELLS = len(TIERS) * len(GRADES)


# =============================================================================
# Shape Checks
# =============================================================================

def check_shape(cells: Sequence[PriceCell]) -> List[PriceCell]:
    """Verify there is exactly one cell per tier/grade and return them in order.

    Raises:
        PriceTableShapeError: On wrong cell count, or a missing, duplicate or
            out-of-range tier/grade
    """
    if len(cells) != EXPECTED_CELLS:
        raise PriceTableShapeError(
            f"Price table must have {EXPECTED_CELLS} cells, got {len(cells)}"
        )

    seen: Dict[tuple, PriceCell] = {}
    for cell in cells:
        if cell.tier not in TIERS or cell.grade not in GRADES:
            raise PriceTableShapeError(
                f"Cell tier {cell.tier}, grade {cell.grade} is out of range"
            )
        key = (cell.tier, cell.grade)
        if key in seen:
            raise PriceTableShapeError(f"Duplicate cell for tier {cell.tier}, grade {cell.grade}")
        seen[key] = cell

    return sorted(cells, key=cell_sort_key)


# =============================================================================
# Cell Checks
# =============================================================================

def _issue(
    cell: PriceCell,
    rate_type: RateType,
    code: PriceIssueCode,
    message: str,
    value: Decimal,
    limit: Optional[Decimal] = None,
) -> PriceValidationIssue:
    return PriceValidationIssue(
        cell=cell.cell_id,
        field=rate_type.value,
        code=code,
        message=message,
        value=value,
        limit=limit,
    )


def check_negative_rates(cell: PriceCell) -> List[PriceValidationIssue]:
    """Flag every negative rate in the cell."""
    issues = []
    for rate_type, value in cell.rates().items():
        if value < 0:
            issues.append(_issue(
                cell, rate_type, PriceIssueCode.NEGATIVE_RATE,
                f"{cell.cell_id} {rate_type.value} is negative ({value})",
                value,
                Decimal("0"),
            ))
    return issues


def check_progression(cell: PriceCell) -> List[PriceValidationIssue]:
    """Flag advance or final rates that go down from the previous stage."""
    if cell.is_unset:
        return []

    issues = []
    a1, a2, a3, final = cell.a1, cell.a2, cell.a3, cell.final

    if a1 > 0 and a2 > 0 and a2 < a1:
        issues.append(_issue(
            cell, RateType.A2, PriceIssueCode.A2_BELOW_A1,
            f"{cell.cell_id} A2 ({a2}) is below A1 ({a1})",
            a2, a1,
        ))

    if a2 > 0 and a3 > 0 and a3 < a2:
        issues.append(_issue(
            cell, RateType.A3, PriceIssueCode.A3_BELOW_A2,
            f"{cell.cell_id} A3 ({a3}) is below A2 ({a2})",
            a3, a2,
        ))

    highest_advance = max(a1, a2, a3)
    if highest_advance > 0 and final < highest_advance:
        issues.append(_issue(
            cell, RateType.FINAL, PriceIssueCode.FINAL_BELOW_ADVANCE,
            f"{cell.cell_id} final ({final}) is below the highest advance ({highest_advance})",
            final, highest_advance,
        ))

    return issues


def check_time_premium(table: PriceTable) -> List[PriceValidationIssue]:
    """Table-level checks for the time premium settings."""
    if not table.time_premium_enabled:
        return []

    issues = []
    if not (table.premium_time or "").strip():
        issues.append(PriceValidationIssue(
            cell=TABLE_CELL,
            field="premium_time",
            code=PriceIssueCode.PREMIUM_TIME_REQUIRED,
            message="Premium time is required when the time premium is enabled",
        ))
    if table.canadian_premium < 0:
        issues.append(PriceValidationIssue(
            cell=TABLE_CELL,
            field="canadian_premium",
            code=PriceIssueCode.NEGATIVE_PREMIUM,
            message=f"Canadian premium is negative ({table.canadian_premium})",
            value=table.canadian_premium,
            limit=Decimal("0"),
        ))
    return issues


# =============================================================================
# Entry Points
# =============================================================================

def _collect(issues: Iterable[PriceValidationIssue]) -> PriceTableValidation:
    issues = list(issues)
    flagged: Dict[str, List[str]] = {}
    for issue in issues:
        fields = flagged.setdefault(issue.cell, [])
        if issue.field and issue.field not in fields:
            fields.append(issue.field)
    return PriceTableValidation(valid=not issues, flagged=flagged, issues=issues)


def _validate(cells: Sequence[PriceCell], table: Optional[PriceTable] = None) -> PriceTableValidation:
    issues: List[PriceValidationIssue] = []
    for cell in check_shape(cells):
        issues.extend(check_negative_rates(cell))
        issues.extend(check_progression(cell))
    if table is not None:
        issues.extend(check_time_premium(table))
    return _collect(issues)


def validate_price_table(table: PriceTable) -> PriceTableValidation:
    """Decide whether a price table may be saved.

    Args:
        table: Price table with nine tier/grade cells

    Returns:
        PriceTableValidation with the flagged fields per cell and one issue
        per flagged value

    Raises:
        PriceTableShapeError: If the table does not have exactly one cell
            per tier/grade
    """
    return _validate(table.cells, table)


def validate_cells(rows: Iterable[Sequence]) -> PriceTableValidation:
    """Validate raw ``(tier, grade, a1, a2, a3, final)`` rows.

    Raises:
        PriceTableShapeError: If a row does not have six values, or the rows
            do not cover each tier/grade exactly once
    """
    cells = []
    for row in rows:
        if len(row) != 6:
            raise PriceTableShapeError(
                f"Price row must be (tier, grade, a1, a2, a3, final), got {len(row)} values"
            )
        tier, grade, a1, a2, a3, final = row
        cells.append(PriceCell(tier=tier, grade=grade, a1=a1, a2=a2, a3=a3, final=final))
    return _validate(cells)
