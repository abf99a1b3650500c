"""
Price Table Validator Tests

Covers the per-cell progression rules, the all-zero exemption, negative
rates, time-premium settings, and the shape errors that signal a caller bug
rather than bad data.
"""

from datetime import date

import pytest


class TestProgressionRules:
    """Advance and final rates must not go down from one stage to the next."""

    def test_valid_table_has_no_issues(self, make_price_table):
        from pricing.validator import validate_price_table

        result = validate_price_table(make_price_table())

        assert result.valid is True
        assert result.flagged == {}
        assert result.issues == []

    def test_a2_below_a1_flags_only_a2(self, make_price_table):
        from models.results import PriceIssueCode
        from pricing.validator import validate_price_table

        table = make_price_table({(1, 1): ("0.80", "0.70", "0.90", "1.00")})
        result = validate_price_table(table)

        assert result.valid is False
        assert result.flagged == {"T1G1": ["A2"]}
        assert result.issues[0].code == PriceIssueCode.A2_BELOW_A1

    def test_a3_below_a2_flags_only_a3(self, make_price_table):
        """A1=1.00, A2=1.10, A3=1.05, FN=1.10: FN equals the highest advance, so only A3 is flagged."""
        from models.results import PriceIssueCode
        from pricing.validator import validate_price_table

        table = make_price_table({(2, 2): ("1.00", "1.10", "1.05", "1.10")})
        result = validate_price_table(table)

        assert result.flagged == {"T2G2": ["A3"]}
        assert result.is_flagged("T2G2", "A3")
        assert not result.is_flagged("T2G2", "FN")
        assert result.issues[0].code == PriceIssueCode.A3_BELOW_A2

    def test_final_below_highest_advance(self, make_price_table):
        from decimal import Decimal
        from models.results import PriceIssueCode
        from pricing.validator import validate_price_table

        table = make_price_table({(1, 3): ("0.40", "0.50", "0.70", "0.60")})
        result = validate_price_table(table)

        assert result.flagged == {"T1G3": ["FN"]}
        issue = result.issues[0]
        assert issue.code == PriceIssueCode.FINAL_BELOW_ADVANCE
        assert issue.value == Decimal("0.60")
        assert issue.limit == Decimal("0.70")

    def test_zero_advance_skips_comparison(self, make_price_table):
        """A zero A1 means that advance is not paid; A2 is not compared with it."""
        from pricing.validator import validate_price_table

        table = make_price_table({(3, 1): ("0", "0.50", "0.60", "0.70")})

        assert validate_price_table(table).valid is True

    def test_several_cells_flagged_together(self, make_price_table):
        from pricing.validator import validate_price_table

        table = make_price_table({
            (1, 1): ("0.80", "0.70", "0.90", "1.00"),
            (3, 2): ("0.40", "0.55", "0.65", "0.50"),
        })
        result = validate_price_table(table)

        assert set(result.flagged) == {"T1G1", "T3G2"}
        assert result.error_count == 2


class TestExemptionsAndNegatives:

    def test_all_zero_cell_never_flagged(self, make_price_table):
        """The unset cell stays clean even when other cells are invalid."""
        from pricing.validator import validate_price_table

        table = make_price_table({(1, 1): ("0.80", "0.70", "0.90", "1.00")})
        result = validate_price_table(table)

        assert "T3G3" not in result.flagged

    def test_negative_rate_in_otherwise_empty_cell(self, make_price_table):
        from models.results import PriceIssueCode
        from pricing.validator import validate_price_table

        table = make_price_table({(3, 3): ("0", "0", "0", "-0.10")})
        result = validate_price_table(table)

        assert result.valid is False
        assert result.flagged == {"T3G3": ["FN"]}
        assert [i.code for i in result.issues] == [PriceIssueCode.NEGATIVE_RATE]

    def test_negative_rate_still_checked_for_progression(self, make_price_table):
        from models.results import PriceIssueCode
        from pricing.validator import validate_price_table

        table = make_price_table({(2, 1): ("-0.10", "0.80", "0.70", "1.00")})
        result = validate_price_table(table)

        assert result.flagged == {"T2G1": ["A1", "A3"]}
        codes = {i.code for i in result.issues}
        assert codes == {PriceIssueCode.NEGATIVE_RATE, PriceIssueCode.A3_BELOW_A2}

    def test_validation_is_deterministic(self, make_price_table):
        from pricing.validator import validate_price_table

        table = make_price_table({
            (1, 1): ("0.80", "0.70", "0.90", "1.00"),
            (3, 3): ("0", "-1", "0", "0"),
        })

        assert validate_price_table(table) == validate_price_table(table)


class TestTimePremium:

    def test_premium_time_required_when_enabled(self, make_price_table):
        from models.results import PriceIssueCode
        from pricing.validator import TABLE_CELL, validate_price_table

        table = make_price_table(time_premium_enabled=True, premium_time="  ")
        result = validate_price_table(table)

        assert result.valid is False
        assert result.flagged == {TABLE_CELL: ["premium_time"]}
        assert result.issues[0].code == PriceIssueCode.PREMIUM_TIME_REQUIRED

    def test_negative_canadian_premium(self, make_price_table):
        from models.results import PriceIssueCode
        from pricing.validator import validate_price_table

        table = make_price_table(time_premium_enabled=True, premium_time="10:00", canadian_premium="-0.05")
        result = validate_price_table(table)

        assert [i.code for i in result.issues] == [PriceIssueCode.NEGATIVE_PREMIUM]

    def test_premium_settings_ignored_when_disabled(self, make_price_table):
        from pricing.validator import validate_price_table

        table = make_price_table(time_premium_enabled=False, premium_time=None, canadian_premium="-0.05")

        assert validate_price_table(table).valid is True


class TestShapeErrors:
    """Malformed tables are caller bugs and raise instead of returning issues."""

    def test_missing_cell_raises(self, make_price_table):
        from core.errors import PriceTableShapeError
        from pricing.validator import validate_price_table

        table = make_price_table()
        table = table.model_copy(update={"cells": table.cells[:8]})

        with pytest.raises(PriceTableShapeError, match="9 cells"):
            validate_price_table(table)

    def test_duplicate_cell_raises(self, make_price_table):
        from core.errors import PriceTableShapeError
        from pricing.validator import validate_price_table

        table = make_price_table()
        cells = table.cells[:8] + [table.cells[0]]

        with pytest.raises(PriceTableShapeError, match="Duplicate"):
            validate_price_table(table.model_copy(update={"cells": cells}))

    def test_out_of_range_grade_raises(self, make_price_table):
        from core.errors import PriceTableShapeError
        from models.records import PriceCell
        from pricing.validator import validate_price_table

        table = make_price_table()
        cells = table.cells[:8] + [PriceCell(tier=3, grade=4)]

        with pytest.raises(PriceTableShapeError, match="out of range"):
            validate_price_table(table.model_copy(update={"cells": cells}))

    def test_shape_error_is_a_value_error(self):
        from core.errors import PriceTableShapeError
        assert issubclass(PriceTableShapeError, ValueError)


class TestRawCellsAndLegacyColumns:

    def test_validate_cells_from_rows(self):
        from conftest import VALID_RATES
        from pricing.validator import validate_cells

        rows = [(t, g) + rates for (t, g), rates in VALID_RATES.items()]
        rows[0] = (1, 1, "1.00", "1.10", "1.05", "1.10")

        result = validate_cells(rows)

        assert result.flagged == {"T1G1": ["A3"]}

    def test_validate_cells_rejects_short_rows(self):
        from core.errors import PriceTableShapeError
        from pricing.validator import validate_cells

        with pytest.raises(PriceTableShapeError):
            validate_cells([(1, 1, "0.5", "0.6", "0.7")])

    def test_from_legacy_columns(self):
        from decimal import Decimal
        from conftest import VALID_RATES
        from models.records import PriceTable
        from pricing.validator import validate_price_table

        columns = {}
        for (tier, grade), (a1, a2, a3, final) in VALID_RATES.items():
            columns[f"CL{tier}G{grade}A1"] = a1
            columns[f"CL{tier}G{grade}A2"] = a2
            columns[f"cl{tier}g{grade}a3"] = a3
            columns[f"CL{tier}G{grade}FN"] = final

        table = PriceTable.from_legacy_columns(columns, "BLUEBERRY", "FRESH", date(2025, 6, 1))

        assert len(table.cells) == 9
        assert table.cell(2, 1).final == Decimal("1.05")
        assert validate_price_table(table).valid is True

    def test_from_legacy_columns_missing_column(self):
        from core.errors import PriceTableShapeError
        from models.records import PriceTable

        with pytest.raises(PriceTableShapeError, match="CL1G1A1"):
            PriceTable.from_legacy_columns({}, "BLUEBERRY", "FRESH", date(2025, 6, 1))
