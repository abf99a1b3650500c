"""
Cheque Breakdown Tests

Runs the engine over the seeded demo season. Cheque A-1001 pays grower G001
for R-1001 (340.00) and R-1002 (192.18) from batch B-2025-001, less a 150.00
advance repayment, for a recorded net of 382.18.
"""

import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest


def _key(text="A-1001"):
    from models.records import ChequeKey
    return ChequeKey.parse(text)


class TestBreakdownTotals:

    def test_reconciling_cheque(self, engine):
        breakdown = asyncio.run(engine.build_cheque_breakdown("A-1001"))

        assert breakdown.header.cheque_number == "A-1001"
        assert breakdown.header.grower_id == "G001"
        assert breakdown.summary.total_gross == Decimal("532.18")
        assert breakdown.summary.total_deductions == Decimal("150.00")
        assert breakdown.summary.net_amount == Decimal("382.18")
        assert breakdown.summary.recorded_amount == Decimal("382.18")
        assert breakdown.warnings == []
        assert breakdown.has_mismatch is False
        assert breakdown.is_complete is True

    def test_batch_sections_and_lines(self, engine):
        breakdown = asyncio.run(engine.build_cheque_breakdown("A-1001"))

        assert len(breakdown.batches) == 1
        section = breakdown.batches[0]
        assert section.batch_number == "B-2025-001"
        assert [line.receipt_number for line in section.receipts] == ["R-1001", "R-1002"]
        assert section.subtotal == Decimal("532.18")

    def test_deduction_lines(self, engine):
        breakdown = asyncio.run(engine.build_cheque_breakdown("A-1001"))

        assert breakdown.deduction_source == "provider"
        assert len(breakdown.deductions) == 1
        assert breakdown.deductions[0].deduction_amount == Decimal("150.00")
        assert "ADV-501" in breakdown.deductions[0].description

    def test_recorded_amount_mismatch(self, engine, store):
        """Recorded 380.00 against computed 382.18 is reported, never corrected."""
        from models.results import WarningKind

        key = _key()
        store.cheques[key] = store.cheques[key].model_copy(update={"net_amount": Decimal("380.00")})

        breakdown = asyncio.run(engine.build_cheque_breakdown(key))

        assert breakdown.summary.net_amount == Decimal("382.18")
        assert breakdown.header.recorded_amount == Decimal("380.00")
        mismatch = breakdown.mismatch
        assert mismatch is not None
        assert mismatch.kind == WarningKind.RECONCILIATION_MISMATCH
        assert mismatch.computed == Decimal("382.18")
        assert mismatch.recorded == Decimal("380.00")

    def test_difference_within_tolerance_is_not_a_mismatch(self, engine, store):
        key = _key()
        store.cheques[key] = store.cheques[key].model_copy(update={"net_amount": Decimal("382.17")})

        breakdown = asyncio.run(engine.build_cheque_breakdown(key))

        assert breakdown.has_mismatch is False

    def test_history_and_season_total(self, engine):
        breakdown = asyncio.run(engine.build_cheque_breakdown("A-1001"))

        assert [str(p.key) for p in breakdown.history.payments] == ["A-998"]
        assert breakdown.history.payments[0].net_amount == Decimal("276.00")
        assert breakdown.history.season_total == Decimal("658.18")


class TestPrefetchedDeductions:

    def test_prefetched_list_used_without_provider_call(self, engine, store):
        from models.records import AdvanceDeduction

        store.unavailable.add("get_deductions_for_cheque")
        prefetched = [AdvanceDeduction(
            deduction_id=99,
            advance_cheque_id=501,
            original_amount=Decimal("150.00"),
            deduction_amount=Decimal("150.00"),
        )]

        breakdown = asyncio.run(engine.build_cheque_breakdown("A-1001", deductions=prefetched))

        assert breakdown.deduction_source == "prefetched"
        assert breakdown.warnings == []
        assert breakdown.summary.net_amount == Decimal("382.18")

    def test_empty_prefetched_list_falls_back_to_provider(self, engine):
        breakdown = asyncio.run(engine.build_cheque_breakdown("A-1001", deductions=[]))

        assert breakdown.deduction_source == "provider"
        assert breakdown.summary.total_deductions == Decimal("150.00")


class TestDegradedSources:
    """Unavailable providers leave their section empty and add a warning."""

    def test_receipts_unavailable(self, engine, store):
        from models.results import WarningKind

        store.unavailable.add("get_receipts_for_cheque")

        breakdown = asyncio.run(engine.build_cheque_breakdown("A-1001"))

        sources = [w.source for w in breakdown.warnings if w.kind == WarningKind.INCOMPLETE_DATA]
        assert "receipts" in sources
        assert breakdown.batches[0].receipts == []
        assert breakdown.batches[0].subtotal == Decimal("0")
        assert breakdown.summary.net_amount == Decimal("-150.00")
        assert breakdown.has_mismatch is True
        assert breakdown.is_complete is False

    def test_failed_receipt_source_reported_once(self, engine, store):
        from models.results import WarningKind

        store.unavailable.add("get_receipts_for_cheque")

        breakdown = asyncio.run(engine.build_cheque_breakdown("A-998"))

        incomplete = [w for w in breakdown.warnings if w.kind == WarningKind.INCOMPLETE_DATA]
        assert [w.source for w in incomplete] == ["receipts"]
        assert not any("No receipts found" in w.message for w in breakdown.warnings)

    def test_deductions_unavailable(self, engine, store):
        store.unavailable.add("get_deductions_for_cheque")

        breakdown = asyncio.run(engine.build_cheque_breakdown("A-1001"))

        assert breakdown.deduction_source == "unavailable"
        assert breakdown.deductions == []
        assert any(w.source == "deductions" for w in breakdown.warnings)
        assert breakdown.summary.net_amount == Decimal("532.18")

    def test_history_unavailable(self, engine, store):
        store.unavailable.add("get_prior_cheques")

        breakdown = asyncio.run(engine.build_cheque_breakdown("A-1001"))

        assert breakdown.history.payments == []
        assert breakdown.history.season_total is None
        assert [w.source for w in breakdown.warnings] == ["history"]

    def test_batch_header_unavailable(self, engine, store):
        store.unavailable.add("get_batch")

        breakdown = asyncio.run(engine.build_cheque_breakdown("A-1001"))

        section = breakdown.batches[0]
        assert section.batch_id == 1
        assert section.batch_number == "Unknown"
        assert section.subtotal == Decimal("532.18")
        assert any(w.source == "batch 1" for w in breakdown.warnings)

    def test_warnings_counted_in_metrics(self, engine, store):
        from core.observability.metrics import get_metrics

        store.unavailable.add("get_prior_cheques")
        asyncio.run(engine.build_cheque_breakdown("A-1001"))

        assert get_metrics().get_summary()["warnings"]["INCOMPLETE_DATA"] == 1


class TestBatchGrouping:

    def test_line_without_batch_goes_to_first_batch(self, engine, store):
        from models.records import Receipt

        store.add_receipt(Receipt(
            receipt_id=2001, receipt_number="R-2001", grower_id="G001",
            final_weight=Decimal("10"), amount=Decimal("11.00"), batch_id=None,
        ))
        store.cheque_receipts[_key()].append(2001)

        breakdown = asyncio.run(engine.build_cheque_breakdown("A-1001"))

        assert len(breakdown.batches) == 1
        assert "R-2001" in [line.receipt_number for line in breakdown.batches[0].receipts]
        assert breakdown.batches[0].subtotal == Decimal("543.18")

    def test_line_from_unlinked_batch_gets_own_section(self, engine, store):
        from models.results import WarningKind

        store.cheque_receipts[_key()].append(950)

        breakdown = asyncio.run(engine.build_cheque_breakdown("A-1001"))

        assert [b.batch_number for b in breakdown.batches] == ["B-2025-001", "B-2024-014"]
        assert breakdown.batches[1].subtotal == Decimal("276.00")
        unlinked = [w for w in breakdown.warnings if w.source == "batch 2"]
        assert unlinked and unlinked[0].kind == WarningKind.INCOMPLETE_DATA

    def test_cheque_without_batches(self, engine, store):
        from models.records import Cheque, ChequeKey, Receipt

        store.add_receipt(Receipt(
            receipt_id=3001, receipt_number="R-3001", grower_id="G002",
            final_weight=Decimal("100"), amount=Decimal("80.00"),
        ))
        store.add_cheque(
            Cheque(
                key=ChequeKey(series="B", number=7),
                cheque_date=date(2025, 8, 1),
                grower_id="G002",
                net_amount=Decimal("80.00"),
            ),
            receipt_ids=[3001],
        )

        breakdown = asyncio.run(engine.build_cheque_breakdown("B-7"))

        assert len(breakdown.batches) == 1
        assert breakdown.batches[0].batch_id is None
        assert breakdown.batches[0].batch_number == "Unknown"
        assert breakdown.summary.net_amount == Decimal("80.00")
        assert breakdown.has_mismatch is False

    def test_linked_batch_without_receipts_warns(self, engine, store):
        key = _key()
        store.cheques[key] = store.cheques[key].model_copy(update={"batch_ids": [1, 2]})

        breakdown = asyncio.run(engine.build_cheque_breakdown(key))

        empty = breakdown.batches[1]
        assert empty.batch_number == "B-2024-014"
        assert empty.subtotal == Decimal("0")
        assert any("No receipts found for batch B-2024-014" in w.message for w in breakdown.warnings)


class TestHistoryOrdering:
    """Provider order is not trusted; the current cheque is always dropped."""

    def test_sorted_ascending_and_current_excluded(self):
        from models.records import Cheque, ChequeKey, ChequeSummary
        from reconciliation.breakdown import ChequeBreakdownBuilder

        current = ChequeKey(series="A", number=1001)
        cheques = MagicMock()
        cheques.get_cheque = AsyncMock(return_value=Cheque(
            key=current, cheque_date=date(2025, 7, 15), grower_id="G001", net_amount=Decimal("0"),
        ))
        receipts = MagicMock()
        receipts.get_receipts_for_cheque = AsyncMock(return_value=[])
        batches = MagicMock()
        deductions = MagicMock()
        deductions.get_deductions_for_cheque = AsyncMock(return_value=[])
        history = MagicMock()
        history.get_prior_cheques = AsyncMock(return_value=[
            ChequeSummary(key=ChequeKey(series="A", number=900), cheque_date=date(2025, 5, 1), net_amount=Decimal("20")),
            ChequeSummary(key=current, cheque_date=date(2025, 7, 15), net_amount=Decimal("0")),
            ChequeSummary(key=ChequeKey(series="A", number=700), cheque_date=date(2024, 9, 1), net_amount=Decimal("10")),
        ])
        history.get_season_total = AsyncMock(return_value=Decimal("30"))

        builder = ChequeBreakdownBuilder(cheques, receipts, batches, deductions, history)
        breakdown = asyncio.run(builder.build(current))

        assert [p.key.number for p in breakdown.history.payments] == [700, 900]
        assert breakdown.history.season_total == Decimal("30")
        history.get_prior_cheques.assert_awaited_once_with("G001", current)
        batches.get_batch.assert_not_called()


class TestErrorsAndAudit:

    def test_missing_cheque(self, engine):
        from core.errors import NotFoundError

        with pytest.raises(NotFoundError, match="Z-1"):
            asyncio.run(engine.build_cheque_breakdown("Z-1"))

    def test_malformed_cheque_key(self, engine):
        from core.errors import InvalidRequestError

        with pytest.raises(InvalidRequestError):
            asyncio.run(engine.build_cheque_breakdown("not-a-cheque"))

    def test_audit_events(self, engine, store, audit):
        from core.audit.events import AuditEventType

        key = _key()
        store.cheques[key] = store.cheques[key].model_copy(update={"net_amount": Decimal("380.00")})
        asyncio.run(engine.build_cheque_breakdown(key))

        built = audit.query(event_type=AuditEventType.BREAKDOWN_BUILT.value, cheque_id="A-1001")
        mismatched = audit.query(event_type=AuditEventType.RECONCILIATION_MISMATCH.value, cheque_id="A-1001")
        assert len(built) == 1
        assert len(mismatched) == 1
        assert mismatched[0].details["computed"] == "382.18"

    def test_operation_metrics(self, engine):
        from core.errors import NotFoundError
        from core.observability.metrics import get_metrics

        asyncio.run(engine.build_cheque_breakdown("A-1001"))
        with pytest.raises(NotFoundError):
            asyncio.run(engine.build_cheque_breakdown("A-1"))

        ops = get_metrics().get_summary()["operations"]["by_name"]["build_cheque_breakdown"]
        assert ops["started"] == 2
        assert ops["completed"] == 1
        assert ops["failed"] == 1
