"""
SQLite Payment Store Tests

Runs the engine against a seeded temporary database: reads, conditional
updates, advance deduction bookkeeping, price table persistence, and
rollback of a void that fails part way through.
"""

import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest


class TestSqliteReads:

    def test_seeded_cheque_round_trip(self, sqlite_store):
        from models.records import ChequeKey, ChequeStatus

        cheque = asyncio.run(sqlite_store.get_cheque(ChequeKey.parse("A-1001")))

        assert cheque.grower_id == "G001"
        assert cheque.status == ChequeStatus.ISSUED
        assert cheque.gross_amount == Decimal("532.18")
        assert cheque.net_amount == Decimal("382.18")
        assert cheque.batch_ids == [1]

    def test_missing_cheque(self, sqlite_store):
        from models.records import ChequeKey
        assert asyncio.run(sqlite_store.get_cheque(ChequeKey.parse("Z-1"))) is None

    def test_receipt_carries_grower_name(self, sqlite_store):
        receipt = asyncio.run(sqlite_store.get_receipt(1003))

        assert receipt.grower_name == "Sumas Prairie Farms"
        assert receipt.amount == Decimal("1024.10")
        assert receipt.final_weight == Decimal("931")

    def test_deductions_name_the_advance_cheque(self, sqlite_store):
        from models.records import ChequeKey

        deductions = asyncio.run(sqlite_store.get_deductions_for_cheque(ChequeKey.parse("A-1001")))

        assert len(deductions) == 1
        assert deductions[0].advance_cheque_number == "ADV-501"
        assert deductions[0].deduction_amount == Decimal("150.00")

    def test_prior_cheques_exclude_current(self, sqlite_store):
        from models.records import ChequeKey

        prior = asyncio.run(sqlite_store.get_prior_cheques("G001", ChequeKey.parse("A-1001")))

        assert [str(p.key) for p in prior] == ["A-998"]
        assert prior[0].batch_number == "B-2024-014"

    def test_breakdown_matches_memory_store(self, sqlite_store, engine):
        from reconciliation.engine import ReconciliationEngine

        sqlite_engine = ReconciliationEngine.from_store(sqlite_store)

        from_sqlite = asyncio.run(sqlite_engine.build_cheque_breakdown("A-1001"))
        from_memory = asyncio.run(engine.build_cheque_breakdown("A-1001"))

        assert from_sqlite.summary == from_memory.summary
        assert from_sqlite.warnings == []
        assert from_sqlite.history.season_total == Decimal("658.18")


class TestSqliteWrites:

    def test_conditional_receipt_update(self, sqlite_store):
        from models.records import ReceiptStatus

        first = asyncio.run(sqlite_store.set_receipt_status(1001, ReceiptStatus.VOIDED, "Duplicate", "jsmith"))
        second = asyncio.run(sqlite_store.set_receipt_status(1001, ReceiptStatus.VOIDED, "Duplicate", "jsmith"))

        assert first is True
        assert second is False
        receipt = asyncio.run(sqlite_store.get_receipt(1001))
        assert receipt.voided_by == "jsmith"
        assert receipt.voided_at is not None

    def test_conditional_cheque_update(self, sqlite_store):
        from models.records import ChequeKey, ChequeStatus

        key = ChequeKey.parse("A-1002")
        expected = [ChequeStatus.ISSUED]

        assert asyncio.run(sqlite_store.set_cheque_status(key, ChequeStatus.VOIDED, expected, "Lost", "jsmith")) is True
        assert asyncio.run(sqlite_store.set_cheque_status(key, ChequeStatus.VOIDED, expected, "Lost", "jsmith")) is False

    def test_reassess_reverts_and_recomputes(self, sqlite_store):
        from models.records import BatchStatus, ReceiptStatus

        asyncio.run(sqlite_store.set_receipt_status(1003, ReceiptStatus.VOIDED, "Wrong grower", "jsmith"))
        reassessment = asyncio.run(sqlite_store.reassess_batch_status(1, 1003))

        assert reassessment.reverted is True
        assert reassessment.status == BatchStatus.DRAFT
        batch = asyncio.run(sqlite_store.get_batch(1))
        assert batch.subtotal == Decimal("532.18")

    def test_reassess_missing_batch(self, sqlite_store):
        from core.errors import NotFoundError

        with pytest.raises(NotFoundError):
            asyncio.run(sqlite_store.reassess_batch_status(404, None))

    def test_reverse_deductions_frees_advance(self, sqlite_store):
        from models.records import ChequeKey

        key = ChequeKey.parse("A-1001")
        assert sqlite_store.advance_deducted_by(501) == key

        count = asyncio.run(sqlite_store.reverse_deductions(key, "jsmith"))

        assert count == 1
        assert sqlite_store.advance_deducted_by(501) is None
        assert asyncio.run(sqlite_store.get_deductions_for_cheque(key)) == []
        assert asyncio.run(sqlite_store.reverse_deductions(key, "jsmith")) == 0


class TestSqliteVoids:

    def test_void_receipt_commits(self, sqlite_store):
        from models.records import BatchStatus, ReceiptStatus
        from reconciliation.engine import ReconciliationEngine

        engine = ReconciliationEngine.from_store(sqlite_store)
        result = asyncio.run(engine.void_receipt(1002, "Duplicate entry", "jsmith"))

        assert result.success is True
        assert result.batch_reverted is True
        assert asyncio.run(sqlite_store.get_receipt(1002)).status == ReceiptStatus.VOIDED
        batch = asyncio.run(sqlite_store.get_batch(1))
        assert batch.status == BatchStatus.DRAFT
        assert batch.subtotal == Decimal("1364.10")

    def test_failed_reassessment_rolls_back(self, sqlite_store):
        from core.errors import ProviderUnavailableError
        from models.records import BatchStatus, ReceiptStatus
        from reconciliation.engine import ReconciliationEngine

        sqlite_store.reassess_batch_status = AsyncMock(
            side_effect=ProviderUnavailableError("sqlite", "database is locked")
        )
        engine = ReconciliationEngine.from_store(sqlite_store)

        result = asyncio.run(engine.void_receipt(1002, "Duplicate entry", "jsmith"))

        assert result.success is False
        assert result.failed_step == "reassess_batch"
        assert asyncio.run(sqlite_store.get_receipt(1002)).status == ReceiptStatus.ACTIVE
        assert asyncio.run(sqlite_store.get_batch(1)).status == BatchStatus.FINALIZED

    def test_void_cheque_commits(self, sqlite_store):
        from models.records import ChequeKey, ChequeStatus
        from reconciliation.engine import ReconciliationEngine

        engine = ReconciliationEngine.from_store(sqlite_store)
        result = asyncio.run(engine.void_cheque("A-1001", "Printed on wrong stock", "jsmith"))

        assert result.success is True
        assert result.deductions_reversed == 1
        cheque = asyncio.run(sqlite_store.get_cheque(ChequeKey.parse("A-1001")))
        assert cheque.status == ChequeStatus.VOIDED
        assert sqlite_store.advance_deducted_by(501) is None

    def test_failed_cheque_void_keeps_deductions(self, sqlite_store):
        from core.errors import ProviderUnavailableError
        from models.records import ChequeKey, ChequeStatus
        from reconciliation.engine import ReconciliationEngine

        sqlite_store.reassess_batch_status = AsyncMock(
            side_effect=ProviderUnavailableError("sqlite", "database is locked")
        )
        engine = ReconciliationEngine.from_store(sqlite_store)
        key = ChequeKey.parse("A-1001")

        result = asyncio.run(engine.void_cheque(key, "Printed on wrong stock", "jsmith"))

        assert result.success is False
        assert asyncio.run(sqlite_store.get_cheque(key)).status == ChequeStatus.ISSUED
        assert len(asyncio.run(sqlite_store.get_deductions_for_cheque(key))) == 1
        assert sqlite_store.advance_deducted_by(501) == key


class TestSqlitePriceTables:

    def test_seeded_table_by_date(self, sqlite_store):
        table = sqlite_store.get_price_table("BLUEBERRY", "FRESH", date(2025, 7, 1))

        assert table is not None
        assert len(table.cells) == 9
        assert table.cell(1, 1).final == Decimal("1.10")

    def test_no_table_before_effective_date(self, sqlite_store):
        assert sqlite_store.get_price_table("BLUEBERRY", "FRESH", date(2025, 1, 1)) is None

    def test_later_table_wins(self, sqlite_store, make_price_table):
        table = make_price_table(
            {(1, 1): ("0.55", "0.65", "0.75", "1.25")},
            product_id="BLUEBERRY",
            process_id="FRESH",
            effective_date=date(2025, 8, 1),
        )
        sqlite_store.save_price_table(table)

        assert sqlite_store.get_price_table("BLUEBERRY", "FRESH", date(2025, 7, 31)).cell(1, 1).final == Decimal("1.10")
        assert sqlite_store.get_price_table("BLUEBERRY", "FRESH", date(2025, 8, 2)).cell(1, 1).final == Decimal("1.25")

    def test_invalid_table_not_saved(self, sqlite_store, make_price_table):
        from core.errors import PriceTableRejectedError

        table = make_price_table(
            {(1, 1): ("0.80", "0.70", "0.90", "1.00")},
            product_id="BLUEBERRY",
            process_id="FRESH",
            effective_date=date(2025, 9, 1),
        )

        with pytest.raises(PriceTableRejectedError):
            sqlite_store.save_price_table(table)

        assert sqlite_store.get_price_table("BLUEBERRY", "FRESH", date(2025, 9, 2)).effective_date == date(2025, 6, 1)


class TestInitDb:

    def test_init_db_is_idempotent(self, temp_db):
        import sqlite3
        from storage.sqlite_store import init_db

        init_db(temp_db)
        init_db(temp_db)

        conn = sqlite3.connect(temp_db)
        try:
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        finally:
            conn.close()
        assert {"receipts", "cheques", "payment_batches", "advance_deductions", "price_tables"} <= tables
