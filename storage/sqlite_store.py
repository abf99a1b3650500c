"""SQLite payment store.

This module handles all database operations for the reconciliation core:
- Schema initialization
- Provider implementations (cheques, receipts, batches, deductions, history)
- Conditional status updates for voids
- Transactions spanning several provider calls
- Price table persistence (validated before saving)

Amounts are stored as TEXT and read back as exact Decimal.
"""

import sqlite3
from contextlib import asynccontextmanager, contextmanager
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import AsyncIterator, Iterator, List, Optional, Sequence, Union

from core.config import DEFAULT_DB_PATH
from core.errors import NotFoundError, PriceTableRejectedError, ProviderUnavailableError
from core.observability.logging import get_logger
from models.records import (
    AdvanceDeduction,
    BatchReassessment,
    BatchStatus,
    Cheque,
    ChequeKey,
    ChequeStatus,
    ChequeSummary,
    PaymentBatch,
    PriceCell,
    PriceTable,
    Receipt,
    ReceiptLine,
    ReceiptStatus,
)
from pricing.validator import validate_price_table
from storage.memory_store import reassess


logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS growers (
    grower_id TEXT PRIMARY KEY,
    name TEXT,
    season_total TEXT
);

CREATE TABLE IF NOT EXISTS payment_batches (
    batch_id INTEGER PRIMARY KEY,
    batch_number TEXT NOT NULL UNIQUE,
    batch_date TEXT,
    status TEXT NOT NULL DEFAULT 'Draft',
    subtotal TEXT NOT NULL DEFAULT '0',
    payment_type TEXT
);

CREATE TABLE IF NOT EXISTS receipts (
    receipt_id INTEGER PRIMARY KEY,
    receipt_number TEXT NOT NULL UNIQUE,
    grower_id TEXT NOT NULL REFERENCES growers(grower_id),
    receipt_date TEXT,
    product_id TEXT,
    process_id TEXT,
    grade INTEGER NOT NULL DEFAULT 1,
    gross_weight TEXT NOT NULL DEFAULT '0',
    tare_weight TEXT NOT NULL DEFAULT '0',
    dock_percentage TEXT NOT NULL DEFAULT '0',
    final_weight TEXT NOT NULL DEFAULT '0',
    price_per_pound TEXT NOT NULL DEFAULT '0',
    amount TEXT NOT NULL DEFAULT '0',
    status TEXT NOT NULL DEFAULT 'Active',
    batch_id INTEGER REFERENCES payment_batches(batch_id),
    voided_reason TEXT,
    voided_by TEXT,
    voided_at TEXT
);

CREATE TABLE IF NOT EXISTS cheques (
    series TEXT NOT NULL,
    number INTEGER NOT NULL,
    cheque_date TEXT NOT NULL,
    grower_id TEXT NOT NULL REFERENCES growers(grower_id),
    payee_name TEXT,
    status TEXT NOT NULL DEFAULT 'Issued',
    gross_amount TEXT,
    net_amount TEXT NOT NULL DEFAULT '0',
    voided_reason TEXT,
    voided_by TEXT,
    voided_at TEXT,
    PRIMARY KEY (series, number)
);

CREATE TABLE IF NOT EXISTS cheque_batches (
    series TEXT NOT NULL,
    number INTEGER NOT NULL,
    batch_id INTEGER NOT NULL REFERENCES payment_batches(batch_id),
    position INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (series, number, batch_id)
);

CREATE TABLE IF NOT EXISTS cheque_receipts (
    series TEXT NOT NULL,
    number INTEGER NOT NULL,
    receipt_id INTEGER NOT NULL REFERENCES receipts(receipt_id),
    PRIMARY KEY (series, number, receipt_id)
);

CREATE TABLE IF NOT EXISTS advance_cheques (
    advance_cheque_id INTEGER PRIMARY KEY,
    cheque_number TEXT NOT NULL,
    grower_id TEXT NOT NULL,
    amount TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'Printed',
    deducted_by_series TEXT,
    deducted_by_number INTEGER
);

CREATE TABLE IF NOT EXISTS advance_deductions (
    deduction_id INTEGER PRIMARY KEY,
    series TEXT NOT NULL,
    number INTEGER NOT NULL,
    advance_cheque_id INTEGER NOT NULL REFERENCES advance_cheques(advance_cheque_id),
    original_amount TEXT NOT NULL,
    deduction_amount TEXT NOT NULL,
    deduction_date TEXT,
    batch_id INTEGER,
    reversed_at TEXT,
    reversed_by TEXT
);

CREATE TABLE IF NOT EXISTS price_tables (
    price_table_id INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id TEXT NOT NULL,
    process_id TEXT NOT NULL,
    effective_date TEXT NOT NULL,
    price_level INTEGER,
    time_premium_enabled INTEGER NOT NULL DEFAULT 0,
    premium_time TEXT,
    canadian_premium TEXT NOT NULL DEFAULT '0',
    UNIQUE (product_id, process_id, effective_date)
);

CREATE TABLE IF NOT EXISTS price_cells (
    price_table_id INTEGER NOT NULL REFERENCES price_tables(price_table_id),
    tier INTEGER NOT NULL,
    grade INTEGER NOT NULL,
    a1 TEXT NOT NULL,
    a2 TEXT NOT NULL,
    a3 TEXT NOT NULL,
    final TEXT NOT NULL,
    PRIMARY KEY (price_table_id, tier, grade)
);

CREATE INDEX IF NOT EXISTS idx_receipts_batch ON receipts(batch_id);
CREATE INDEX IF NOT EXISTS idx_cheques_grower ON cheques(grower_id, cheque_date);
CREATE INDEX IF NOT EXISTS idx_deductions_cheque ON advance_deductions(series, number);
"""


def init_db(db_path: Union[str, Path] = DEFAULT_DB_PATH) -> None:
    """Create the payment tables if they do not exist."""
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()


def _text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _decimal(value) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


class SqlitePaymentStore:
    """sqlite3-backed implementation of every provider protocol.

    One connection is held for the life of the store. Outside
    ``transaction()`` every write commits immediately; inside it, writes
    commit together when the block exits or roll back if it raises.

    Example:
        store = SqlitePaymentStore(settings.db_path)
        engine = ReconciliationEngine.from_store(store)
    """

    def __init__(self, db_path: Union[str, Path] = DEFAULT_DB_PATH, create: bool = True):
        self.db_path = db_path
        try:
            self._conn = sqlite3.connect(str(db_path), isolation_level=None, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            if create:
                self._conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise ProviderUnavailableError("sqlite", str(e)) from e
        self._in_transaction = False

    def close(self) -> None:
        self._conn.close()

    # =========================================================================
    # Low-level helpers
    # =========================================================================

    def _query(self, sql: str, params: Sequence = ()) -> List[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise ProviderUnavailableError("sqlite", str(e)) from e

    def _execute(self, sql: str, params: Sequence = ()) -> int:
        """Run a write and return the number of rows it changed."""
        try:
            cursor = self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise ProviderUnavailableError("sqlite", str(e)) from e
        return cursor.rowcount

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        """Group writes into one commit. Nested calls join the outer transaction."""
        if self._in_transaction:
            yield
            return

        self._execute("BEGIN IMMEDIATE")
        self._in_transaction = True
        try:
            yield
        except BaseException:
            self._conn.rollback()
            raise
        else:
            self._conn.commit()
        finally:
            self._in_transaction = False

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Everything the engine does inside this block commits together."""
        with self._atomic():
            yield

    # =========================================================================
    # Row mapping
    # =========================================================================

    @staticmethod
    def _row_to_receipt(row: sqlite3.Row) -> Receipt:
        return Receipt(
            receipt_id=row["receipt_id"],
            receipt_number=row["receipt_number"],
            grower_id=row["grower_id"],
            grower_name=row["grower_name"] if "grower_name" in row.keys() else None,
            receipt_date=row["receipt_date"],
            product_id=row["product_id"],
            process_id=row["process_id"],
            grade=row["grade"],
            gross_weight=row["gross_weight"],
            tare_weight=row["tare_weight"],
            dock_percentage=row["dock_percentage"],
            final_weight=row["final_weight"],
            amount=row["amount"],
            status=ReceiptStatus(row["status"]),
            batch_id=row["batch_id"],
            voided_reason=row["voided_reason"],
            voided_by=row["voided_by"],
            voided_at=row["voided_at"],
        )

    @staticmethod
    def _row_to_batch(row: sqlite3.Row) -> PaymentBatch:
        return PaymentBatch(
            batch_id=row["batch_id"],
            batch_number=row["batch_number"],
            batch_date=row["batch_date"],
            status=BatchStatus(row["status"]),
            subtotal=row["subtotal"],
            payment_type=row["payment_type"],
        )

    def _row_to_cheque(self, row: sqlite3.Row) -> Cheque:
        batch_rows = self._query(
            "SELECT batch_id FROM cheque_batches WHERE series = ? AND number = ? ORDER BY position, batch_id",
            (row["series"], row["number"]),
        )
        return Cheque(
            key=ChequeKey(series=row["series"], number=row["number"]),
            cheque_date=row["cheque_date"],
            grower_id=row["grower_id"],
            payee_name=row["payee_name"],
            status=ChequeStatus(row["status"]),
            gross_amount=_decimal(row["gross_amount"]),
            net_amount=row["net_amount"],
            batch_ids=[r["batch_id"] for r in batch_rows],
        )

    # =========================================================================
    # ChequeProvider
    # =========================================================================

    async def get_cheque(self, key: ChequeKey) -> Optional[Cheque]:
        rows = self._query(
            "SELECT * FROM cheques WHERE series = ? AND number = ?",
            (key.series, key.number),
        )
        return self._row_to_cheque(rows[0]) if rows else None

    async def list_cheques_for_batch(self, batch_id: int) -> List[Cheque]:
        rows = self._query("""
            SELECT c.* FROM cheques c
            JOIN cheque_batches cb ON cb.series = c.series AND cb.number = c.number
            WHERE cb.batch_id = ?
            ORDER BY c.series, c.number
        """, (batch_id,))
        return [self._row_to_cheque(row) for row in rows]

    async def set_cheque_status(
        self,
        key: ChequeKey,
        status: ChequeStatus,
        expected: Sequence[ChequeStatus],
        reason: str,
        actor: str,
    ) -> bool:
        expected_values = [ChequeStatus(s).value for s in expected]
        placeholders = ", ".join("?" for _ in expected_values)
        voided = ChequeStatus(status) == ChequeStatus.VOIDED
        changed = self._execute(f"""
            UPDATE cheques
            SET status = ?, voided_reason = ?, voided_by = ?, voided_at = ?
            WHERE series = ? AND number = ? AND status IN ({placeholders})
        """, (
            ChequeStatus(status).value,
            reason if voided else None,
            actor if voided else None,
            datetime.utcnow().isoformat() if voided else None,
            key.series,
            key.number,
            *expected_values,
        ))
        return changed == 1

    # =========================================================================
    # ReceiptProvider
    # =========================================================================

    async def get_receipts_for_cheque(self, key: ChequeKey) -> List[ReceiptLine]:
        rows = self._query("""
            SELECT r.* FROM receipts r
            JOIN cheque_receipts cr ON cr.receipt_id = r.receipt_id
            WHERE cr.series = ? AND cr.number = ?
            ORDER BY r.receipt_date, r.receipt_number
        """, (key.series, key.number))
        return [
            ReceiptLine(
                receipt_id=row["receipt_id"],
                receipt_number=row["receipt_number"],
                batch_id=row["batch_id"],
                grower_id=row["grower_id"],
                product_name=row["product_id"],
                process_name=row["process_id"],
                grade=row["grade"],
                weight=row["final_weight"],
                price_per_pound=row["price_per_pound"],
                amount=row["amount"],
                status=ReceiptStatus(row["status"]),
            )
            for row in rows
        ]

    async def get_receipt(self, receipt_id: int) -> Optional[Receipt]:
        rows = self._query("""
            SELECT r.*, g.name AS grower_name FROM receipts r
            LEFT JOIN growers g ON g.grower_id = r.grower_id
            WHERE r.receipt_id = ?
        """, (receipt_id,))
        return self._row_to_receipt(rows[0]) if rows else None

    async def get_receipts_for_batch(self, batch_id: int) -> List[Receipt]:
        rows = self._query(
            "SELECT * FROM receipts WHERE batch_id = ? ORDER BY receipt_id",
            (batch_id,),
        )
        return [self._row_to_receipt(row) for row in rows]

    async def set_receipt_status(
        self,
        receipt_id: int,
        status: ReceiptStatus,
        reason: str,
        actor: str,
    ) -> bool:
        status = ReceiptStatus(status)
        if status == ReceiptStatus.VOIDED:
            changed = self._execute("""
                UPDATE receipts
                SET status = ?, voided_reason = ?, voided_by = ?, voided_at = ?
                WHERE receipt_id = ? AND status = ?
            """, (
                status.value,
                reason,
                actor,
                datetime.utcnow().isoformat(),
                receipt_id,
                ReceiptStatus.ACTIVE.value,
            ))
        else:
            changed = self._execute("""
                UPDATE receipts
                SET status = ?, voided_reason = NULL, voided_by = NULL, voided_at = NULL
                WHERE receipt_id = ?
            """, (status.value, receipt_id))
        return changed == 1

    # =========================================================================
    # BatchProvider
    # =========================================================================

    async def get_batch(self, batch_id: int) -> Optional[PaymentBatch]:
        rows = self._query("SELECT * FROM payment_batches WHERE batch_id = ?", (batch_id,))
        return self._row_to_batch(rows[0]) if rows else None

    async def reassess_batch_status(
        self,
        batch_id: int,
        triggering_receipt_id: Optional[int],
    ) -> BatchReassessment:
        batch = await self.get_batch(batch_id)
        if batch is None:
            raise NotFoundError("Batch", batch_id)

        updated = reassess(batch, await self.get_receipts_for_batch(batch_id))
        self._execute(
            "UPDATE payment_batches SET status = ?, subtotal = ? WHERE batch_id = ?",
            (updated.status.value, str(updated.subtotal), batch_id),
        )

        reverted = updated.status != batch.status
        if reverted:
            logger.info(
                f"Batch {batch.batch_number} reverted from {batch.status.value} to {updated.status.value}",
                extra_fields={"triggering_receipt_id": triggering_receipt_id},
            )
        return BatchReassessment(
            batch_id=batch_id,
            reverted=reverted,
            batch_number=updated.batch_number,
            status=updated.status,
        )

    # =========================================================================
    # DeductionProvider
    # =========================================================================

    async def get_deductions_for_cheque(self, key: ChequeKey) -> List[AdvanceDeduction]:
        rows = self._query("""
            SELECT d.*, a.cheque_number AS advance_cheque_number
            FROM advance_deductions d
            LEFT JOIN advance_cheques a ON a.advance_cheque_id = d.advance_cheque_id
            WHERE d.series = ? AND d.number = ? AND d.reversed_at IS NULL
            ORDER BY d.deduction_id
        """, (key.series, key.number))
        return [
            AdvanceDeduction(
                deduction_id=row["deduction_id"],
                advance_cheque_id=row["advance_cheque_id"],
                advance_cheque_number=row["advance_cheque_number"],
                original_amount=row["original_amount"],
                deduction_amount=row["deduction_amount"],
                deduction_date=row["deduction_date"],
                batch_id=row["batch_id"],
            )
            for row in rows
        ]

    async def reverse_deductions(self, key: ChequeKey, actor: str) -> int:
        """Mark the cheque's deductions reversed and free their advance cheques."""
        with self._atomic():
            self._execute("""
                UPDATE advance_cheques
                SET deducted_by_series = NULL, deducted_by_number = NULL
                WHERE deducted_by_series = ? AND deducted_by_number = ?
            """, (key.series, key.number))
            changed = self._execute("""
                UPDATE advance_deductions
                SET reversed_at = ?, reversed_by = ?
                WHERE series = ? AND number = ? AND reversed_at IS NULL
            """, (datetime.utcnow().isoformat(), actor, key.series, key.number))
        return changed

    # =========================================================================
    # HistoryProvider
    # =========================================================================

    async def get_prior_cheques(self, grower_id: str, excluding: ChequeKey) -> List[ChequeSummary]:
        rows = self._query("""
            SELECT c.series, c.number, c.cheque_date, c.net_amount, c.status,
                   (SELECT pb.batch_number FROM cheque_batches cb
                    JOIN payment_batches pb ON pb.batch_id = cb.batch_id
                    WHERE cb.series = c.series AND cb.number = c.number
                    ORDER BY cb.position, cb.batch_id LIMIT 1) AS batch_number
            FROM cheques c
            WHERE c.grower_id = ? AND NOT (c.series = ? AND c.number = ?)
            ORDER BY c.cheque_date, c.series, c.number
        """, (grower_id, excluding.series, excluding.number))
        return [
            ChequeSummary(
                key=ChequeKey(series=row["series"], number=row["number"]),
                cheque_date=row["cheque_date"],
                net_amount=row["net_amount"],
                batch_number=row["batch_number"],
                status=ChequeStatus(row["status"]),
            )
            for row in rows
        ]

    async def get_season_total(self, grower_id: str) -> Optional[Decimal]:
        rows = self._query("SELECT season_total FROM growers WHERE grower_id = ?", (grower_id,))
        return _decimal(rows[0]["season_total"]) if rows else None

    # =========================================================================
    # Writes used by seeding and scripts
    # =========================================================================

    def add_grower(self, grower_id: str, name: Optional[str] = None, season_total: Optional[Decimal] = None) -> None:
        self._execute(
            "INSERT OR REPLACE INTO growers (grower_id, name, season_total) VALUES (?, ?, ?)",
            (grower_id, name, _text(season_total)),
        )

    def add_batch(self, batch: PaymentBatch) -> PaymentBatch:
        self._execute("""
            INSERT INTO payment_batches (batch_id, batch_number, batch_date, status, subtotal, payment_type)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            batch.batch_id,
            batch.batch_number,
            _text(batch.batch_date),
            batch.status.value,
            str(batch.subtotal),
            batch.payment_type,
        ))
        return batch

    def add_receipt(self, receipt: Receipt, price_per_pound: Decimal = Decimal("0")) -> Receipt:
        self._execute("""
            INSERT INTO receipts
            (receipt_id, receipt_number, grower_id, receipt_date, product_id, process_id, grade,
             gross_weight, tare_weight, dock_percentage, final_weight, price_per_pound, amount,
             status, batch_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            receipt.receipt_id,
            receipt.receipt_number,
            receipt.grower_id,
            _text(receipt.receipt_date),
            receipt.product_id,
            receipt.process_id,
            receipt.grade,
            str(receipt.gross_weight),
            str(receipt.tare_weight),
            str(receipt.dock_percentage),
            str(receipt.final_weight),
            str(price_per_pound),
            str(receipt.amount),
            receipt.status.value,
            receipt.batch_id,
        ))
        return receipt

    def add_cheque(
        self,
        cheque: Cheque,
        receipt_ids: Sequence[int] = (),
        deductions: Sequence[AdvanceDeduction] = (),
    ) -> Cheque:
        key = cheque.key
        with self._atomic():
            self._execute("""
                INSERT INTO cheques
                (series, number, cheque_date, grower_id, payee_name, status, gross_amount, net_amount)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                key.series,
                key.number,
                _text(cheque.cheque_date),
                cheque.grower_id,
                cheque.payee_name,
                cheque.status.value,
                _text(cheque.gross_amount),
                str(cheque.net_amount),
            ))
            for position, batch_id in enumerate(cheque.batch_ids):
                self._execute(
                    "INSERT INTO cheque_batches (series, number, batch_id, position) VALUES (?, ?, ?, ?)",
                    (key.series, key.number, batch_id, position),
                )
            for receipt_id in receipt_ids:
                self._execute(
                    "INSERT INTO cheque_receipts (series, number, receipt_id) VALUES (?, ?, ?)",
                    (key.series, key.number, receipt_id),
                )
            for deduction in deductions:
                self._execute("""
                    INSERT INTO advance_deductions
                    (deduction_id, series, number, advance_cheque_id, original_amount,
                     deduction_amount, deduction_date, batch_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    deduction.deduction_id,
                    key.series,
                    key.number,
                    deduction.advance_cheque_id,
                    str(deduction.original_amount),
                    str(deduction.deduction_amount),
                    _text(deduction.deduction_date),
                    deduction.batch_id,
                ))
                self._execute("""
                    UPDATE advance_cheques SET deducted_by_series = ?, deducted_by_number = ?
                    WHERE advance_cheque_id = ?
                """, (key.series, key.number, deduction.advance_cheque_id))
        return cheque

    def add_advance_cheque(
        self,
        advance_cheque_id: int,
        cheque_number: str,
        grower_id: str,
        amount: Decimal,
    ) -> None:
        self._execute("""
            INSERT INTO advance_cheques (advance_cheque_id, cheque_number, grower_id, amount)
            VALUES (?, ?, ?, ?)
        """, (advance_cheque_id, cheque_number, grower_id, str(amount)))

    def advance_deducted_by(self, advance_cheque_id: int) -> Optional[ChequeKey]:
        """The cheque currently deducting an advance, if any."""
        rows = self._query(
            "SELECT deducted_by_series, deducted_by_number FROM advance_cheques WHERE advance_cheque_id = ?",
            (advance_cheque_id,),
        )
        if not rows or rows[0]["deducted_by_series"] is None:
            return None
        return ChequeKey(series=rows[0]["deducted_by_series"], number=rows[0]["deducted_by_number"])

    # =========================================================================
    # Price tables
    # =========================================================================

    def save_price_table(self, table: PriceTable) -> int:
        """Validate and persist a price table, replacing one with the same key.

        Returns:
            The stored price table id

        Raises:
            PriceTableRejectedError: If the table does not validate
            PriceTableShapeError: If the table is malformed
        """
        validation = validate_price_table(table)
        if not validation.valid:
            logger.warning(
                f"Refusing to save price table {table.product_id}/{table.process_id}",
                extra_fields={"flagged": validation.flagged},
            )
            raise PriceTableRejectedError(validation)

        with self._atomic():
            self._execute(
                "DELETE FROM price_cells WHERE price_table_id IN ("
                "SELECT price_table_id FROM price_tables "
                "WHERE product_id = ? AND process_id = ? AND effective_date = ?)",
                (table.product_id, table.process_id, _text(table.effective_date)),
            )
            self._execute(
                "DELETE FROM price_tables WHERE product_id = ? AND process_id = ? AND effective_date = ?",
                (table.product_id, table.process_id, _text(table.effective_date)),
            )
            self._execute("""
                INSERT INTO price_tables
                (product_id, process_id, effective_date, price_level,
                 time_premium_enabled, premium_time, canadian_premium)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                table.product_id,
                table.process_id,
                _text(table.effective_date),
                table.price_level,
                1 if table.time_premium_enabled else 0,
                table.premium_time,
                str(table.canadian_premium),
            ))
            price_table_id = self._query("SELECT last_insert_rowid() AS id")[0]["id"]
            for c in table.cells:
                self._execute(
                    "INSERT INTO price_cells (price_table_id, tier, grade, a1, a2, a3, final) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (price_table_id, c.tier, c.grade, str(c.a1), str(c.a2), str(c.a3), str(c.final)),
                )
        return price_table_id

    def get_price_table(self, product_id: str, process_id: str, on: Union[date, str]) -> Optional[PriceTable]:
        """The table in effect for a product/process on a date."""
        rows = self._query("""
            SELECT * FROM price_tables
            WHERE product_id = ? AND process_id = ? AND effective_date <= ?
            ORDER BY effective_date DESC LIMIT 1
        """, (product_id, process_id, _text(on)))
        if not rows:
            return None
        row = rows[0]
        cells = self._query(
            "SELECT * FROM price_cells WHERE price_table_id = ? ORDER BY tier, grade",
            (row["price_table_id"],),
        )
        return PriceTable(
            product_id=row["product_id"],
            process_id=row["process_id"],
            effective_date=row["effective_date"],
            price_level=row["price_level"],
            time_premium_enabled=bool(row["time_premium_enabled"]),
            premium_time=row["premium_time"],
            canadian_premium=row["canadian_premium"],
            cells=[
                PriceCell(tier=c["tier"], grade=c["grade"], a1=c["a1"], a2=c["a2"], a3=c["a3"], final=c["final"])
                for c in cells
            ],
        )
