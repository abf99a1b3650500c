"""In-memory payment store.

Implements every provider protocol plus transactions over plain dicts.
Used by tests, demos, and the API when no database is configured.

``unavailable`` lists provider methods that should raise
``ProviderUnavailableError``, so callers can exercise degraded paths.
"""

import copy
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncIterator, Dict, Iterable, List, Optional, Sequence, Set

from core.errors import NotFoundError, PriceTableRejectedError, ProviderUnavailableError
from core.money import sum_money
from models.records import (
    AdvanceDeduction,
    BatchReassessment,
    BatchStatus,
    Cheque,
    ChequeKey,
    ChequeStatus,
    ChequeSummary,
    PaymentBatch,
    PriceTable,
    Receipt,
    ReceiptLine,
    ReceiptStatus,
)
from pricing.validator import validate_price_table


def receipt_line(receipt: Receipt, price_per_pound: Optional[Decimal] = None) -> ReceiptLine:
    """A receipt as it appears on a cheque."""
    if price_per_pound is None:
        price_per_pound = (
            (receipt.amount / receipt.final_weight).quantize(Decimal("0.0001"))
            if receipt.final_weight
            else Decimal("0")
        )
    return ReceiptLine(
        receipt_id=receipt.receipt_id,
        receipt_number=receipt.receipt_number,
        batch_id=receipt.batch_id,
        grower_id=receipt.grower_id,
        product_name=receipt.product_id,
        process_name=receipt.process_id,
        grade=receipt.grade,
        weight=receipt.final_weight,
        price_per_pound=price_per_pound,
        amount=receipt.amount,
        status=receipt.status,
    )


def reassess(batch: PaymentBatch, receipts: Iterable[Receipt]) -> PaymentBatch:
    """Reversion rule shared by the bundled stores.

    A batch that has been paid out goes back to Draft on any void. The
    subtotal is always recomputed from the remaining active receipts.
    """
    subtotal = sum_money(r.amount for r in receipts if r.is_active)
    status = BatchStatus.DRAFT if batch.status.is_paid_out else batch.status
    return batch.model_copy(update={"status": status, "subtotal": subtotal})


class InMemoryPaymentStore:
    """Dict-backed implementation of every provider protocol."""

    def __init__(self):
        self.cheques: Dict[ChequeKey, Cheque] = {}
        self.cheque_receipts: Dict[ChequeKey, List[int]] = {}
        self.receipts: Dict[int, Receipt] = {}
        self.batches: Dict[int, PaymentBatch] = {}
        self.deductions: Dict[ChequeKey, List[AdvanceDeduction]] = {}
        self.reversed_deductions: List[AdvanceDeduction] = []
        self.season_totals: Dict[str, Decimal] = {}
        self.grower_names: Dict[str, Optional[str]] = {}
        self.prices_per_pound: Dict[int, Decimal] = {}
        self.advance_cheques: Dict[int, str] = {}
        self.price_tables: List[PriceTable] = []
        self.unavailable: Set[str] = set()

    # =========================================================================
    # Loading
    # =========================================================================

    def add_grower(self, grower_id: str, name: Optional[str] = None, season_total: Optional[Decimal] = None) -> None:
        self.grower_names[grower_id] = name
        if season_total is not None:
            self.season_totals[grower_id] = season_total

    def add_batch(self, batch: PaymentBatch) -> PaymentBatch:
        self.batches[batch.batch_id] = batch
        return batch

    def add_receipt(self, receipt: Receipt, price_per_pound: Optional[Decimal] = None) -> Receipt:
        self.receipts[receipt.receipt_id] = receipt
        if price_per_pound is not None:
            self.prices_per_pound[receipt.receipt_id] = price_per_pound
        return receipt

    def add_advance_cheque(self, advance_cheque_id: int, cheque_number: str, grower_id: str, amount: Decimal) -> None:
        self.advance_cheques[advance_cheque_id] = cheque_number

    def save_price_table(self, table: PriceTable) -> int:
        """Validate and keep a price table, replacing one with the same key.

        Raises:
            PriceTableRejectedError: If the table does not validate
        """
        validation = validate_price_table(table)
        if not validation.valid:
            raise PriceTableRejectedError(validation)
        self.price_tables = [
            t for t in self.price_tables
            if (t.product_id, t.process_id, t.effective_date) != (table.product_id, table.process_id, table.effective_date)
        ]
        self.price_tables.append(table)
        return len(self.price_tables)

    def get_price_table(self, product_id: str, process_id: str, on: date) -> Optional[PriceTable]:
        candidates = [
            t for t in self.price_tables
            if t.product_id == product_id and t.process_id == process_id and t.effective_date <= on
        ]
        return max(candidates, key=lambda t: t.effective_date) if candidates else None

    def add_cheque(
        self,
        cheque: Cheque,
        receipt_ids: Sequence[int] = (),
        deductions: Sequence[AdvanceDeduction] = (),
    ) -> Cheque:
        self.cheques[cheque.key] = cheque
        self.cheque_receipts[cheque.key] = list(receipt_ids)
        self.deductions[cheque.key] = list(deductions)
        return cheque

    def _check(self, method: str) -> None:
        if method in self.unavailable:
            raise ProviderUnavailableError("memory", f"{method} is unavailable")

    # =========================================================================
    # Transactions
    # =========================================================================

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Snapshot state; restore it if the block raises."""
        snapshot = copy.deepcopy((
            self.cheques,
            self.receipts,
            self.batches,
            self.deductions,
            self.reversed_deductions,
        ))
        try:
            yield
        except BaseException:
            (
                self.cheques,
                self.receipts,
                self.batches,
                self.deductions,
                self.reversed_deductions,
            ) = snapshot
            raise

    # =========================================================================
    # ChequeProvider
    # =========================================================================

    async def get_cheque(self, key: ChequeKey) -> Optional[Cheque]:
        self._check("get_cheque")
        return self.cheques.get(key)

    async def list_cheques_for_batch(self, batch_id: int) -> List[Cheque]:
        self._check("list_cheques_for_batch")
        return [c for c in self.cheques.values() if batch_id in c.batch_ids]

    async def set_cheque_status(
        self,
        key: ChequeKey,
        status: ChequeStatus,
        expected: Sequence[ChequeStatus],
        reason: str,
        actor: str,
    ) -> bool:
        self._check("set_cheque_status")
        cheque = self.cheques.get(key)
        if cheque is None or cheque.status not in expected:
            return False
        self.cheques[key] = cheque.model_copy(update={"status": status})
        return True

    # =========================================================================
    # ReceiptProvider
    # =========================================================================

    async def get_receipts_for_cheque(self, key: ChequeKey) -> List[ReceiptLine]:
        self._check("get_receipts_for_cheque")
        return [
            receipt_line(self.receipts[receipt_id], self.prices_per_pound.get(receipt_id))
            for receipt_id in self.cheque_receipts.get(key, [])
            if receipt_id in self.receipts
        ]

    async def get_receipt(self, receipt_id: int) -> Optional[Receipt]:
        self._check("get_receipt")
        return self.receipts.get(receipt_id)

    async def get_receipts_for_batch(self, batch_id: int) -> List[Receipt]:
        self._check("get_receipts_for_batch")
        return [r for r in self.receipts.values() if r.batch_id == batch_id]

    async def set_receipt_status(
        self,
        receipt_id: int,
        status: ReceiptStatus,
        reason: str,
        actor: str,
    ) -> bool:
        self._check("set_receipt_status")
        receipt = self.receipts.get(receipt_id)
        if receipt is None:
            return False
        if status == ReceiptStatus.VOIDED and receipt.status != ReceiptStatus.ACTIVE:
            return False
        self.receipts[receipt_id] = receipt.model_copy(update={
            "status": status,
            "voided_reason": reason if status == ReceiptStatus.VOIDED else None,
            "voided_by": actor if status == ReceiptStatus.VOIDED else None,
            "voided_at": datetime.utcnow() if status == ReceiptStatus.VOIDED else None,
        })
        return True

    # =========================================================================
    # BatchProvider
    # =========================================================================

    async def get_batch(self, batch_id: int) -> Optional[PaymentBatch]:
        self._check("get_batch")
        return self.batches.get(batch_id)

    async def reassess_batch_status(
        self,
        batch_id: int,
        triggering_receipt_id: Optional[int],
    ) -> BatchReassessment:
        self._check("reassess_batch_status")
        batch = self.batches.get(batch_id)
        if batch is None:
            raise NotFoundError("Batch", batch_id)
        updated = reassess(batch, [r for r in self.receipts.values() if r.batch_id == batch_id])
        self.batches[batch_id] = updated
        return BatchReassessment(
            batch_id=batch_id,
            reverted=updated.status != batch.status,
            batch_number=updated.batch_number,
            status=updated.status,
        )

    # =========================================================================
    # DeductionProvider
    # =========================================================================

    async def get_deductions_for_cheque(self, key: ChequeKey) -> List[AdvanceDeduction]:
        self._check("get_deductions_for_cheque")
        return list(self.deductions.get(key, []))

    async def reverse_deductions(self, key: ChequeKey, actor: str) -> int:
        self._check("reverse_deductions")
        reversed_items = self.deductions.pop(key, [])
        self.reversed_deductions.extend(reversed_items)
        return len(reversed_items)

    # =========================================================================
    # HistoryProvider
    # =========================================================================

    async def get_prior_cheques(self, grower_id: str, excluding: ChequeKey) -> List[ChequeSummary]:
        self._check("get_prior_cheques")
        summaries = []
        for cheque in self.cheques.values():
            if cheque.grower_id != grower_id or cheque.key == excluding:
                continue
            batch = self.batches.get(cheque.batch_ids[0]) if cheque.batch_ids else None
            summaries.append(ChequeSummary(
                key=cheque.key,
                cheque_date=cheque.cheque_date,
                net_amount=cheque.net_amount,
                batch_number=batch.batch_number if batch else None,
                status=cheque.status,
            ))
        summaries.sort(key=lambda s: (s.cheque_date, s.key.series, s.key.number))
        return summaries

    async def get_season_total(self, grower_id: str) -> Optional[Decimal]:
        self._check("get_season_total")
        return self.season_totals.get(grower_id)
