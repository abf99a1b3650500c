"""Data provider contracts consumed by the reconciliation engine.

Persistence lives outside the engine. These protocols are the narrow
shapes it reads and writes through; ``storage`` ships SQLite and
in-memory implementations, and tests substitute fakes or mocks.

Providers raise ``ProviderUnavailableError`` when their data source
cannot be reached. Lookups return ``None`` for a missing entity.
"""

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncContextManager, AsyncIterator, List, Optional, Protocol, Sequence

from models.records import (
    AdvanceDeduction,
    BatchReassessment,
    Cheque,
    ChequeKey,
    ChequeStatus,
    ChequeSummary,
    PaymentBatch,
    Receipt,
    ReceiptLine,
    ReceiptStatus,
)


class ChequeProvider(Protocol):
    """Protocol for cheque headers and cheque status changes."""

    async def get_cheque(self, key: ChequeKey) -> Optional[Cheque]:
        ...

    async def list_cheques_for_batch(self, batch_id: int) -> List[Cheque]:
        ...

    async def set_cheque_status(
        self,
        key: ChequeKey,
        status: ChequeStatus,
        expected: Sequence[ChequeStatus],
        reason: str,
        actor: str,
    ) -> bool:
        """Change status only if the current status is one of ``expected``.

        Returns False when the condition did not hold and nothing changed.
        """
        ...


class ReceiptProvider(Protocol):
    """Protocol for receipts and receipt status changes."""

    async def get_receipts_for_cheque(self, key: ChequeKey) -> List[ReceiptLine]:
        """Receipts paid on a cheque, looked up by cheque rather than batch.

        Legacy rows only link some receipts to their batch through the cheque.
        """
        ...

    async def get_receipt(self, receipt_id: int) -> Optional[Receipt]:
        ...

    async def get_receipts_for_batch(self, batch_id: int) -> List[Receipt]:
        ...

    async def set_receipt_status(
        self,
        receipt_id: int,
        status: ReceiptStatus,
        reason: str,
        actor: str,
    ) -> bool:
        """Conditional update: voiding only succeeds while the receipt is Active.

        Returns False when the receipt was not in the required state.
        """
        ...


class BatchProvider(Protocol):
    """Protocol for payment batches.

    The batch provider owns the reversion rule. The engine only reports
    what the provider decided.
    """

    async def get_batch(self, batch_id: int) -> Optional[PaymentBatch]:
        ...

    async def reassess_batch_status(
        self,
        batch_id: int,
        triggering_receipt_id: Optional[int],
    ) -> BatchReassessment:
        ...


class DeductionProvider(Protocol):
    """Protocol for advance deductions taken on a cheque."""

    async def get_deductions_for_cheque(self, key: ChequeKey) -> List[AdvanceDeduction]:
        ...

    async def reverse_deductions(self, key: ChequeKey, actor: str) -> int:
        """Undo the cheque's deductions so the advances can be deducted again.

        Returns the number of deductions reversed.
        """
        ...


class HistoryProvider(Protocol):
    """Protocol for a grower's payment history."""

    async def get_prior_cheques(self, grower_id: str, excluding: ChequeKey) -> List[ChequeSummary]:
        ...

    async def get_season_total(self, grower_id: str) -> Optional[Decimal]:
        """The grower's stored running total for the season."""
        ...


class TransactionManager(Protocol):
    """Everything done inside ``transaction()`` commits together or not at all."""

    def transaction(self) -> AsyncContextManager[None]:
        ...


class NullTransactionManager:
    """Transaction manager for providers that commit every call on their own."""

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        yield
