"""Cheque breakdown assembly.

Pulls a cheque's receipts, batches, deductions and the grower's payment
history through the providers and reconciles the computed net against the
recorded cheque amount.

Only a missing cheque aborts. Any other source that is unreachable leaves
its section empty and adds an INCOMPLETE_DATA warning, so whatever could be
loaded is still returned.
"""

from collections import OrderedDict
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from core.errors import NotFoundError, ProviderUnavailableError
from core.money import AMOUNT_TOLERANCE, ZERO, sum_money
from core.observability.logging import get_logger
from core.observability.metrics import record_warning
from models.records import (
    AdvanceDeduction,
    Cheque,
    ChequeKey,
    ChequeSummary,
    PaymentBatch,
    ReceiptLine,
)
from models.results import (
    BatchBreakdown,
    BreakdownWarning,
    ChequeBreakdown,
    ChequeHeader,
    DeductionLine,
    PaymentHistory,
    PaymentSummary,
    WarningKind,
)
from reconciliation.providers import (
    BatchProvider,
    ChequeProvider,
    DeductionProvider,
    HistoryProvider,
    ReceiptProvider,
)


logger = get_logger(__name__)

UNKNOWN_BATCH = "Unknown"

DEDUCTIONS_PREFETCHED = "prefetched"
DEDUCTIONS_PROVIDER = "provider"
DEDUCTIONS_UNAVAILABLE = "unavailable"


def _history_sort_key(summary: ChequeSummary) -> Tuple:
    return (summary.cheque_date, summary.key.series, summary.key.number)


def describe_deduction(deduction: AdvanceDeduction) -> str:
    cheque = deduction.advance_cheque_number or f"#{deduction.advance_cheque_id}"
    return f"Advance repayment (cheque {cheque})"


class ChequeBreakdownBuilder:
    """Builds ChequeBreakdown results from the provider contracts.

    Example:
        builder = ChequeBreakdownBuilder(store, store, store, store, store)
        breakdown = await builder.build(ChequeKey.parse("A-1001"))
        if breakdown.has_mismatch:
            ...
    """

    def __init__(
        self,
        cheques: ChequeProvider,
        receipts: ReceiptProvider,
        batches: BatchProvider,
        deductions: DeductionProvider,
        history: HistoryProvider,
        tolerance: Decimal = AMOUNT_TOLERANCE,
    ):
        self._cheques = cheques
        self._receipts = receipts
        self._batches = batches
        self._deductions = deductions
        self._history = history
        self.tolerance = tolerance

    async def build(
        self,
        key: ChequeKey,
        deductions: Optional[Sequence[AdvanceDeduction]] = None,
    ) -> ChequeBreakdown:
        """Assemble the full financial picture of a cheque.

        Args:
            key: Cheque to break down
            deductions: Deductions the caller already holds. Used as-is when
                non-empty; otherwise the deduction provider is asked.

        Returns:
            ChequeBreakdown with any warnings attached

        Raises:
            NotFoundError: If the cheque does not exist
        """
        cheque = await self._cheques.get_cheque(key)
        if cheque is None:
            raise NotFoundError("Cheque", key)

        warnings: List[BreakdownWarning] = []

        batches = await self._load_batches(cheque, warnings)
        total_gross = sum_money(b.subtotal for b in batches)

        deduction_items, deduction_source = await self._load_deductions(key, deductions, warnings)
        total_deductions = sum_money(d.deduction_amount for d in deduction_items)

        net = total_gross - total_deductions
        recorded = cheque.net_amount
        if abs(net - recorded) > self.tolerance:
            self._warn(warnings, BreakdownWarning(
                kind=WarningKind.RECONCILIATION_MISMATCH,
                source="cheque",
                message=f"Cheque {key} does not reconcile: computed net {net} vs recorded {recorded}",
                computed=net,
                recorded=recorded,
            ))

        history = await self._load_history(cheque, warnings)

        return ChequeBreakdown(
            header=ChequeHeader(
                cheque_number=str(key),
                series=key.series,
                number=key.number,
                cheque_date=cheque.cheque_date,
                grower_id=cheque.grower_id,
                payee_name=cheque.payee_name,
                status=cheque.status,
                recorded_amount=recorded,
            ),
            batches=batches,
            deductions=[
                DeductionLine(
                    deduction_id=d.deduction_id,
                    advance_cheque_id=d.advance_cheque_id,
                    original_amount=d.original_amount,
                    deduction_amount=d.deduction_amount,
                    description=describe_deduction(d),
                )
                for d in deduction_items
            ],
            deduction_source=deduction_source,
            summary=PaymentSummary(
                total_gross=total_gross,
                total_deductions=total_deductions,
                net_amount=net,
                recorded_amount=recorded,
            ),
            history=history,
            warnings=warnings,
        )

    # =========================================================================
    # Sections
    # =========================================================================

    async def _load_batches(self, cheque: Cheque, warnings: List[BreakdownWarning]) -> List[BatchBreakdown]:
        """Group the cheque's receipts into one section per batch."""
        key = cheque.key
        headers: Dict[Optional[int], Optional[PaymentBatch]] = OrderedDict()
        lines: Dict[Optional[int], List[ReceiptLine]] = OrderedDict()

        for batch_id in cheque.batch_ids:
            headers[batch_id] = await self._load_batch_header(batch_id, warnings)
            lines[batch_id] = []

        if not headers:
            headers[None] = None
            lines[None] = []

        receipts_loaded = True
        try:
            receipt_lines = await self._receipts.get_receipts_for_cheque(key)
        except ProviderUnavailableError as e:
            receipt_lines = []
            receipts_loaded = False
            self._warn(warnings, BreakdownWarning(
                kind=WarningKind.INCOMPLETE_DATA,
                source="receipts",
                message=f"Receipts for cheque {key} could not be loaded: {e.message}",
            ))

        first_batch = next(iter(headers))
        for line in receipt_lines:
            batch_id = line.batch_id if line.batch_id is not None else first_batch
            if batch_id not in headers:
                headers[batch_id] = await self._load_batch_header(batch_id, warnings)
                lines[batch_id] = []
                self._warn(warnings, BreakdownWarning(
                    kind=WarningKind.INCOMPLETE_DATA,
                    source=f"batch {batch_id}",
                    message=f"Receipt {line.receipt_number} belongs to batch {batch_id}, which is not linked to cheque {key}",
                ))
            lines[batch_id].append(line)

        sections = []
        for batch_id, header in headers.items():
            section_lines = lines[batch_id]
            section = BatchBreakdown(
                batch_id=batch_id,
                batch_number=header.batch_number if header else UNKNOWN_BATCH,
                batch_date=header.batch_date if header else None,
                status=header.status if header else None,
                receipts=section_lines,
                subtotal=sum_money(line.amount for line in section_lines),
            )
            # an empty section is only news when the receipt source answered
            if not section_lines and receipts_loaded:
                self._warn(warnings, BreakdownWarning(
                    kind=WarningKind.INCOMPLETE_DATA,
                    source=f"batch {section.batch_number}",
                    message=f"No receipts found for batch {section.batch_number} on cheque {key}",
                    computed=ZERO,
                ))
            sections.append(section)

        return sections

    async def _load_batch_header(
        self,
        batch_id: int,
        warnings: List[BreakdownWarning],
    ) -> Optional[PaymentBatch]:
        try:
            header = await self._batches.get_batch(batch_id)
        except ProviderUnavailableError as e:
            self._warn(warnings, BreakdownWarning(
                kind=WarningKind.INCOMPLETE_DATA,
                source=f"batch {batch_id}",
                message=f"Batch {batch_id} header could not be loaded: {e.message}",
            ))
            return None

        if header is None:
            self._warn(warnings, BreakdownWarning(
                kind=WarningKind.INCOMPLETE_DATA,
                source=f"batch {batch_id}",
                message=f"Batch {batch_id} linked to the cheque was not found",
            ))
        return header

    async def _load_deductions(
        self,
        key: ChequeKey,
        prefetched: Optional[Sequence[AdvanceDeduction]],
        warnings: List[BreakdownWarning],
    ) -> Tuple[List[AdvanceDeduction], str]:
        if prefetched:
            return list(prefetched), DEDUCTIONS_PREFETCHED

        try:
            return await self._deductions.get_deductions_for_cheque(key), DEDUCTIONS_PROVIDER
        except ProviderUnavailableError as e:
            self._warn(warnings, BreakdownWarning(
                kind=WarningKind.INCOMPLETE_DATA,
                source="deductions",
                message=f"Advance deductions for cheque {key} could not be loaded: {e.message}",
            ))
            return [], DEDUCTIONS_UNAVAILABLE

    async def _load_history(self, cheque: Cheque, warnings: List[BreakdownWarning]) -> PaymentHistory:
        try:
            prior = await self._history.get_prior_cheques(cheque.grower_id, cheque.key)
            season_total = await self._history.get_season_total(cheque.grower_id)
        except ProviderUnavailableError as e:
            self._warn(warnings, BreakdownWarning(
                kind=WarningKind.INCOMPLETE_DATA,
                source="history",
                message=f"Payment history for grower {cheque.grower_id} could not be loaded: {e.message}",
            ))
            return PaymentHistory()

        payments = sorted((p for p in prior if p.key != cheque.key), key=_history_sort_key)
        return PaymentHistory(payments=payments, season_total=season_total)

    def _warn(self, warnings: List[BreakdownWarning], warning: BreakdownWarning) -> None:
        warnings.append(warning)
        record_warning(warning.kind.value)
        logger.warning(
            warning.message,
            extra_fields={
                "warning_kind": warning.kind.value,
                "source": warning.source,
                "computed": warning.computed,
                "recorded": warning.recorded,
            },
        )
