"""Receipt and cheque voiding.

Voiding is split in two:

1. ``analyze_void_impact`` reads the receipt and its batch and reports what
   a void would do. It changes nothing and is advisory only.
2. ``void_receipt`` re-checks state and performs the void inside one
   transaction: mark the receipt voided, then ask the batch provider to
   reassess the batch. Either both are committed or neither is.

There is no unvoid. The only guard the engine itself enforces is a
non-blank reason; presenting the impact for confirmation is the caller's job.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from core.audit.events import AuditEventType, AuditLogger
from core.errors import InvalidRequestError, InvalidStateError, NotFoundError, VoidExecutionError
from core.money import format_money, sum_money
from core.observability.logging import get_logger
from core.observability.metrics import get_metrics
from models.records import ChequeKey, ChequeStatus, PaymentBatch, Receipt, ReceiptStatus
from models.results import ChequeVoidResult, VoidImpact, VoidResult
from reconciliation.providers import (
    BatchProvider,
    ChequeProvider,
    DeductionProvider,
    NullTransactionManager,
    ReceiptProvider,
    TransactionManager,
)


logger = get_logger(__name__)

STEP_MARK_VOIDED = "mark_voided"
STEP_REASSESS_BATCH = "reassess_batch"
STEP_REVERSE_DEDUCTIONS = "reverse_deductions"

VOIDABLE_CHEQUE_STATUSES = (ChequeStatus.GENERATED, ChequeStatus.ISSUED, ChequeStatus.PRINTED)


def require_reason(reason: Optional[str]) -> str:
    """Return the stripped reason.

    Raises:
        InvalidRequestError: If the reason is missing or blank
    """
    if reason is None or not reason.strip():
        raise InvalidRequestError("A reason is required to void")
    return reason.strip()


def _actor(actor: Optional[str]) -> str:
    return actor.strip() if actor and actor.strip() else "system"


class VoidService:
    """Impact analysis and execution for receipt and cheque voids."""

    def __init__(
        self,
        receipts: ReceiptProvider,
        batches: BatchProvider,
        cheques: ChequeProvider,
        deductions: DeductionProvider,
        transactions: Optional[TransactionManager] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._receipts = receipts
        self._batches = batches
        self._cheques = cheques
        self._deductions = deductions
        self._transactions = transactions or NullTransactionManager()
        self._audit = audit or AuditLogger()

    # =========================================================================
    # Receipt Voids
    # =========================================================================

    async def _get_receipt(self, receipt_id: int) -> Receipt:
        receipt = await self._receipts.get_receipt(receipt_id)
        if receipt is None:
            raise NotFoundError("Receipt", receipt_id)
        return receipt

    async def _get_batch(self, batch_id: int) -> PaymentBatch:
        batch = await self._batches.get_batch(batch_id)
        if batch is None:
            raise NotFoundError("Batch", batch_id)
        return batch

    async def can_void_receipt(self, receipt_id: int) -> bool:
        """True when the receipt exists and is still Active."""
        receipt = await self._receipts.get_receipt(receipt_id)
        return receipt is not None and receipt.is_active

    async def analyze_void_impact(self, receipt_id: int) -> VoidImpact:
        """Report what voiding a receipt would do, without changing anything.

        Raises:
            NotFoundError: If the receipt, or the batch it references, does not exist
        """
        receipt = await self._get_receipt(receipt_id)

        batch: Optional[PaymentBatch] = None
        subtotal_before: Optional[Decimal] = None
        subtotal_after: Optional[Decimal] = None
        growers = {receipt.grower_id}
        requires_confirmation = False

        if receipt.batch_id is not None:
            batch = await self._get_batch(receipt.batch_id)
            active = [r for r in await self._receipts.get_receipts_for_batch(batch.batch_id) if r.is_active]
            subtotal_before = sum_money(r.amount for r in active)
            subtotal_after = subtotal_before - receipt.amount if receipt.is_active else subtotal_before
            requires_confirmation = batch.status.is_paid_out
            if requires_confirmation:
                growers.update(r.grower_id for r in active)

        affected = sorted(growers)
        return VoidImpact(
            receipt_id=receipt.receipt_id,
            receipt_number=receipt.receipt_number,
            receipt_status=receipt.status,
            grower_id=receipt.grower_id,
            amount=receipt.amount,
            batch_id=batch.batch_id if batch else None,
            batch_number=batch.batch_number if batch else None,
            batch_status=batch.status if batch else None,
            batch_subtotal_before=subtotal_before,
            batch_subtotal_after=subtotal_after,
            affected_growers=affected,
            requires_confirmation=requires_confirmation and receipt.is_active,
            can_void=receipt.is_active,
            warning_message=self._impact_message(receipt, batch, affected, requires_confirmation),
        )

    @staticmethod
    def _impact_message(
        receipt: Receipt,
        batch: Optional[PaymentBatch],
        affected: List[str],
        requires_confirmation: bool,
    ) -> str:
        if not receipt.is_active:
            return f"Receipt {receipt.receipt_number} is already voided and cannot be voided again."

        amount = format_money(receipt.amount)
        if batch is None:
            return (
                f"Voiding receipt {receipt.receipt_number} removes {amount} owed to grower "
                f"{receipt.grower_id}. The receipt is not in a payment batch."
            )

        message = f"Voiding receipt {receipt.receipt_number} removes {amount} from batch {batch.batch_number}."
        if requires_confirmation:
            message += (
                f" Batch {batch.batch_number} is {batch.status.value} and payments already made from it"
                f" may need to be reprocessed. Growers affected: {', '.join(affected)}."
            )
        return message

    async def void_receipt(self, receipt_id: int, reason: str, actor: str) -> VoidResult:
        """Void a receipt and have its batch reassessed, all or nothing.

        Args:
            receipt_id: Receipt to void
            reason: Why it is being voided (required)
            actor: Who is voiding it

        Returns:
            VoidResult; on a failure inside the transaction ``success`` is
            False, nothing was committed and ``failed_step`` names the step

        Raises:
            InvalidRequestError: If the reason is blank
            NotFoundError: If the receipt does not exist
            InvalidStateError: If the receipt is not Active, including when
                it stopped being Active between the check and the update
        """
        metrics = get_metrics()
        try:
            reason = require_reason(reason)
        except InvalidRequestError:
            metrics.record_void_rejected()
            raise
        actor = _actor(actor)

        receipt = await self._get_receipt(receipt_id)
        if not receipt.is_active:
            metrics.record_void_rejected()
            raise InvalidStateError(
                "Receipt", receipt.receipt_number,
                current=receipt.status.value,
                expected=ReceiptStatus.ACTIVE.value,
            )

        voided_at = datetime.utcnow()
        reassessment = None
        step = STEP_MARK_VOIDED

        try:
            async with self._transactions.transaction():
                updated = await self._receipts.set_receipt_status(
                    receipt_id, ReceiptStatus.VOIDED, reason, actor
                )
                if not updated:
                    raise InvalidStateError(
                        "Receipt", receipt.receipt_number,
                        message=f"Receipt {receipt.receipt_number} is no longer Active; it was changed by another request",
                    )

                if receipt.batch_id is not None:
                    step = STEP_REASSESS_BATCH
                    reassessment = await self._batches.reassess_batch_status(receipt.batch_id, receipt_id)
        except InvalidStateError:
            metrics.record_void_rejected()
            raise
        except Exception as e:
            error = VoidExecutionError(step, e)
            metrics.record_void_failed()
            logger.error(error.message, extra_fields={"failed_step": step})
            self._audit.log_error(
                AuditEventType.RECEIPT_VOID_FAILED,
                error.message,
                receipt_id=receipt_id,
                batch_id=receipt.batch_id,
                grower_id=receipt.grower_id,
                reason=reason,
                actor=actor,
                details={"failed_step": step},
            )
            return VoidResult(
                success=False,
                receipt_id=receipt_id,
                receipt_number=receipt.receipt_number,
                batch_id=receipt.batch_id,
                reason=reason,
                voided_by=actor,
                failed_step=step,
                error_message=error.message,
            )

        batch_reverted = bool(reassessment and reassessment.reverted)
        metrics.record_receipt_voided(batch_reverted)

        self._audit.log_info(
            AuditEventType.RECEIPT_VOIDED,
            f"Receipt {receipt.receipt_number} voided ({format_money(receipt.amount)})",
            receipt_id=receipt_id,
            batch_id=receipt.batch_id,
            grower_id=receipt.grower_id,
            reason=reason,
            actor=actor,
            details={"amount": str(receipt.amount)},
        )
        if batch_reverted:
            self._audit.log_warning(
                AuditEventType.BATCH_REVERTED,
                f"Batch {reassessment.batch_number} reverted to {reassessment.status.value} after void of receipt {receipt.receipt_number}",
                receipt_id=receipt_id,
                batch_id=reassessment.batch_id,
                reason=reason,
                actor=actor,
            )

        logger.info(
            f"Receipt {receipt.receipt_number} voided",
            extra_fields={"batch_reverted": batch_reverted, "amount": str(receipt.amount)},
        )

        return VoidResult(
            success=True,
            receipt_id=receipt_id,
            receipt_number=receipt.receipt_number,
            batch_id=receipt.batch_id,
            batch_number=reassessment.batch_number if reassessment else None,
            batch_status=reassessment.status if reassessment else None,
            batch_reverted=batch_reverted,
            amount_voided=receipt.amount,
            reason=reason,
            voided_by=actor,
            voided_at=voided_at,
        )

    # =========================================================================
    # Cheque Voids
    # =========================================================================

    async def void_cheque(self, key: ChequeKey, reason: str, actor: str) -> ChequeVoidResult:
        """Void a cheque, reverse its advance deductions and reassess its batches.

        Raises:
            InvalidRequestError: If the reason is blank
            NotFoundError: If the cheque does not exist
            InvalidStateError: If the cheque is not Generated, Issued or Printed
        """
        metrics = get_metrics()
        try:
            reason = require_reason(reason)
        except InvalidRequestError:
            metrics.record_void_rejected()
            raise
        actor = _actor(actor)

        cheque = await self._cheques.get_cheque(key)
        if cheque is None:
            raise NotFoundError("Cheque", key)
        if not cheque.status.can_be_voided:
            metrics.record_void_rejected()
            raise InvalidStateError(
                "Cheque", key,
                current=cheque.status.value,
                expected=", ".join(s.value for s in VOIDABLE_CHEQUE_STATUSES),
            )

        warnings = []
        pending = await self._deductions.get_deductions_for_cheque(key)
        if pending:
            warnings.append(f"Cheque has {len(pending)} advance deductions that will be reversed.")

        voided_at = datetime.utcnow()
        reverted: List[str] = []
        reversed_count = 0
        step = STEP_REVERSE_DEDUCTIONS

        try:
            async with self._transactions.transaction():
                reversed_count = await self._deductions.reverse_deductions(key, actor)

                step = STEP_MARK_VOIDED
                updated = await self._cheques.set_cheque_status(
                    key, ChequeStatus.VOIDED, VOIDABLE_CHEQUE_STATUSES, reason, actor
                )
                if not updated:
                    raise InvalidStateError(
                        "Cheque", key,
                        message=f"Cheque {key} can no longer be voided; it was changed by another request",
                    )

                step = STEP_REASSESS_BATCH
                for batch_id in cheque.batch_ids:
                    reassessment = await self._batches.reassess_batch_status(batch_id, None)
                    if reassessment.reverted:
                        reverted.append(reassessment.batch_number)
        except InvalidStateError:
            metrics.record_void_rejected()
            raise
        except Exception as e:
            error = VoidExecutionError(step, e)
            metrics.record_void_failed()
            logger.error(error.message, extra_fields={"failed_step": step})
            return ChequeVoidResult(
                success=False,
                cheque_number=str(key),
                voided_by=actor,
                warnings=warnings,
                failed_step=step,
                error_message=error.message,
            )

        metrics.record_cheque_voided(reversed_count, len(reverted))

        self._audit.log_info(
            AuditEventType.CHEQUE_VOIDED,
            f"Cheque {key} voided ({format_money(cheque.net_amount)})",
            cheque_id=str(key),
            grower_id=cheque.grower_id,
            reason=reason,
            actor=actor,
            details={"amount": str(cheque.net_amount), "batches_reverted": reverted},
        )
        if reversed_count:
            self._audit.log_info(
                AuditEventType.DEDUCTIONS_REVERSED,
                f"{reversed_count} advance deduction(s) reversed for cheque {key}",
                cheque_id=str(key),
                grower_id=cheque.grower_id,
                reason=reason,
                actor=actor,
            )
        for batch_number in reverted:
            self._audit.log_warning(
                AuditEventType.BATCH_REVERTED,
                f"Batch {batch_number} reverted after void of cheque {key}",
                cheque_id=str(key),
                reason=reason,
                actor=actor,
            )

        logger.info(
            f"Cheque {key} voided",
            extra_fields={"deductions_reversed": reversed_count, "batches_reverted": reverted},
        )

        return ChequeVoidResult(
            success=True,
            cheque_number=str(key),
            amount_reversed=cheque.net_amount,
            deductions_reversed=reversed_count,
            batches_reverted=reverted,
            voided_by=actor,
            voided_at=voided_at,
            warnings=warnings,
        )
