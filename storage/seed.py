"""
Demo data for local development, the API and the scripts.

seed_demo_data() loads the same grower season into either bundled store:
one Blueberry/Fresh price table, last season's paid batch, and this
season's finalized batch with two issued cheques. Receipt amounts are
priced from the table rather than typed in, so the data always reconciles.
"""

from datetime import date
from decimal import Decimal
from typing import Dict

from core.observability.logging import get_logger
from models.records import (
    AdvanceDeduction,
    BatchStatus,
    Cheque,
    ChequeKey,
    ChequeStatus,
    PaymentBatch,
    PriceCell,
    PriceTable,
    Receipt,
)
from pricing.rates import price_receipt
from pricing.validator import validate_price_table


logger = get_logger(__name__)


# =============================================================================
# PRICE TABLE
# =============================================================================

# (tier, grade) -> (a1, a2, a3, final)
DEMO_RATES: Dict[tuple, tuple] = {
    (1, 1): ("0.60", "0.80", "0.95", "1.10"),
    (1, 2): ("0.50", "0.65", "0.75", "0.85"),
    (1, 3): ("0.40", "0.50", "0.55", "0.60"),
    (2, 1): ("0.55", "0.75", "0.90", "1.05"),
    (2, 2): ("0.45", "0.60", "0.70", "0.80"),
    (2, 3): ("0.35", "0.45", "0.50", "0.55"),
    (3, 1): ("0.50", "0.70", "0.85", "1.00"),
    (3, 2): ("0.40", "0.55", "0.65", "0.75"),
    (3, 3): ("0", "0", "0", "0"),
}


def demo_price_table() -> PriceTable:
    cells = [
        PriceCell(tier=tier, grade=grade, a1=a1, a2=a2, a3=a3, final=final)
        for (tier, grade), (a1, a2, a3, final) in DEMO_RATES.items()
    ]
    return PriceTable(
        product_id="BLUEBERRY",
        process_id="FRESH",
        effective_date=date(2025, 6, 1),
        price_level=1,
        cells=cells,
    )


# =============================================================================
# SEED
# =============================================================================

def seed_demo_data(store) -> Dict[str, object]:
    """Load the demo season into a store.

    Works with InMemoryPaymentStore and SqlitePaymentStore, which share the
    same loading methods.

    Returns:
        Ids of the seeded records, for scripts and tests to refer to
    """
    table = demo_price_table()
    validation = validate_price_table(table)
    store.save_price_table(table)

    def priced_receipt(receipt_id, number, grower_id, batch_id, receipt_date, grade, gross, tare, dock=0):
        priced = price_receipt(table, 1, grade, gross, tare, dock, validation=validation)
        receipt = Receipt(
            receipt_id=receipt_id,
            receipt_number=number,
            grower_id=grower_id,
            receipt_date=receipt_date,
            product_id=table.product_id,
            process_id=table.process_id,
            grade=grade,
            gross_weight=gross,
            tare_weight=tare,
            dock_percentage=dock,
            final_weight=priced.final_weight,
            amount=priced.amount,
            batch_id=batch_id,
        )
        store.add_receipt(receipt, priced.rate)
        return receipt

    store.add_grower("G001", "Fraser Valley Berries", season_total=Decimal("658.18"))
    store.add_grower("G002", "Sumas Prairie Farms")

    # Last season: one paid batch and one cheque to show up in history
    store.add_batch(PaymentBatch(
        batch_id=2,
        batch_number="B-2024-014",
        batch_date=date(2024, 8, 30),
        status=BatchStatus.PAID,
        subtotal=Decimal("276.00"),
        payment_type="FINAL",
    ))
    old = priced_receipt(950, "R-0950", "G001", 2, date(2024, 8, 20), 3, "480", "20")
    store.add_cheque(
        Cheque(
            key=ChequeKey(series="A", number=998),
            cheque_date=date(2024, 9, 5),
            grower_id="G001",
            payee_name="Fraser Valley Berries",
            status=ChequeStatus.ISSUED,
            gross_amount=old.amount,
            net_amount=old.amount,
            batch_ids=[2],
        ),
        receipt_ids=[old.receipt_id],
    )

    # This season: a finalized batch paid by two cheques
    receipts = [
        priced_receipt(1001, "R-1001", "G001", 1, date(2025, 7, 2), 2, "420", "20"),
        priced_receipt(1002, "R-1002", "G001", 1, date(2025, 7, 3), 1, "184.71", "10"),
        priced_receipt(1003, "R-1003", "G002", 1, date(2025, 7, 3), 1, "1000", "50", "2"),
    ]
    store.add_batch(PaymentBatch(
        batch_id=1,
        batch_number="B-2025-001",
        batch_date=date(2025, 7, 10),
        status=BatchStatus.FINALIZED,
        subtotal=sum((r.amount for r in receipts), Decimal("0")),
        payment_type="FINAL",
    ))

    store.add_advance_cheque(501, "ADV-501", "G001", Decimal("150.00"))
    g001_gross = receipts[0].amount + receipts[1].amount
    store.add_cheque(
        Cheque(
            key=ChequeKey(series="A", number=1001),
            cheque_date=date(2025, 7, 15),
            grower_id="G001",
            payee_name="Fraser Valley Berries",
            status=ChequeStatus.ISSUED,
            gross_amount=g001_gross,
            net_amount=g001_gross - Decimal("150.00"),
            batch_ids=[1],
        ),
        receipt_ids=[1001, 1002],
        deductions=[
            AdvanceDeduction(
                deduction_id=1,
                advance_cheque_id=501,
                advance_cheque_number="ADV-501",
                original_amount=Decimal("150.00"),
                deduction_amount=Decimal("150.00"),
                deduction_date=date(2025, 7, 15),
                batch_id=1,
            ),
        ],
    )
    store.add_cheque(
        Cheque(
            key=ChequeKey(series="A", number=1002),
            cheque_date=date(2025, 7, 15),
            grower_id="G002",
            payee_name="Sumas Prairie Farms",
            status=ChequeStatus.ISSUED,
            gross_amount=receipts[2].amount,
            net_amount=receipts[2].amount,
            batch_ids=[1],
        ),
        receipt_ids=[1003],
    )

    logger.info("Seeded demo data", extra_fields={"receipts": 4, "cheques": 3, "batches": 2})
    return {
        "batch_ids": [1, 2],
        "cheques": ["A-998", "A-1001", "A-1002"],
        "receipt_ids": [950, 1001, 1002, 1003],
        "advance_cheque_ids": [501],
    }
