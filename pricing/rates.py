"""Rate lookup and receipt pricing.

Receipt amounts are only ever computed from a table that passes
validation, so a receipt can never be priced from a schedule whose final
rate falls below an advance already paid.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from core.errors import InvalidRequestError, PriceTableRejectedError
from core.money import round_money, to_decimal
from models.records import PriceTable, RateType
from models.results import PriceTableValidation
from pricing.validator import validate_price_table


class PricedReceipt(BaseModel):
    """Weights, rate and amount for one priced receipt."""
    tier: int
    grade: int
    rate_type: RateType
    net_weight: Decimal
    dock_weight: Decimal
    final_weight: Decimal
    rate: Decimal
    amount: Decimal


def lookup_rate(table: PriceTable, tier: int, grade: int, rate: RateType = RateType.FINAL) -> Decimal:
    """Rate for a tier/grade cell.

    Raises:
        PriceTableShapeError: If the table has no such cell
    """
    return table.cell(tier, grade).rate(rate)


def compute_final_weight(gross_weight, tare_weight, dock_percentage) -> Decimal:
    """Payable weight after tare and dock.

    net = gross - tare; dock = net * dock% / 100; final = net - dock.

    Raises:
        InvalidRequestError: If tare exceeds gross or dock is outside 0-100
    """
    gross = to_decimal(gross_weight)
    tare = to_decimal(tare_weight or 0)
    dock_pct = to_decimal(dock_percentage or 0)

    if tare > gross:
        raise InvalidRequestError(f"Tare weight {tare} exceeds gross weight {gross}")
    if dock_pct < 0 or dock_pct > 100:
        raise InvalidRequestError(f"Dock percentage {dock_pct} must be between 0 and 100")

    net = gross - tare
    return net - (net * dock_pct / Decimal("100"))


def compute_receipt_amount(final_weight, rate) -> Decimal:
    """Amount owed for a weight at a per-pound rate, rounded half-up to cents."""
    return round_money(to_decimal(final_weight) * to_decimal(rate))


def price_receipt(
    table: PriceTable,
    tier: int,
    grade: int,
    gross_weight,
    tare_weight=0,
    dock_percentage=0,
    rate_type: RateType = RateType.FINAL,
    validation: Optional[PriceTableValidation] = None,
) -> PricedReceipt:
    """Price a receipt from a validated table.

    Args:
        table: Price table in effect for the receipt
        tier: Price tier of the grower
        grade: Receipt grade
        gross_weight: Gross weight in pounds
        tare_weight: Container weight in pounds
        dock_percentage: Dock as a percentage of net weight
        rate_type: Which rate to pay (an advance or the final)
        validation: Result of an earlier validate_price_table call, reused
            instead of validating again

    Raises:
        PriceTableRejectedError: If the table does not validate
        PriceTableShapeError: If the table is malformed
    """
    if validation is None:
        validation = validate_price_table(table)
    if not validation.valid:
        raise PriceTableRejectedError(validation)

    gross = to_decimal(gross_weight)
    tare = to_decimal(tare_weight or 0)
    net = gross - tare
    final_weight = compute_final_weight(gross_weight, tare_weight, dock_percentage)
    rate = lookup_rate(table, tier, grade, rate_type)

    return PricedReceipt(
        tier=tier,
        grade=grade,
        rate_type=RateType(rate_type),
        net_weight=net,
        dock_weight=net - final_weight,
        final_weight=final_weight,
        rate=rate,
        amount=compute_receipt_amount(final_weight, rate),
    )
