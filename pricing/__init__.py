"""Price table validation and receipt pricing."""

from pricing.rates import (
    PricedReceipt,
    compute_final_weight,
    compute_receipt_amount,
    lookup_rate,
    price_receipt,
)
from pricing.validator import validate_cells, validate_price_table

__all__ = [
    "PricedReceipt",
    "compute_final_weight",
    "compute_receipt_amount",
    "lookup_rate",
    "price_receipt",
    "validate_cells",
    "validate_price_table",
]
