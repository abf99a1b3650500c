"""Price table endpoints."""

from fastapi import APIRouter, Depends

from api.services.engine import engine_dependency
from models.records import PriceTable
from models.results import PriceTableValidation
from reconciliation.engine import ReconciliationEngine


router = APIRouter()


@router.post(
    "/validate",
    response_model=PriceTableValidation,
    summary="Validate Price Table",
    description="Checks rate progression, negative rates and time-premium settings. Never modifies stored tables.",
)
async def validate_price_table(
    table: PriceTable,
    engine: ReconciliationEngine = Depends(engine_dependency),
) -> PriceTableValidation:
    """Validate a price table.

    A table with problems still returns 200; ``valid`` is false and
    ``flagged`` lists the offending fields per cell. Only a malformed table
    (wrong number of cells, bad tier or grade) is rejected with 422.
    """
    return engine.validate_price_table(table)
