"""Payment batch endpoints."""

from fastapi import APIRouter, Depends, Path

from api.services.engine import engine_dependency
from models.results import BatchReconciliationReport
from reconciliation.engine import ReconciliationEngine


router = APIRouter()


@router.get(
    "/{batch_id}/reconciliation",
    response_model=BatchReconciliationReport,
    summary="Reconcile Batch",
    description="Runs the batch subtotal and voided-receipt checks plus a net check for every live cheque in the batch.",
)
async def reconcile_batch(
    batch_id: int = Path(..., description="Batch id"),
    engine: ReconciliationEngine = Depends(engine_dependency),
) -> BatchReconciliationReport:
    return await engine.reconcile_batch(batch_id)
