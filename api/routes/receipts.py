"""Receipt void endpoints."""

from fastapi import APIRouter, Depends, Path

from api.routes.cheques import VoidRequest
from api.services.engine import engine_dependency
from models.results import VoidImpact, VoidResult
from reconciliation.engine import ReconciliationEngine


router = APIRouter()


@router.get(
    "/{receipt_id}/void-impact",
    response_model=VoidImpact,
    summary="Analyze Void Impact",
    description="What voiding the receipt would do to its batch and growers. Read-only.",
)
async def get_void_impact(
    receipt_id: int = Path(..., description="Receipt id"),
    engine: ReconciliationEngine = Depends(engine_dependency),
) -> VoidImpact:
    return await engine.analyze_void_impact(receipt_id)


@router.post(
    "/{receipt_id}/void",
    response_model=VoidResult,
    summary="Void Receipt",
)
async def void_receipt(
    request: VoidRequest,
    receipt_id: int = Path(..., description="Receipt id"),
    engine: ReconciliationEngine = Depends(engine_dependency),
) -> VoidResult:
    """Void a receipt and reassess its batch.

    Callers are expected to have reviewed the void impact first; the
    receipt's state is checked again here regardless.
    """
    return await engine.void_receipt(receipt_id, request.reason, request.actor)
