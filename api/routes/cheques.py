"""Cheque endpoints.

Cheques are addressed by their SERIES-NUMBER key (e.g. ``A-1001``).
"""

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field

from api.services.engine import engine_dependency
from models.results import ChequeBreakdown, ChequeVoidResult
from reconciliation.engine import ReconciliationEngine


router = APIRouter()


class VoidRequest(BaseModel):
    """Request to void a cheque or receipt."""
    reason: str = Field(..., description="Why the record is being voided")
    actor: str = Field(..., description="User performing the void")


@router.get(
    "/{cheque_key}/breakdown",
    response_model=ChequeBreakdown,
    summary="Get Cheque Breakdown",
    description="Batches, receipts, deductions, reconciliation summary and payment history for a cheque.",
)
async def get_cheque_breakdown(
    cheque_key: str = Path(..., description="Cheque key, e.g. A-1001"),
    engine: ReconciliationEngine = Depends(engine_dependency),
) -> ChequeBreakdown:
    return await engine.build_cheque_breakdown(cheque_key)


@router.post(
    "/{cheque_key}/void",
    response_model=ChequeVoidResult,
    summary="Void Cheque",
    description="Voids the cheque, reverses its advance deductions and reassesses its batches.",
)
async def void_cheque(
    request: VoidRequest,
    cheque_key: str = Path(..., description="Cheque key, e.g. A-1001"),
    engine: ReconciliationEngine = Depends(engine_dependency),
) -> ChequeVoidResult:
    """Void a cheque.

    A failure inside the void returns 200 with ``success`` false and the
    step that failed; nothing was committed.
    """
    return await engine.void_cheque(cheque_key, request.reason, request.actor)
