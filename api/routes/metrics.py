"""Operational metrics endpoint."""

from typing import Any, Dict

from fastapi import APIRouter

from core.observability.metrics import get_metrics


router = APIRouter()


@router.get("/metrics")
async def get_metrics_summary() -> Dict[str, Any]:
    """In-process operation, warning, void and timing counters."""
    return get_metrics().get_summary()
