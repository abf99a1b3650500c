"""Liveness and dependency status for the payments API."""

from datetime import datetime
from typing import Dict

from fastapi import APIRouter
from pydantic import BaseModel, Field

from core.config import Settings, get_settings


router = APIRouter()

API_VERSION = "0.1.0"


class HealthResponse(BaseModel):
    status: str = Field(..., description="'healthy' whenever the API can answer")
    timestamp: str
    version: str
    services: Dict[str, str] = Field(..., description="api, storage and temporal states")


def service_states(settings: Settings) -> Dict[str, str]:
    """Report what the API depends on without connecting to any of it.

    The SQLite file is ``missing`` until ``scripts/init_db.py`` has run, and
    Temporal is only ``configured`` (the worker, not the API, talks to it).
    """
    return {
        "api": "up",
        "storage": "up" if settings.db_path.exists() else "missing",
        "temporal": "configured" if settings.temporal_endpoint else "not configured",
    }


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow().isoformat(),
        version=API_VERSION,
        services=service_states(get_settings()),
    )


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}
