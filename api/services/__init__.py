"""API Services Package."""

from api.services.engine import engine_dependency

__all__ = [
    "engine_dependency",
]
