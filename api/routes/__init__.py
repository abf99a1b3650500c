"""API Routes Package."""

from api.routes import batches, cheques, health, metrics, pricing, receipts

__all__ = [
    "batches",
    "cheques",
    "health",
    "metrics",
    "pricing",
    "receipts",
]
