"""HTTP surface of the payment reconciliation core (FastAPI)."""

from api.server import app, create_app

__all__ = ["app", "create_app"]
