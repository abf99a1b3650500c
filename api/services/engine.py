"""Engine dependency for route handlers.

Routes take the engine through ``Depends(engine_dependency)`` so tests can
swap in an engine over an in-memory store with ``app.dependency_overrides``.
"""

from reconciliation.engine import ReconciliationEngine, get_engine


def engine_dependency() -> ReconciliationEngine:
    return get_engine()
