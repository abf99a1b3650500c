"""Shared pytest fixtures.

Engines run over an in-memory store seeded with the demo season unless a
test asks for the SQLite store, which lives in a temporary file.
"""

import os
import tempfile
from datetime import date

import pytest


# Valid (a1, a2, a3, final) rates for every tier/grade
VALID_RATES = {
    (1, 1): ("0.60", "0.80", "0.95", "1.10"),
    (1, 2): ("0.50", "0.65", "0.75", "0.85"),
    (1, 3): ("0.40", "0.50", "0.55", "0.60"),
    (2, 1): ("0.55", "0.75", "0.90", "1.05"),
    (2, 2): ("0.45", "0.60", "0.70", "0.80"),
    (2, 3): ("0.35", "0.45", "0.50", "0.55"),
    (3, 1): ("0.50", "0.70", "0.85", "1.00"),
    (3, 2): ("0.40", "0.55", "0.65", "0.75"),
    (3, 3): ("0", "0", "0", "0"),
}


@pytest.fixture(autouse=True)
def reset_metrics():
    """Each test starts with empty counters."""
    from core.observability.metrics import get_metrics
    get_metrics().reset()
    yield


@pytest.fixture
def make_price_table():
    """Build a price table from VALID_RATES with selected cells replaced."""
    from models.records import PriceCell, PriceTable

    def _make(overrides=None, **table_fields):
        rates = dict(VALID_RATES)
        rates.update(overrides or {})
        cells = [
            PriceCell(tier=tier, grade=grade, a1=a1, a2=a2, a3=a3, final=final)
            for (tier, grade), (a1, a2, a3, final) in rates.items()
        ]
        fields = {
            "product_id": "BLUEBERRY",
            "process_id": "FRESH",
            "effective_date": date(2025, 6, 1),
        }
        fields.update(table_fields)
        return PriceTable(cells=cells, **fields)

    return _make


@pytest.fixture
def store():
    """In-memory store loaded with the demo season."""
    from storage.memory_store import InMemoryPaymentStore
    from storage.seed import seed_demo_data

    store = InMemoryPaymentStore()
    seed_demo_data(store)
    return store


@pytest.fixture
def audit():
    from core.audit.events import build_audit_logger
    return build_audit_logger()


@pytest.fixture
def engine(store, audit):
    from reconciliation.engine import ReconciliationEngine
    return ReconciliationEngine.from_store(store, audit=audit)


@pytest.fixture
def temp_db():
    """Path to a temporary SQLite database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    yield db_path

    # Cleanup - try to delete, ignore errors on Windows
    try:
        os.unlink(db_path)
    except PermissionError:
        pass


@pytest.fixture
def sqlite_store(temp_db):
    """SQLite store over a temporary database, loaded with the demo season."""
    from storage.seed import seed_demo_data
    from storage.sqlite_store import SqlitePaymentStore

    store = SqlitePaymentStore(temp_db)
    seed_demo_data(store)
    yield store
    store.close()
