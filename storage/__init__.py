"""Payment stores implementing the reconciliation provider protocols."""

from storage.memory_store import InMemoryPaymentStore
from storage.seed import seed_demo_data
from storage.sqlite_store import SqlitePaymentStore, init_db

__all__ = [
    "InMemoryPaymentStore",
    "SqlitePaymentStore",
    "init_db",
    "seed_demo_data",
]
