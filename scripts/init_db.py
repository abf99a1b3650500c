"""Create the grower payments SQLite database.

Usage:
    python scripts/init_db.py                 # schema only, at PAYMENTS_DB_PATH
    python scripts/init_db.py --seed          # schema plus demo season
    python scripts/init_db.py --db /tmp/x.db --seed --reset
"""

import argparse
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.observability.logging import configure_logging, get_logger
from storage.seed import seed_demo_data
from storage.sqlite_store import SqlitePaymentStore, init_db


logger = get_logger("scripts.init_db")


def main():
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Create the grower payments database")
    parser.add_argument("--db", type=Path, default=settings.db_path, help=f"Database path (default: {settings.db_path})")
    parser.add_argument("--seed", action="store_true", help="Load the demo season after creating the schema")
    parser.add_argument("--reset", action="store_true", help="Delete an existing database first")
    args = parser.parse_args()

    configure_logging(level=settings.log_level, json_format=settings.log_json)

    if args.reset and args.db.exists():
        args.db.unlink()
        logger.info(f"Removed existing database {args.db}")

    init_db(args.db)
    logger.info(f"Schema ready at {args.db}")

    if args.seed:
        store = SqlitePaymentStore(args.db)
        try:
            seeded = seed_demo_data(store)
        finally:
            store.close()
        print(f"Seeded {args.db}")
        print(f"  Batches:  {seeded['batch_ids']}")
        print(f"  Cheques:  {', '.join(seeded['cheques'])}")
        print(f"  Receipts: {seeded['receipt_ids']}")


if __name__ == "__main__":
    main()
