"""Runtime configuration.

Reads settings from environment variables. A ``.env`` file at the repository
root is loaded first when it exists, so local development can keep
credentials and paths out of the shell profile.

Usage:
    from core.config import get_settings

    settings = get_settings()
    store = SqlitePaymentStore(settings.db_path)
"""

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


REPO_ROOT = Path(__file__).resolve().parents[1]

env_path = REPO_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)


DEFAULT_DB_PATH = REPO_ROOT / "grower_payments.db"
DEFAULT_TASK_QUEUE = "payments-default"
DEFAULT_AMOUNT_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class Settings:
    """Application settings resolved from the environment.

    Attributes:
        db_path: SQLite database backing the payment store
        amount_tolerance: Largest difference treated as "equal" when reconciling
        log_level: Logging level for application loggers
        log_json: Emit one JSON object per log line instead of readable text
        audit_dir: Directory for daily JSON audit files (None disables them)
        temporal_endpoint: Temporal host:port
        temporal_namespace: Temporal namespace
        temporal_api_key: API key for Temporal Cloud
        temporal_cert_path: Optional client certificate chain for mTLS
        task_queue: Task queue polled by the worker
        void_confirmation_timeout_minutes: How long a void workflow waits for confirmation
    """
    db_path: Path = DEFAULT_DB_PATH
    amount_tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE
    log_level: int = logging.INFO
    log_json: bool = False
    audit_dir: Optional[Path] = None
    temporal_endpoint: Optional[str] = None
    temporal_namespace: str = "default"
    temporal_api_key: Optional[str] = None
    temporal_cert_path: Optional[str] = None
    task_queue: str = DEFAULT_TASK_QUEUE
    void_confirmation_timeout_minutes: int = 60


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_decimal(name: str, default: Decimal) -> Decimal:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return Decimal(value.strip())
    except InvalidOperation:
        raise ValueError(f"{name} must be a decimal number, got {value!r}")


def _env_level(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    level = logging.getLevelName(value.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"{name} must be a logging level name, got {value!r}")
    return level


def load_settings() -> Settings:
    """Read settings from the current environment.

    Raises:
        ValueError: If a variable is present but cannot be parsed
    """
    audit_dir = os.getenv("PAYMENTS_AUDIT_DIR")
    timeout = os.getenv("VOID_CONFIRMATION_TIMEOUT_MINUTES", "60")

    return Settings(
        db_path=Path(os.getenv("PAYMENTS_DB_PATH", str(DEFAULT_DB_PATH))),
        amount_tolerance=_env_decimal("PAYMENTS_AMOUNT_TOLERANCE", DEFAULT_AMOUNT_TOLERANCE),
        log_level=_env_level("PAYMENTS_LOG_LEVEL", logging.INFO),
        log_json=_env_bool("PAYMENTS_LOG_JSON"),
        audit_dir=Path(audit_dir) if audit_dir else None,
        temporal_endpoint=os.getenv("TEMPORAL_ENDPOINT"),
        temporal_namespace=os.getenv("TEMPORAL_NAMESPACE", "default"),
        temporal_api_key=os.getenv("TEMPORAL_API_KEY"),
        temporal_cert_path=os.getenv("TEMPORAL_CERT_PATH"),
        task_queue=os.getenv("TEMPORAL_TASK_QUEUE", DEFAULT_TASK_QUEUE),
        void_confirmation_timeout_minutes=int(timeout),
    )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
