"""
Correlated Logging for Payment Operations

A void or a reconciliation touches several records at once (a receipt, the
batch it was paid in, the growers who split it, the cheques that paid them).
Log lines pick up the ids of whatever records are in scope, so one grep for
a receipt id shows the whole cascade.

Ids in scope are pushed with ``with_correlation``; nested scopes add ids and
the outer scope is restored on exit:

    logger = get_logger(__name__)

    with with_correlation(receipt_id=1002, actor="jsmith"):
        with with_correlation(batch_id=1):
            logger.warning("Batch reverted to Draft")
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, Optional


# Loggers owned by this project; configure_logging sets their level.
_PROJECT_LOGGERS = (
    "pricing",
    "reconciliation",
    "storage",
    "activities",
    "workflows",
    "api",
    "core",
)

# Third-party loggers held at WARNING regardless of the project level.
_NOISY_LOGGERS = ("httpx", "uvicorn.access")

# Short tags used in human-readable lines, in display order.
_TAGS = (
    ("cheque_id", "chq"),
    ("receipt_id", "rcpt"),
    ("batch_id", "batch"),
    ("grower_id", "grower"),
)


# =============================================================================
# Ids in Scope
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    """Record ids attached to every log line emitted inside a scope."""
    cheque_id: Optional[str] = None
    receipt_id: Optional[str] = None
    batch_id: Optional[str] = None
    grower_id: Optional[str] = None
    workflow_id: Optional[str] = None
    activity_name: Optional[str] = None
    operation: Optional[str] = None
    actor: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **ids) -> "CorrelationContext":
        """Return a copy with ``ids`` layered on top. Receipt and batch ids
        arrive as ints and are kept as text; None leaves a field alone."""
        fields = self.to_dict()
        for key, value in ids.items():
            if value is not None:
                fields[key] = str(value)
        return CorrelationContext(**fields)

    def tags(self) -> str:
        parts = [f"{tag}:{getattr(self, attr)}" for attr, tag in _TAGS if getattr(self, attr)]
        if self.workflow_id:
            parts.append(self.workflow_id[:12])
        return "/".join(parts) or "-"


_scope: ContextVar[CorrelationContext] = ContextVar("payment_log_scope", default=CorrelationContext())


def get_correlation_context() -> CorrelationContext:
    return _scope.get()


@contextmanager
def with_correlation(**ids) -> Iterator[CorrelationContext]:
    """Attach record ids to log lines emitted inside the block.

    Args:
        **ids: Any CorrelationContext field (cheque_id, receipt_id, batch_id,
            grower_id, workflow_id, activity_name, operation, actor)

    Yields:
        The context now in scope
    """
    token = _scope.set(_scope.get().merge(**ids))
    try:
        yield _scope.get()
    finally:
        _scope.reset(token)


# =============================================================================
# Formatters
# =============================================================================

def _utc_now() -> datetime:
    return datetime.utcnow()


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: level, logger, message, ids in scope, then
    any ``extra_fields`` passed to the call. Decimals render as text."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _utc_now().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(get_correlation_context().to_dict())
        entry.update(getattr(record, "extra_fields", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Console format, e.g.

    2025-03-14 09:30:00 [WARNING] reconciliation.voids [rcpt:1002/batch:1]: Batch reverted to Draft
    """

    def format(self, record: logging.LogRecord) -> str:
        line = "{} [{}] {} [{}]: {}".format(
            _utc_now().strftime("%Y-%m-%d %H:%M:%S"),
            record.levelname,
            record.name,
            get_correlation_context().tags(),
            record.getMessage(),
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


# =============================================================================
# Logger
# =============================================================================

def _exc_tuple(exc_info):
    if exc_info is True:
        return sys.exc_info()
    if isinstance(exc_info, BaseException):
        return type(exc_info), exc_info, exc_info.__traceback__
    return exc_info or None


class CorrelatedLogger:
    """
    Thin wrapper over a stdlib logger.

    Each call accepts ``extra_fields`` (a dict merged into JSON output) and
    ``exc_info`` as True, an exception instance, or an exc_info tuple.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def log(
        self,
        level: int,
        msg: str,
        *args,
        extra_fields: Optional[Dict[str, Any]] = None,
        exc_info=None,
    ):
        if not self._logger.isEnabledFor(level):
            return
        record = self._logger.makeRecord(
            self._logger.name, level, "(unknown file)", 0, msg, args, _exc_tuple(exc_info)
        )
        record.extra_fields = extra_fields or {}
        self._logger.handle(record)

    def debug(self, msg: str, *args, **kwargs):
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self.log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs["exc_info"] = True
        self.log(logging.ERROR, msg, *args, **kwargs)

    def setLevel(self, level):
        self._logger.setLevel(level)

    def isEnabledFor(self, level) -> bool:
        return self._logger.isEnabledFor(level)


# =============================================================================
# Setup
# =============================================================================

_loggers: Dict[str, CorrelatedLogger] = {}
_configured = False


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    include_temporal: bool = True,
):
    """
    Install one stdout handler on the root logger. Only the first call has
    any effect; scripts call this before anything else logs.

    Args:
        level: Level for the root logger and the project's package loggers
        json_format: JSON lines (StructuredFormatter) instead of console text
        include_temporal: Keep the temporalio SDK logging at INFO
    """
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)

    for name in _PROJECT_LOGGERS:
        logging.getLogger(name).setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if include_temporal:
        logging.getLogger("temporalio").setLevel(logging.INFO)

    _configured = True


def get_logger(name: str) -> CorrelatedLogger:
    """
    Return the CorrelatedLogger for ``name``, configuring logging from
    settings (LOG_LEVEL, LOG_JSON) the first time any logger is requested.
    """
    logger = _loggers.get(name)
    if logger is None:
        if not _configured:
            from core.config import get_settings

            settings = get_settings()
            configure_logging(level=settings.log_level, json_format=settings.log_json)
        logger = _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return logger


# =============================================================================
# Activity Lifecycle
# =============================================================================

def log_activity(activity_name: str, phase: str, error: Optional[str] = None, **fields):
    """Log one lifecycle step of a Temporal activity.

    Args:
        activity_name: Activity name without the ``_activity`` suffix
        phase: "started", "completed" or "failed"
        error: Failure message, for the "failed" phase
        **fields: Extra fields such as attempt or duration_ms
    """
    logger = get_logger(f"activities.{activity_name}")
    if phase == "failed":
        logger.error(f"Activity failed: {activity_name} - {error}", extra_fields=fields)
    else:
        logger.info(f"Activity {phase}: {activity_name}", extra_fields=fields)
