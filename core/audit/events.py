"""Audit trail for payment changes.

Every void, batch reversion and deduction reversal is recorded with who did
it and why, so a disputed cheque can be traced back after the fact. The
engine writes through one AuditLogger, which fans each event out to its
backends: always an in-memory list, plus daily JSON files when AUDIT_DIR is
configured.
"""

import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from core.observability.logging import get_logger
from models.audit import AuditEvent, AuditSeverity


logger = get_logger(__name__)

# How far back a JSON file query looks when no start time is given.
DEFAULT_LOOKBACK = timedelta(days=30)


class AuditEventType(str, Enum):
    PRICE_TABLE_VALIDATED = "PRICE_TABLE_VALIDATED"
    PRICE_TABLE_REJECTED = "PRICE_TABLE_REJECTED"

    BREAKDOWN_BUILT = "BREAKDOWN_BUILT"
    RECONCILIATION_MISMATCH = "RECONCILIATION_MISMATCH"

    RECEIPT_VOIDED = "RECEIPT_VOIDED"
    RECEIPT_VOID_FAILED = "RECEIPT_VOID_FAILED"
    BATCH_REVERTED = "BATCH_REVERTED"
    CHEQUE_VOIDED = "CHEQUE_VOIDED"
    DEDUCTIONS_REVERSED = "DEDUCTIONS_REVERSED"


def create_audit_event(
    event_type: AuditEventType,
    message: str,
    severity: AuditSeverity = AuditSeverity.INFO,
    cheque_id: Optional[str] = None,
    receipt_id: Optional[int] = None,
    batch_id: Optional[int] = None,
    grower_id: Optional[str] = None,
    workflow_id: Optional[str] = None,
    reason: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    actor: str = "system",
) -> AuditEvent:
    """Stamp a new event with a uuid and the current UTC time.

    Args:
        event_type: What happened
        message: One line for humans, e.g. "Receipt R-1002 voided"
        severity: INFO for completed changes, WARN for batch reversions
            and mismatches, ERROR for rolled-back voids
        cheque_id: Cheque key (SERIES-NUMBER), when a cheque is involved
        receipt_id: Receipt involved
        batch_id: Payment batch involved
        grower_id: Grower involved
        workflow_id: Temporal workflow that asked for the change
        reason: Reason the actor gave
        details: Amounts and counts, already JSON-safe
        actor: User who asked for the change

    Returns:
        AuditEvent ready for AuditLogger.log
    """
    return AuditEvent(
        event_id=str(uuid.uuid4()),
        timestamp=datetime.utcnow(),
        event_type=event_type.value,
        severity=severity,
        cheque_id=cheque_id,
        receipt_id=receipt_id,
        batch_id=batch_id,
        grower_id=grower_id,
        workflow_id=workflow_id,
        message=message,
        reason=reason,
        details=details or {},
        actor=actor,
    )


# =============================================================================
# Queries
# =============================================================================

@dataclass(frozen=True)
class AuditQuery:
    """Filters shared by every backend. Unset filters match everything."""
    event_type: Optional[str] = None
    receipt_id: Optional[int] = None
    cheque_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    limit: int = 100

    def accepts(self, event: AuditEvent) -> bool:
        if self.event_type and event.event_type != self.event_type:
            return False
        if self.receipt_id is not None and event.receipt_id != self.receipt_id:
            return False
        if self.cheque_id and event.cheque_id != self.cheque_id:
            return False
        if self.start_time and event.timestamp < self.start_time:
            return False
        return not (self.end_time and event.timestamp > self.end_time)

    def select(self, events: Iterable[AuditEvent]) -> List[AuditEvent]:
        """Matching events in their recorded order, at most ``limit``."""
        found = []
        for event in events:
            if len(found) >= self.limit:
                break
            if self.accepts(event):
                found.append(event)
        return found


# =============================================================================
# Backends
# =============================================================================

class AuditBackend(ABC):
    """Somewhere audit events are kept."""

    @abstractmethod
    def log(self, event: AuditEvent) -> None:
        ...

    @abstractmethod
    def find(self, audit_query: AuditQuery) -> List[AuditEvent]:
        ...

    def query(
        self,
        event_type: Optional[str] = None,
        receipt_id: Optional[int] = None,
        cheque_id: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        return self.find(AuditQuery(event_type, receipt_id, cheque_id, start_time, end_time, limit))


class InMemoryAuditBackend(AuditBackend):
    """Events held for the life of the process; what tests and the API read."""

    def __init__(self):
        self._events: List[AuditEvent] = []

    def log(self, event: AuditEvent) -> None:
        self._events.append(event)

    def find(self, audit_query: AuditQuery) -> List[AuditEvent]:
        return audit_query.select(self._events)

    def clear(self) -> None:
        self._events.clear()


class JSONFileAuditBackend(AuditBackend):
    """One JSON array per UTC day, named YYYY-MM-DD.json, under ``base_path``."""

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _day_file(self, day: datetime) -> Path:
        return self.base_path / f"{day:%Y-%m-%d}.json"

    def _read_day(self, day: datetime) -> List[Dict[str, Any]]:
        path = self._day_file(day)
        if not path.exists():
            return []
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def log(self, event: AuditEvent) -> None:
        entries = self._read_day(event.timestamp)
        entries.append(event.model_dump(mode="json"))
        with open(self._day_file(event.timestamp), "w", encoding="utf-8") as f:
            json.dump(entries, f, indent=2)

    def _events_between(self, start: datetime, end: datetime):
        day = datetime(start.year, start.month, start.day)
        while day <= end:
            for entry in self._read_day(day):
                yield AuditEvent.model_validate(entry)
            day += timedelta(days=1)

    def find(self, audit_query: AuditQuery) -> List[AuditEvent]:
        """Scan day files from start to end (default: the last 30 days)."""
        end = audit_query.end_time or datetime.utcnow()
        start = audit_query.start_time or end - DEFAULT_LOOKBACK
        return audit_query.select(self._events_between(start, end))


# =============================================================================
# Logger
# =============================================================================

class AuditLogger:
    """Writes each event to every backend and reads from the first one.

    Usage:
        audit = build_audit_logger(Path("./audit"))
        audit.log_info(
            AuditEventType.RECEIPT_VOIDED,
            "Receipt R-1042 voided",
            receipt_id=1042,
            actor="jsmith",
            reason="Duplicate entry",
        )
    """

    def __init__(self):
        self._backends: List[AuditBackend] = []

    def add_backend(self, backend: AuditBackend) -> None:
        self._backends.append(backend)

    def log(self, event: AuditEvent) -> None:
        """Record ``event``. A failing backend is logged and skipped so the
        payment change that produced the event still goes through."""
        for backend in self._backends:
            try:
                backend.log(event)
            except Exception as e:
                logger.error(
                    f"Audit backend {type(backend).__name__} failed: {e}",
                    extra_fields={"event_type": event.event_type, "event_id": event.event_id},
                )

    def log_info(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        self.log(create_audit_event(event_type, message, AuditSeverity.INFO, **kwargs))

    def log_warning(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        self.log(create_audit_event(event_type, message, AuditSeverity.WARN, **kwargs))

    def log_error(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        self.log(create_audit_event(event_type, message, AuditSeverity.ERROR, **kwargs))

    def query(self, **filters) -> List[AuditEvent]:
        """Filter events (see AuditQuery for the accepted keywords)."""
        if not self._backends:
            return []
        return self._backends[0].find(AuditQuery(**filters))


def build_audit_logger(audit_dir: Optional[Path] = None) -> AuditLogger:
    """In-memory audit trail, plus daily JSON files when ``audit_dir`` is set."""
    audit = AuditLogger()
    audit.add_backend(InMemoryAuditBackend())
    if audit_dir is not None:
        audit.add_backend(JSONFileAuditBackend(audit_dir))
    return audit
