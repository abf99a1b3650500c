"""
In-Process Metrics for the Payment Reconciliation Core

Counters and timing windows fed by the engine and the void cascades, served
as one JSON document on GET /metrics. Nothing is persisted: counts start at
zero with the process (and after ``reset()``, which the tests use).
"""

import statistics
from collections import Counter, defaultdict, deque
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any, Deque, Dict, Optional


# Samples kept per timing window; older samples fall off the front.
MAX_SAMPLES = 1000


# =============================================================================
# Counters
# =============================================================================

@dataclass
class OperationCounts:
    """Calls to one engine operation."""
    started: int = 0
    completed: int = 0
    failed: int = 0


@dataclass
class VoidMetrics:
    """What the void cascades have done so far.

    ``batches_reverted`` counts both a receipt void sending its batch back to
    Draft and a cheque void reverting the batches of its receipts.
    ``rejected`` voids never mutated anything; ``failed`` ones were rolled back.
    """
    receipts_voided: int = 0
    cheques_voided: int = 0
    batches_reverted: int = 0
    deductions_reversed: int = 0
    rejected: int = 0
    failed: int = 0


# =============================================================================
# Timings
# =============================================================================

def _window() -> Deque[float]:
    return deque(maxlen=MAX_SAMPLES)


class TimingMetrics:
    """Bounded duration samples, overall and per operation."""

    def __init__(self):
        self.samples = _window()
        self.by_stage: Dict[str, Deque[float]] = defaultdict(_window)

    def add_sample(self, duration_ms: float, stage: Optional[str] = None):
        self.samples.append(duration_ms)
        if stage:
            self.by_stage[stage].append(duration_ms)

    def _pick(self, stage: Optional[str]):
        if stage is None:
            return self.samples
        return self.by_stage.get(stage, ())

    def get_average(self, stage: Optional[str] = None) -> float:
        samples = self._pick(stage)
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: Optional[str] = None) -> float:
        """Nearest-rank 95th percentile; 0.0 with no samples."""
        ordered = sorted(self._pick(stage))
        if not ordered:
            return 0.0
        return ordered[min(int(len(ordered) * 0.95), len(ordered) - 1)]

    def stats(self, stage: Optional[str] = None) -> Dict[str, float]:
        return {"average_ms": self.get_average(stage), "p95_ms": self.get_p95(stage)}


# =============================================================================
# Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Process-wide metrics, guarded by one lock.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_operation_started("void_receipt")
        metrics.record_operation_completed("void_receipt", duration_ms=12.5)
    """

    _instance: Optional["MetricsCollector"] = None
    _instance_lock = Lock()

    def __init__(self):
        self._lock = Lock()
        self._clear()

    def _clear(self):
        self.operations: Dict[str, OperationCounts] = defaultdict(OperationCounts)
        self.voids = VoidMetrics()
        self.warnings: Counter = Counter()
        self.timings = TimingMetrics()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def reset(self):
        with self._lock:
            self._clear()

    # =========================================================================
    # Engine Operations
    # =========================================================================

    def record_operation_started(self, operation: str):
        with self._lock:
            self.operations[operation].started += 1

    def record_operation_completed(self, operation: str, duration_ms: Optional[float] = None):
        with self._lock:
            self.operations[operation].completed += 1
            if duration_ms:
                self.timings.add_sample(duration_ms, operation)

    def record_operation_failed(self, operation: str, error: Optional[str] = None):
        # error is accepted for call-site symmetry; the message goes to the log
        with self._lock:
            self.operations[operation].failed += 1

    def record_processing_time(self, stage: str, duration_ms: float):
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    # =========================================================================
    # Warnings and Voids
    # =========================================================================

    def record_warning(self, kind: str):
        """Count a warning attached to a breakdown or batch report, by kind."""
        with self._lock:
            self.warnings[kind] += 1

    def record_receipt_voided(self, batch_reverted: bool):
        with self._lock:
            self.voids.receipts_voided += 1
            self.voids.batches_reverted += int(batch_reverted)

    def record_cheque_voided(self, deductions_reversed: int, batches_reverted: int):
        with self._lock:
            self.voids.cheques_voided += 1
            self.voids.deductions_reversed += deductions_reversed
            self.voids.batches_reverted += batches_reverted

    def record_void_rejected(self):
        with self._lock:
            self.voids.rejected += 1

    def record_void_failed(self):
        with self._lock:
            self.voids.failed += 1

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_timing_stats(self, stage: Optional[str] = None) -> Dict[str, float]:
        with self._lock:
            stats = self.timings.stats(stage)
            stats["sample_count"] = len(self.timings._pick(stage))
            return stats

    def get_summary(self) -> Dict[str, Any]:
        """Everything collected so far, as served by GET /metrics."""
        with self._lock:
            by_name = {name: asdict(counts) for name, counts in self.operations.items()}
            totals = {
                key: sum(counts[key] for counts in by_name.values())
                for key in ("started", "completed", "failed")
            }
            return {
                "operations": {**totals, "by_name": by_name},
                "warnings": dict(self.warnings),
                "voids": asdict(self.voids),
                "timings": {
                    "overall": self.timings.stats(),
                    "by_stage": {stage: self.timings.stats(stage) for stage in self.timings.by_stage},
                },
            }


# =============================================================================
# Module-level shortcuts
# =============================================================================

def get_metrics() -> MetricsCollector:
    return MetricsCollector.instance()


def record_operation_started(operation: str):
    get_metrics().record_operation_started(operation)


def record_operation_completed(operation: str, duration_ms: Optional[float] = None):
    get_metrics().record_operation_completed(operation, duration_ms)


def record_operation_failed(operation: str, error: Optional[str] = None):
    get_metrics().record_operation_failed(operation, error)


def record_warning(kind: str):
    get_metrics().record_warning(kind)


def record_processing_time(stage: str, duration_ms: float):
    get_metrics().record_processing_time(stage, duration_ms)
