"""Correlated logging and in-process metrics for payment operations."""

from core.observability.logging import (
    CorrelationContext,
    configure_logging,
    get_logger,
    with_correlation,
)
from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_operation_completed,
    record_operation_failed,
    record_operation_started,
    record_processing_time,
    record_warning,
)

__all__ = [
    "CorrelationContext",
    "configure_logging",
    "get_logger",
    "with_correlation",
    "MetricsCollector",
    "get_metrics",
    "record_operation_completed",
    "record_operation_failed",
    "record_operation_started",
    "record_processing_time",
    "record_warning",
]
