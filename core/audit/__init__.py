"""Audit trail of payment changes (who voided what, and why)."""

from core.audit.events import (
    AuditEventType,
    AuditLogger,
    AuditQuery,
    InMemoryAuditBackend,
    JSONFileAuditBackend,
    build_audit_logger,
    create_audit_event,
)

__all__ = [
    "AuditEventType",
    "AuditLogger",
    "AuditQuery",
    "InMemoryAuditBackend",
    "JSONFileAuditBackend",
    "build_audit_logger",
    "create_audit_event",
]
