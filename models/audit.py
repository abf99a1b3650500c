"""Audit event model."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AuditSeverity(str, Enum):
    """Severity levels for audit events."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class AuditEvent(BaseModel):
    """An audit event for tracking payment changes.

    Every void (receipt or cheque), batch reversion and deduction reversal
    leaves one of these behind, carrying who did it and why.
    """
    event_id: str = Field(..., description="Unique event identifier")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Event timestamp")
    event_type: str = Field(..., description="Type of event (RECEIPT_VOIDED, BATCH_REVERTED, etc.)")
    severity: AuditSeverity = Field(default=AuditSeverity.INFO, description="Event severity")

    # Context
    cheque_id: Optional[str] = Field(None, description="Cheque key (SERIES-NUMBER)")
    receipt_id: Optional[int] = Field(None, description="Receipt id")
    batch_id: Optional[int] = Field(None, description="Payment batch id")
    grower_id: Optional[str] = Field(None, description="Grower id")
    workflow_id: Optional[str] = Field(None, description="Temporal workflow ID")

    # Details
    message: str = Field(..., description="Human-readable message")
    reason: Optional[str] = Field(None, description="Reason given by the actor")
    details: dict = Field(default_factory=dict, description="Additional event details")

    # Actor
    actor: str = Field(default="system", description="Who/what performed the action")
