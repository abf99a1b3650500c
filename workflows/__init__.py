"""Workflow definitions module."""

from workflows.void_receipt_workflow import (
    VoidReceiptWorkflow,
    VoidReceiptWorkflowInput,
    VoidReceiptWorkflowOutput,
    VoidWorkflowStatus,
)

__all__ = [
    "VoidReceiptWorkflow",
    "VoidReceiptWorkflowInput",
    "VoidReceiptWorkflowOutput",
    "VoidWorkflowStatus",
]
