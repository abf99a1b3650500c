"""Error taxonomy for the payment reconciliation core.

Fatal conditions are exceptions. Non-fatal conditions (reconciliation
mismatches, incomplete data, price table problems) are records attached to
results and never raised.
"""

from typing import Any, Optional


class PaymentsError(Exception):
    """Base exception for payment reconciliation errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(PaymentsError):
    """A referenced cheque, receipt or batch does not exist."""

    def __init__(self, entity: str, identifier: Any):
        super().__init__(f"{entity} {identifier} not found")
        self.entity = entity
        self.identifier = identifier


class InvalidStateError(PaymentsError):
    """The entity is not in a state that allows the requested operation."""

    def __init__(
        self,
        entity: str,
        identifier: Any,
        current: Optional[str] = None,
        expected: Optional[str] = None,
        message: Optional[str] = None,
    ):
        if message is None:
            message = f"{entity} {identifier} is {current or 'in an unexpected state'}"
            if expected:
                message += f" (expected {expected})"
        super().__init__(message)
        self.entity = entity
        self.identifier = identifier
        self.current = current
        self.expected = expected


class InvalidRequestError(PaymentsError, ValueError):
    """Caller supplied an argument that can never succeed (blank reason, bad key)."""
    pass


class PriceTableShapeError(PaymentsError, ValueError):
    """Price table does not have exactly one cell per tier/grade.

    This is a caller bug, not a data-entry problem, so it is raised instead of
    being reported through the validation result.
    """
    pass


class PriceTableRejectedError(PaymentsError):
    """A price table failed validation where a valid one is required."""

    def __init__(self, validation: Any, message: Optional[str] = None):
        super().__init__(message or f"Price table rejected: {validation.error_count} issue(s)")
        self.validation = validation


class ProviderUnavailableError(PaymentsError):
    """The data source behind a provider could not be reached."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source} unavailable: {message}")
        self.source = source


class VoidExecutionError(PaymentsError):
    """A step inside the void transaction failed; nothing was committed."""

    def __init__(self, step: str, cause: BaseException):
        super().__init__(f"Void failed at step '{step}': {cause}")
        self.step = step
        self.cause = cause
