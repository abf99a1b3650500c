"""Core module - configuration, errors, money helpers, observability and audit.

Shared by the pricing and reconciliation packages and by every outer
surface (Temporal worker, HTTP API, scripts).
"""

__version__ = "1.0.0"
