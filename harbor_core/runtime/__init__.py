"""
Service runtime layer for harborlist-authz.

This package provides shared infrastructure for reliability and observability:
- RequestContext: Request-scoped context with correlation IDs
- ServiceError: Standardized errors with retry semantics
- ErrorCode: Machine-readable codes and their HTTP status mapping
"""

from .context import RequestContext
from .errors import ErrorCode, RetryableError, ServiceError, TerminalError, http_status_for

__all__ = [
    "RequestContext",
    "ServiceError",
    "RetryableError",
    "TerminalError",
    "ErrorCode",
    "http_status_for",
]
