"""
Standardized error model with retry semantics.

This module defines a hierarchy of service errors that classify whether
an error is retryable, allowing callers to make intelligent retry decisions.
"""

from __future__ import annotations

import uuid
from typing import Any


class ServiceError(Exception):
    """Standardized service error with retry classification.

    ServiceError carries structured information about failures:
    - code: Machine-readable error code (e.g., "TIER_CHECK_UNAVAILABLE")
    - message_safe: Human-readable message safe for logs/users
    - message_debug: Detailed debug info (not logged in production)
    - retryable: Whether the operation can be retried
    - cause: The underlying exception, if any
    - debug_id: Unique ID for support correlation
    """

    def __init__(
        self,
        code: str,
        message_safe: str,
        message_debug: str | None = None,
        retryable: bool = False,
        cause: Exception | None = None,
        debug_id: str | None = None,
    ):
        """Initialize a ServiceError.

        Args:
            code: Machine-readable error code.
            message_safe: Human-readable message safe for logs.
            message_debug: Optional detailed debug message.
            retryable: Whether the operation can be retried.
            cause: Optional underlying exception.
            debug_id: Optional correlation ID (auto-generated if None).
        """
        super().__init__(message_safe)
        self.code = code
        self.message_safe = message_safe
        self.message_debug = message_debug
        self.retryable = retryable
        self.cause = cause
        self.debug_id = debug_id or str(uuid.uuid4())[:8]

    def __str__(self) -> str:
        return f"[{self.code}] {self.message_safe}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"message_safe={self.message_safe!r}, "
            f"retryable={self.retryable}, "
            f"debug_id={self.debug_id!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses.

        Returns:
            Dictionary with error details (excludes debug info).
        """
        return {
            "code": self.code,
            "message": self.message_safe,
            "debug_id": self.debug_id,
        }


class RetryableError(ServiceError):
    """Error that indicates the whole request can be retried.

    Use this for transient failures like store timeouts or an unreachable
    dependency.
    """

    def __init__(
        self,
        code: str,
        message_safe: str,
        message_debug: str | None = None,
        cause: Exception | None = None,
        debug_id: str | None = None,
    ):
        super().__init__(
            code=code,
            message_safe=message_safe,
            message_debug=message_debug,
            retryable=True,
            cause=cause,
            debug_id=debug_id,
        )


class TerminalError(ServiceError):
    """Error that indicates the operation should not be retried.

    Use this for permanent failures like:
    - Malformed or foreign credentials (401)
    - Authorization failures (403)
    - Resource not found (404)
    """

    def __init__(
        self,
        code: str,
        message_safe: str,
        message_debug: str | None = None,
        cause: Exception | None = None,
        debug_id: str | None = None,
    ):
        super().__init__(
            code=code,
            message_safe=message_safe,
            message_debug=message_debug,
            retryable=False,
            cause=cause,
            debug_id=debug_id,
        )


class ErrorCode:
    """Machine-readable codes carried by Deny decisions and error responses."""

    # Format
    INVALID_TOKEN_FORMAT = "INVALID_TOKEN_FORMAT"

    # Trust
    CROSS_POOL_ACCESS = "CROSS_POOL_ACCESS"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"

    # Tier
    INSUFFICIENT_TIER = "INSUFFICIENT_TIER"
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"

    # Authorization
    PERMISSION_DENIED = "PERMISSION_DENIED"
    SCOPE_RESTRICTED = "SCOPE_RESTRICTED"
    FORBIDDEN = "FORBIDDEN"

    # Infrastructure
    TIER_CHECK_UNAVAILABLE = "TIER_CHECK_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


HTTP_STATUS_BY_CODE: dict[str, int] = {
    ErrorCode.INVALID_TOKEN_FORMAT: 401,
    ErrorCode.CROSS_POOL_ACCESS: 401,
    ErrorCode.SESSION_EXPIRED: 401,
    ErrorCode.TOKEN_EXPIRED: 401,
    ErrorCode.INVALID_TOKEN: 401,
    ErrorCode.INSUFFICIENT_TIER: 403,
    ErrorCode.PERMISSION_DENIED: 403,
    ErrorCode.SCOPE_RESTRICTED: 403,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.PROFILE_NOT_FOUND: 404,
    ErrorCode.TIER_CHECK_UNAVAILABLE: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def http_status_for(code: str | None) -> int:
    """Map an error code to the HTTP status downstream handlers answer with.

    Unknown codes are treated as authorization failures.
    """
    if code is None:
        return 200
    return HTTP_STATUS_BY_CODE.get(code, 403)
