"""
Auth-specific exceptions.

Every pipeline step raises one of these; only the decision service turns
them into Deny decisions.
"""

from __future__ import annotations

from enum import Enum

from harbor_core.runtime.errors import ErrorCode, RetryableError, TerminalError


class ErrorCategory(str, Enum):
    FORMAT = "format"
    TRUST = "trust"
    TIER = "tier"
    AUTHORIZATION = "authorization"
    INFRASTRUCTURE = "infrastructure"


ERROR_CATEGORIES: dict[str, ErrorCategory] = {
    ErrorCode.INVALID_TOKEN_FORMAT: ErrorCategory.FORMAT,
    ErrorCode.CROSS_POOL_ACCESS: ErrorCategory.TRUST,
    ErrorCode.SESSION_EXPIRED: ErrorCategory.TRUST,
    ErrorCode.TOKEN_EXPIRED: ErrorCategory.TRUST,
    ErrorCode.INVALID_TOKEN: ErrorCategory.TRUST,
    ErrorCode.INSUFFICIENT_TIER: ErrorCategory.TIER,
    ErrorCode.PROFILE_NOT_FOUND: ErrorCategory.TIER,
    ErrorCode.PERMISSION_DENIED: ErrorCategory.AUTHORIZATION,
    ErrorCode.SCOPE_RESTRICTED: ErrorCategory.AUTHORIZATION,
    ErrorCode.FORBIDDEN: ErrorCategory.AUTHORIZATION,
    ErrorCode.TIER_CHECK_UNAVAILABLE: ErrorCategory.INFRASTRUCTURE,
    ErrorCode.INTERNAL_ERROR: ErrorCategory.INFRASTRUCTURE,
}

# Safe to render directly to end users. Never interpolate claims or store data.
USER_MESSAGES: dict[str, str] = {
    ErrorCode.INVALID_TOKEN_FORMAT: "Your sign-in information is missing or malformed. Please log in again.",
    ErrorCode.CROSS_POOL_ACCESS: "This account cannot be used here. Please sign in with the correct account type.",
    ErrorCode.SESSION_EXPIRED: "Your session has expired. Please log in again.",
    ErrorCode.TOKEN_EXPIRED: "Your session has expired. Please log in again.",
    ErrorCode.INVALID_TOKEN: "Your session is invalid. Please log in again.",
    ErrorCode.INSUFFICIENT_TIER: "This feature is not available for your current membership tier.",
    ErrorCode.PROFILE_NOT_FOUND: "We could not find the requested account.",
    ErrorCode.PERMISSION_DENIED: "Your role does not include permission for this action. Ask your dealer administrator for access.",
    ErrorCode.SCOPE_RESTRICTED: "This item is outside the access scope assigned to your account.",
    ErrorCode.FORBIDDEN: "You don't have permission to access this resource.",
    ErrorCode.TIER_CHECK_UNAVAILABLE: "We couldn't verify your access right now. Please try again shortly.",
    ErrorCode.INTERNAL_ERROR: "Something went wrong while checking your access. Please try again shortly.",
}


class AuthorizationDenied(TerminalError):
    """A terminal Deny: the caller must re-authenticate or give up on this action.

    context holds extra decision context (for example requiredTier) that is
    safe to hand to the calling handler.
    """

    def __init__(
        self,
        code: str,
        message_debug: str | None = None,
        context: dict[str, str] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(
            code=code,
            message_safe=USER_MESSAGES.get(code, USER_MESSAGES[ErrorCode.FORBIDDEN]),
            message_debug=message_debug,
            cause=cause,
        )
        self.category = ERROR_CATEGORIES.get(code, ErrorCategory.AUTHORIZATION)
        self.context = dict(context or {})


class AuthorizationUnavailable(RetryableError):
    """A fail-closed Deny caused by infrastructure; the whole request may be retried."""

    def __init__(
        self,
        code: str = ErrorCode.TIER_CHECK_UNAVAILABLE,
        message_debug: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(
            code=code,
            message_safe=USER_MESSAGES[code],
            message_debug=message_debug,
            cause=cause,
        )
        self.category = ErrorCategory.INFRASTRUCTURE
        self.context: dict[str, str] = {}
