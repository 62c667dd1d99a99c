"""
Staff session freshness gate.

A staff session must re-authenticate once it is older than
STAFF_SESSION_TTL, no matter how long the token itself stays valid.
Customer tokens are governed by their own expiry.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from loguru import logger

from harbor_core.auth.exceptions import AuthorizationDenied
from harbor_core.config import settings
from harbor_core.domain.auth import Principal, StaffPrincipal
from harbor_core.runtime.errors import ErrorCode


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionFreshnessGate:
    """Rejects staff principals whose session is older than the staff TTL."""

    def __init__(
        self,
        ttl_seconds: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.ttl = timedelta(seconds=settings.STAFF_SESSION_TTL if ttl_seconds is None else ttl_seconds)
        self.clock = clock

    def session_age(self, principal: Principal) -> timedelta:
        return self.clock() - principal.issued_at

    def is_stale(self, issued_at: datetime) -> bool:
        return self.clock() - issued_at > self.ttl

    def check(self, principal: Principal) -> None:
        """Raise SESSION_EXPIRED for stale staff sessions; no-op otherwise."""
        if not isinstance(principal, StaffPrincipal):
            return

        age = self.session_age(principal)
        if age > self.ttl:
            logger.info(
                f"Staff session for {principal.principal_id} exceeded maximum duration "
                f"(age={int(age.total_seconds())}s, max={int(self.ttl.total_seconds())}s)"
            )
            raise AuthorizationDenied(
                ErrorCode.SESSION_EXPIRED,
                "Staff token has exceeded maximum session duration",
            )
