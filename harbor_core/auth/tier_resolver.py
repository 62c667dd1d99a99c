"""
Customer tier resolution.

Tier claims in the token are only a hint; the profile store is the source
of truth. Every store lookup is bounded by a timeout and fails closed.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from harbor_core.auth.exceptions import AuthorizationDenied, AuthorizationUnavailable
from harbor_core.auth.policy import lowest_tier
from harbor_core.config import settings
from harbor_core.domain.auth import CustomerPrincipal, CustomerProfile, CustomerTier
from harbor_core.domain.exceptions import ProfileStoreError
from harbor_core.domain.interfaces import ProfileStoreProtocol
from harbor_core.runtime.errors import ErrorCode


class TierResolver:
    """Looks up authoritative profiles and checks commercial tier."""

    def __init__(self, store: ProfileStoreProtocol, timeout_seconds: float | None = None):
        """Initialize the resolver.

        Args:
            store: The profile store to read from.
            timeout_seconds: Lookup budget. Defaults to settings.STORE_TIMEOUT_SECONDS.
        """
        self.store = store
        self.timeout = settings.STORE_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds

    async def fetch_profile(self, user_id: str) -> CustomerProfile:
        """Fetch a profile within the lookup budget.

        Raises:
            AuthorizationUnavailable: TIER_CHECK_UNAVAILABLE on timeout or store failure.
            AuthorizationDenied: PROFILE_NOT_FOUND if the account does not exist.
        """
        try:
            profile = await asyncio.wait_for(
                self.store.get_customer_profile(user_id),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise AuthorizationUnavailable(
                message_debug=f"Profile lookup for {user_id} timed out after {self.timeout}s",
                cause=e,
            ) from e
        except ProfileStoreError as e:
            raise AuthorizationUnavailable(
                message_debug=f"Profile store unavailable: {e}",
                cause=e,
            ) from e

        if profile is None:
            raise AuthorizationDenied(
                ErrorCode.PROFILE_NOT_FOUND,
                f"No customer profile for {user_id}",
            )
        return profile

    async def require_tier(
        self,
        principal: CustomerPrincipal,
        required: frozenset[CustomerTier],
    ) -> CustomerProfile:
        """Return the principal's profile if its tier is in the required set.

        Raises:
            AuthorizationDenied: INSUFFICIENT_TIER with requiredTier and
                upgradeRequired in its context.
        """
        profile = await self.fetch_profile(principal.principal_id)

        if principal.tier_hint and principal.tier_hint != profile.customer_tier.value:
            logger.debug(
                f"Token tier hint {principal.tier_hint!r} for {principal.principal_id} "
                f"differs from stored tier {profile.customer_tier.value!r}"
            )

        if profile.customer_tier not in required:
            required_tier = lowest_tier(required)
            raise AuthorizationDenied(
                ErrorCode.INSUFFICIENT_TIER,
                f"Tier {profile.customer_tier.value} is not in {sorted(t.value for t in required)}",
                context={
                    "customerType": profile.customer_tier.value,
                    "requiredTier": required_tier.value,
                    "upgradeRequired": "true",
                },
            )
        return profile
