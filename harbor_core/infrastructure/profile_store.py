"""
PostgreSQL-backed customer profile store.

Read-only access to the customer_profiles table that holds commercial tier
and dealer sub-account linkage. Writes belong to the account services.
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from pydantic import ValidationError

from harbor_core.domain.auth import AccessScope, CustomerProfile
from harbor_core.domain.exceptions import ProfileStoreError
from harbor_core.infrastructure.postgres import ConnectionFactory, get_db_connection

PROFILE_COLUMNS = (
    "user_id, email, customer_tier, is_dealer_sub_account, parent_dealer_id, "
    "dealer_account_role, access_scope, delegated_permissions"
)


def _parse_access_scope(raw: Any) -> AccessScope | None:
    if raw is None:
        return None
    listings = raw.get("listings", [])
    return AccessScope(
        listings="all" if listings == "all" else frozenset(listings or []),
        leads=bool(raw.get("leads", False)),
        analytics=bool(raw.get("analytics", False)),
        inventory=bool(raw.get("inventory", False)),
        pricing=bool(raw.get("pricing", False)),
        communications=bool(raw.get("communications", False)),
    )


def row_to_profile(row: tuple) -> CustomerProfile:
    """Map a customer_profiles row onto a CustomerProfile."""
    return CustomerProfile(
        user_id=row[0],
        email=row[1],
        customer_tier=row[2],
        is_dealer_sub_account=bool(row[3]),
        parent_dealer_id=row[4] or None,
        dealer_account_role=row[5],
        access_scope=_parse_access_scope(row[6]),
        delegated_permissions=frozenset(row[7] or []),
    )


class PostgresProfileStore:
    """Profile lookups over an injected connection factory."""

    def __init__(self, connect: ConnectionFactory | None = None):
        self._connect = connect or get_db_connection

    async def get_customer_profile(self, user_id: str) -> CustomerProfile | None:
        """
        Fetch one customer profile.

        Args:
            user_id: The account's principal id.

        Returns:
            CustomerProfile, or None if no such account exists.

        Raises:
            ProfileStoreError: If the database is unreachable or the stored
                record violates the profile invariants.
        """
        try:
            async with await self._connect() as conn:
                async with conn.cursor() as cursor:
                    await cursor.execute(
                        f"SELECT {PROFILE_COLUMNS} FROM customer_profiles WHERE user_id = %s",
                        (user_id,),
                    )
                    row = await cursor.fetchone()
        except Exception as e:
            raise ProfileStoreError(f"Profile lookup failed: {e}") from e

        if row is None:
            return None

        try:
            return row_to_profile(row)
        except ValidationError as e:
            logger.error(f"Stored profile for {user_id} is inconsistent: {e}")
            raise ProfileStoreError(f"Stored profile for {user_id} is inconsistent") from e
