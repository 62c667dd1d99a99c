"""Unit tests for the Postgres profile store."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from harbor_core.domain.auth import CustomerTier, DealerRole, ResourceKind
from harbor_core.domain.exceptions import ProfileStoreError
from harbor_core.infrastructure.profile_store import PostgresProfileStore, row_to_profile

SUB_ACCOUNT_ROW = (
    "S1",
    "s1@dealer.test",
    "dealer",
    True,
    "D1",
    "manager",
    {"listings": "all", "leads": True},
    ["delete_listings"],
)


@pytest.fixture
def mock_postgres():
    cursor = MagicMock()
    cursor.__aenter__.return_value = cursor
    cursor.__aexit__.return_value = False
    cursor.execute = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)

    conn = MagicMock()
    conn.__aenter__.return_value = conn
    conn.__aexit__.return_value = False
    conn.cursor.return_value = cursor

    return {"connect": AsyncMock(return_value=conn), "cursor": cursor}


class TestRowToProfile:
    def test_sub_account_row(self):
        """A sub-account row maps onto linkage, role, scope and extras."""
        profile = row_to_profile(SUB_ACCOUNT_ROW)

        assert profile.customer_tier is CustomerTier.DEALER
        assert profile.parent_dealer_id == "D1"
        assert profile.dealer_account_role is DealerRole.MANAGER
        assert profile.access_scope.allows(ResourceKind.LISTING, "anything")
        assert profile.access_scope.allows(ResourceKind.LEAD)
        assert not profile.access_scope.allows(ResourceKind.PRICING)
        assert profile.delegated_permissions == frozenset({"delete_listings"})

    def test_top_level_row_without_scope(self):
        profile = row_to_profile(("D1", None, "premium_dealer", False, None, None, None, None))

        assert profile.is_dealer
        assert profile.access_scope is None
        assert profile.delegated_permissions == frozenset()

    def test_explicit_listing_ids(self):
        row = SUB_ACCOUNT_ROW[:6] + ({"listings": ["L-1", "L-2"]},) + SUB_ACCOUNT_ROW[7:]

        profile = row_to_profile(row)

        assert profile.access_scope.listings == frozenset({"L-1", "L-2"})


class TestPostgresProfileStore:
    """Tests for PostgresProfileStore.get_customer_profile."""

    @pytest.mark.asyncio
    async def test_returns_profile(self, mock_postgres):
        mock_postgres["cursor"].fetchone.return_value = SUB_ACCOUNT_ROW
        store = PostgresProfileStore(connect=mock_postgres["connect"])

        profile = await store.get_customer_profile("S1")

        assert profile.user_id == "S1"
        query, params = mock_postgres["cursor"].execute.call_args[0]
        assert "FROM customer_profiles" in query
        assert params == ("S1",)

    @pytest.mark.asyncio
    async def test_missing_row_is_none(self, mock_postgres):
        store = PostgresProfileStore(connect=mock_postgres["connect"])

        assert await store.get_customer_profile("nobody") is None

    @pytest.mark.asyncio
    async def test_connection_failure_is_store_error(self):
        store = PostgresProfileStore(connect=AsyncMock(side_effect=OSError("connection refused")))

        with pytest.raises(ProfileStoreError):
            await store.get_customer_profile("D1")

    @pytest.mark.asyncio
    async def test_inconsistent_row_is_store_error(self, mock_postgres):
        """A sub-account row without a parent violates the profile invariants."""
        mock_postgres["cursor"].fetchone.return_value = ("S9", None, "dealer", True, None, "staff", None, None)
        store = PostgresProfileStore(connect=mock_postgres["connect"])

        with pytest.raises(ProfileStoreError):
            await store.get_customer_profile("S9")
