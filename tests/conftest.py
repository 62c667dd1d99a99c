"""
Shared fixtures for the authorization test suite.

Tokens are minted with PyJWT using a local HS256 secret and the default pool
issuers from settings. The profile store and audit sink are in-memory fakes.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from harbor_core.auth.audit import AuditDispatcher
from harbor_core.auth.classifier import PoolRegistry
from harbor_core.auth.decision_service import PolicyDecisionService
from harbor_core.auth.jwt_service import JwtService
from harbor_core.config import settings
from harbor_core.domain.auth import (
    AccessScope,
    AuditEntry,
    CustomerProfile,
    CustomerTier,
    DealerRole,
)
from harbor_core.domain.exceptions import AuditWriteError, ProfileStoreError

TEST_SECRET = "test-secret-for-hs256-signing-only"


class InMemoryProfileStore:
    """Profile store backed by a dict."""

    def __init__(self, profiles: list[CustomerProfile] | None = None):
        self.profiles = {p.user_id: p for p in profiles or []}
        self.lookups: list[str] = []
        self.fail_with: Exception | None = None
        self.delay: float = 0.0

    def put(self, profile: CustomerProfile) -> None:
        self.profiles[profile.user_id] = profile

    async def get_customer_profile(self, user_id: str) -> CustomerProfile | None:
        self.lookups.append(user_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return self.profiles.get(user_id)


class RecordingAuditSink:
    """Audit sink that keeps entries in a list."""

    def __init__(self):
        self.entries: list[AuditEntry] = []
        self.fail = False

    async def append(self, entry: AuditEntry) -> None:
        if self.fail:
            raise AuditWriteError("audit table unavailable")
        self.entries.append(entry)


def _profiles() -> list[CustomerProfile]:
    return [
        CustomerProfile(user_id="D1", email="d1@dealer.test", customer_tier=CustomerTier.DEALER),
        CustomerProfile(user_id="D2", email="d2@dealer.test", customer_tier=CustomerTier.PREMIUM_DEALER),
        CustomerProfile(user_id="IND", email="ind@buyer.test", customer_tier=CustomerTier.INDIVIDUAL),
        CustomerProfile(
            user_id="S1",
            email="s1@dealer.test",
            customer_tier=CustomerTier.DEALER,
            is_dealer_sub_account=True,
            parent_dealer_id="D1",
            dealer_account_role=DealerRole.MANAGER,
            access_scope=AccessScope(listings="all", leads=True, analytics=True),
        ),
        CustomerProfile(
            user_id="S2",
            email="s2@dealer.test",
            customer_tier=CustomerTier.PREMIUM_DEALER,
            is_dealer_sub_account=True,
            parent_dealer_id="D2",
            dealer_account_role=DealerRole.STAFF,
            access_scope=AccessScope(listings=frozenset({"L-D2-1"})),
        ),
        CustomerProfile(
            user_id="S3",
            email="s3@dealer.test",
            customer_tier=CustomerTier.DEALER,
            is_dealer_sub_account=True,
            parent_dealer_id="D1",
            dealer_account_role=DealerRole.STAFF,
            access_scope=AccessScope(listings=frozenset({"L-1"}), leads=False),
            delegated_permissions=frozenset({"manage_sub_accounts"}),
        ),
        CustomerProfile(
            user_id="A1",
            email="a1@dealer.test",
            customer_tier=CustomerTier.DEALER,
            is_dealer_sub_account=True,
            parent_dealer_id="D1",
            dealer_account_role=DealerRole.ADMIN,
            access_scope=AccessScope(listings="all"),
        ),
    ]


@pytest.fixture
def pools() -> PoolRegistry:
    return PoolRegistry.from_settings()


@pytest.fixture
def mint_token():
    """Factory for signed test tokens.

    Usage:
        token = mint_token("customer", sub="D1")
        token = mint_token("staff", iat=..., groups=["admin"])
        token = mint_token("customer", drop=["custom:customer_type"])
    """

    def _mint(
        domain: str = "customer",
        sub: str = "D1",
        email: str | None = None,
        iat: datetime | None = None,
        exp: datetime | None = None,
        groups: list[str] | None = None,
        permissions: list[str] | str | None = None,
        tier: str = "dealer",
        drop: list[str] | None = None,
        secret: str = TEST_SECRET,
        **extra,
    ) -> str:
        now = datetime.now(timezone.utc)
        iat = iat or now
        exp = exp or now + timedelta(hours=1)

        claims = {
            "sub": sub,
            "email": email or f"{sub.lower()}@example.test",
            "iat": int(iat.timestamp()),
            "exp": int(exp.timestamp()),
            "token_use": "access",
        }
        if domain == "customer":
            claims["iss"] = settings.CUSTOMER_POOL_ISSUER
            claims["client_id"] = settings.CUSTOMER_POOL_AUDIENCE
            claims["custom:customer_type"] = tier
            if groups is not None:
                claims["cognito:groups"] = groups
        else:
            claims["iss"] = settings.STAFF_POOL_ISSUER
            claims["client_id"] = settings.STAFF_POOL_AUDIENCE
            claims["cognito:groups"] = groups if groups is not None else ["admin"]
            if permissions is None:
                permissions = ["user_management", "audit_log_view"]
            claims["custom:permissions"] = (
                permissions if isinstance(permissions, str) else json.dumps(permissions)
            )

        claims.update(extra)
        for name in drop or []:
            claims.pop(name, None)
        return jwt.encode(claims, secret, algorithm="HS256")

    return _mint


@pytest.fixture
def bearer(mint_token):
    """Factory returning an Authorization header value."""

    def _bearer(*args, **kwargs) -> str:
        return f"Bearer {mint_token(*args, **kwargs)}"

    return _bearer


@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    return InMemoryProfileStore(_profiles())


@pytest.fixture
def failing_store() -> InMemoryProfileStore:
    store = InMemoryProfileStore(_profiles())
    store.fail_with = ProfileStoreError("connection refused")
    return store


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def jwt_service() -> JwtService:
    return JwtService(secret=TEST_SECRET, jwks_urls={})


@pytest.fixture
def make_service(jwt_service, pools, audit_sink):
    """Factory for a PolicyDecisionService over a given store."""

    def _make(store, **kwargs) -> PolicyDecisionService:
        return PolicyDecisionService(
            verifier=jwt_service,
            store=store,
            audit=AuditDispatcher(audit_sink, mode="sync", timeout_seconds=1.0),
            pools=pools,
            **kwargs,
        )

    return _make


@pytest.fixture
def decision_service(make_service, profile_store) -> PolicyDecisionService:
    return make_service(profile_store)


@pytest.fixture
def test_client(decision_service):
    """TestClient for the app with the decision service replaced by the test one."""
    from app.main import app
    from harbor_core.auth.factory import get_decision_service

    app.dependency_overrides[get_decision_service] = lambda: decision_service
    yield TestClient(app)
    app.dependency_overrides.clear()
