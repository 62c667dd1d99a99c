"""
Trust-domain classification.

Decides which identity pool a set of claims belongs to and builds the
matching Principal. Classification depends only on issuer, audience and the
pool-discriminating custom claims; the endpoint contributes nothing but the
domain it expects.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from loguru import logger

from harbor_core.auth.exceptions import AuthorizationDenied
from harbor_core.auth.policy import STAFF_ROLE_PERMISSIONS
from harbor_core.config import settings
from harbor_core.domain.auth import (
    CustomerPrincipal,
    Principal,
    StaffPrincipal,
    StaffRole,
    TrustDomain,
)
from harbor_core.runtime.errors import ErrorCode

CUSTOMER_DISCRIMINATOR = "custom:customer_type"
STAFF_DISCRIMINATOR = "custom:permissions"


@dataclass(frozen=True)
class PoolConfig:
    """Issuer and app client of one identity pool."""

    domain: TrustDomain
    issuer: str
    audience: str


@dataclass(frozen=True)
class PoolRegistry:
    customer: PoolConfig
    staff: PoolConfig

    @classmethod
    def from_settings(cls) -> "PoolRegistry":
        return cls(
            customer=PoolConfig(
                TrustDomain.CUSTOMER,
                settings.CUSTOMER_POOL_ISSUER,
                settings.CUSTOMER_POOL_AUDIENCE,
            ),
            staff=PoolConfig(
                TrustDomain.STAFF,
                settings.STAFF_POOL_ISSUER,
                settings.STAFF_POOL_AUDIENCE,
            ),
        )

    def for_domain(self, domain: TrustDomain) -> PoolConfig:
        return self.customer if domain is TrustDomain.CUSTOMER else self.staff

    def domain_for_issuer(self, issuer: str | None) -> TrustDomain | None:
        for pool in (self.customer, self.staff):
            if issuer and issuer == pool.issuer:
                return pool.domain
        return None

    def domain_for_audience(self, audience: Any) -> TrustDomain | None:
        audiences = audience if isinstance(audience, list) else [audience]
        for pool in (self.customer, self.staff):
            if pool.audience in audiences:
                return pool.domain
        return None


def parse_bearer(header: str | None) -> str:
    """Extract the JWT from an ``Authorization: Bearer <token>`` header.

    Raises:
        AuthorizationDenied: INVALID_TOKEN_FORMAT if the header or token
            structure is malformed.
    """
    if not header or not header.startswith("Bearer "):
        raise AuthorizationDenied(
            ErrorCode.INVALID_TOKEN_FORMAT,
            "Authorization token must be in Bearer format",
        )

    token = header[7:].strip()
    segments = token.split(".")
    if len(segments) != 3 or not all(segments):
        raise AuthorizationDenied(
            ErrorCode.INVALID_TOKEN_FORMAT,
            "Bearer token is not a three-segment JWT",
        )
    return token


def classify_claims(claims: Mapping[str, Any], pools: PoolRegistry) -> TrustDomain:
    """Determine which pool issued a claim set.

    Raises:
        AuthorizationDenied: INVALID_TOKEN_FORMAT if the claim shape is
            ambiguous, carries no discriminator, or contradicts the issuer
            or audience.
    """
    has_customer = CUSTOMER_DISCRIMINATOR in claims
    has_staff = STAFF_DISCRIMINATOR in claims

    if has_customer and has_staff:
        raise AuthorizationDenied(
            ErrorCode.INVALID_TOKEN_FORMAT,
            "Token carries both customer and staff discriminators",
        )
    if not has_customer and not has_staff:
        raise AuthorizationDenied(
            ErrorCode.INVALID_TOKEN_FORMAT,
            "Token carries no pool discriminator",
        )

    domain = TrustDomain.CUSTOMER if has_customer else TrustDomain.STAFF

    issuer_domain = pools.domain_for_issuer(claims.get("iss"))
    if issuer_domain is not None and issuer_domain is not domain:
        raise AuthorizationDenied(
            ErrorCode.INVALID_TOKEN_FORMAT,
            f"Issuer belongs to the {issuer_domain.value} pool but claims look {domain.value}",
        )

    audience_domain = pools.domain_for_audience(claims.get("aud", claims.get("client_id")))
    if audience_domain is not None and audience_domain is not domain:
        raise AuthorizationDenied(
            ErrorCode.INVALID_TOKEN_FORMAT,
            f"Audience belongs to the {audience_domain.value} pool but claims look {domain.value}",
        )

    token_use = claims.get("token_use")
    if token_use is not None and token_use != "access":
        raise AuthorizationDenied(
            ErrorCode.INVALID_TOKEN_FORMAT,
            f"Only access tokens are accepted, got {token_use!r}",
        )

    return domain


def ensure_domain(
    claims: Mapping[str, Any],
    expected_domain: TrustDomain,
    pools: PoolRegistry,
) -> TrustDomain:
    """Classify claims and reject tokens from the other pool.

    Raises:
        AuthorizationDenied: CROSS_POOL_ACCESS when the token belongs to the
            pool the endpoint does not serve.
    """
    domain = classify_claims(claims, pools)
    if domain is not expected_domain:
        raise AuthorizationDenied(
            ErrorCode.CROSS_POOL_ACCESS,
            f"{domain.value} token presented to a {expected_domain.value} endpoint",
            context={"crossPoolAttempt": "true", "tokenUserType": domain.value},
        )
    return domain


def resolve_staff_role(groups: list[str] | tuple[str, ...]) -> StaffRole:
    """Highest-precedence staff role among the token's groups."""
    for role in StaffRole:
        if role.value in groups:
            return role
    return StaffRole.TEAM_MEMBER


def parse_staff_permissions(raw: Any, role: StaffRole) -> frozenset[str]:
    """Permissions from the custom:permissions claim, or the role default."""
    try:
        value = json.loads(raw) if isinstance(raw, str) else raw
    except json.JSONDecodeError:
        value = None

    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return frozenset(value)

    logger.warning("Failed to parse staff permissions from token, using role-based permissions")
    return STAFF_ROLE_PERMISSIONS[role]


def _timestamp(claims: Mapping[str, Any], name: str) -> datetime:
    value = claims.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise AuthorizationDenied(
            ErrorCode.INVALID_TOKEN_FORMAT,
            f"Token claim {name!r} is missing or not numeric",
        )
    return datetime.fromtimestamp(value, tz=timezone.utc)


def build_principal(
    claims: Mapping[str, Any],
    expected_domain: TrustDomain,
    pools: PoolRegistry,
) -> Principal:
    """Build the tagged Principal for verified claims.

    Raises:
        AuthorizationDenied: INVALID_TOKEN_FORMAT or CROSS_POOL_ACCESS.
    """
    domain = ensure_domain(claims, expected_domain, pools)

    subject = claims.get("sub")
    if not subject:
        raise AuthorizationDenied(ErrorCode.INVALID_TOKEN_FORMAT, "Token has no subject")

    issued_at = _timestamp(claims, "iat")
    expires_at = _timestamp(claims, "exp")
    groups = claims.get("cognito:groups") or ()
    if isinstance(groups, str):
        groups = (groups,)
    groups = tuple(groups)
    email = str(claims.get("email") or "")

    if domain is TrustDomain.CUSTOMER:
        return CustomerPrincipal(
            principal_id=str(subject),
            email=email,
            issued_at=issued_at,
            expires_at=expires_at,
            raw_claims=claims,
            tier_hint=claims.get(CUSTOMER_DISCRIMINATOR),
            groups=groups,
        )

    role = resolve_staff_role(groups)
    return StaffPrincipal(
        principal_id=str(subject),
        email=email,
        issued_at=issued_at,
        expires_at=expires_at,
        raw_claims=claims,
        role=role,
        permissions=parse_staff_permissions(claims.get(STAFF_DISCRIMINATOR), role),
        team=claims.get("custom:team"),
    )
