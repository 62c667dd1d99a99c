"""
JWT service for access token verification.

Verifies tokens issued by the customer and staff identity pools. In AWS the
pools publish their signing keys as JWKS (RS256); locally a shared HS256
secret stands in for them. Issuing tokens is the identity provider's job.
"""

from __future__ import annotations

from typing import Any

import jwt
from loguru import logger

from harbor_core.config import settings
from harbor_core.domain.exceptions import CredentialVerificationError

REQUIRED_CLAIMS = ["exp", "iat", "iss", "sub"]


class JwtService:
    """Credential verifier for pool-issued access tokens."""

    def __init__(
        self,
        secret: str | None = None,
        jwks_urls: dict[str, str] | None = None,
        leeway: int | None = None,
    ):
        """Initialize the JWT service.

        Args:
            secret: HS256 signing secret. Defaults to settings.JWT_SECRET.
            jwks_urls: Mapping of issuer to JWKS URL. Defaults to the pool settings.
            leeway: Clock skew tolerance in seconds.
        """
        self.secret = settings.JWT_SECRET if secret is None else secret
        if jwks_urls is None:
            jwks_urls = {
                settings.CUSTOMER_POOL_ISSUER: settings.CUSTOMER_POOL_JWKS_URL,
                settings.STAFF_POOL_ISSUER: settings.STAFF_POOL_JWKS_URL,
            }
        self.jwks_urls = {issuer: url for issuer, url in jwks_urls.items() if url}
        self.leeway = settings.JWT_LEEWAY_SECONDS if leeway is None else leeway
        self._jwk_clients: dict[str, jwt.PyJWKClient] = {}

        if not self.secret and not self.jwks_urls:
            raise ValueError("JWT_SECRET or a pool JWKS URL must be configured")

    def _signing_key(self, token: str, issuer: str) -> tuple[Any, list[str]]:
        """Pick the verification key for the pool the token must come from."""
        url = self.jwks_urls.get(issuer)
        if url:
            client = self._jwk_clients.get(issuer)
            if client is None:
                client = jwt.PyJWKClient(url, cache_keys=True)
                self._jwk_clients[issuer] = client
            return client.get_signing_key_from_jwt(token).key, ["RS256"]
        if self.secret:
            return self.secret, ["HS256"]
        raise CredentialVerificationError(f"No verification key configured for issuer {issuer}")

    def verify(
        self,
        token: str,
        expected_issuer: str,
        expected_audience: str,
    ) -> dict[str, Any]:
        """Verify signature, expiry, issuer and audience, and return the claims.

        Cognito access tokens carry the app client in ``client_id`` rather
        than ``aud``; either satisfies the audience check.

        Raises:
            CredentialVerificationError: If any check fails.
        """
        try:
            key, algorithms = self._signing_key(token, expected_issuer)
            claims = jwt.decode(
                token,
                key,
                algorithms=algorithms,
                issuer=expected_issuer,
                leeway=self.leeway,
                options={"verify_aud": False, "require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as e:
            raise CredentialVerificationError("Token has expired", expired=True) from e
        except jwt.PyJWTError as e:
            raise CredentialVerificationError(f"Token verification failed: {e}") from e

        audience = claims.get("aud", claims.get("client_id"))
        audiences = audience if isinstance(audience, list) else [audience]
        if expected_audience not in audiences:
            raise CredentialVerificationError("Token audience is invalid")

        return claims

    @staticmethod
    def peek_claims(token: str) -> dict[str, Any] | None:
        """Decode claims without verifying them.

        Only ever used to deny early (cross-pool detection); never to allow.
        """
        try:
            return jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as e:
            logger.debug(f"Unable to decode token claims: {e}")
            return None
