"""
Service interfaces (Protocols) for the authorization core.

The policy-decision service talks to its external collaborators only
through these narrow contracts, so tests can substitute fakes and the
lifecycle of real clients stays with whoever constructs them.
"""

from typing import Any, Protocol, runtime_checkable

from harbor_core.domain.auth import AuditEntry, CustomerProfile


@runtime_checkable
class CredentialVerifierProtocol(Protocol):
    """Interface for structural and cryptographic token verification."""

    def verify(self, token: str, expected_issuer: str, expected_audience: str) -> dict[str, Any]:
        """
        Verify a signed token for one identity pool.

        Args:
            token: The raw JWT (no "Bearer " prefix).
            expected_issuer: Issuer of the pool the endpoint belongs to.
            expected_audience: App client of that pool.

        Returns:
            dict: The verified claims.

        Raises:
            CredentialVerificationError: If the token fails verification.
        """
        ...

    def peek_claims(self, token: str) -> dict[str, Any] | None:
        """
        Decode claims without verification, or None if undecodable.
        """
        ...


@runtime_checkable
class ProfileStoreProtocol(Protocol):
    """Interface for the read-mostly customer profile store."""

    async def get_customer_profile(self, user_id: str) -> CustomerProfile | None:
        """
        Fetch the authoritative profile for a customer account.

        Args:
            user_id: The account's principal id.

        Returns:
            CustomerProfile, or None if no such account exists.

        Raises:
            ProfileStoreError: If the store is unreachable.
        """
        ...


@runtime_checkable
class AuditSinkProtocol(Protocol):
    """Interface for the write-only, best-effort audit trail."""

    async def append(self, entry: AuditEntry) -> None:
        """
        Persist one audit entry.

        Raises:
            AuditWriteError: If the entry could not be written. Callers
                log this and carry on.
        """
        ...
