"""
Standard exceptions for the HarborList authorization core.

This module defines the hierarchy of exceptions raised by the external
collaborators (credential verifier, profile store, audit sink).
"""


class HarborError(Exception):
    """Base exception for all HarborList errors."""
    pass


class CredentialVerificationError(HarborError):
    """A bearer token failed structural or cryptographic verification."""

    def __init__(self, message: str, expired: bool = False):
        super().__init__(message)
        self.expired = expired


class ProfileStoreError(HarborError):
    """The customer profile store could not be reached or queried."""
    pass


class AuditWriteError(HarborError):
    """An audit entry could not be persisted."""
    pass
