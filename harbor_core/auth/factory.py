"""
Authorization service factory.

Builds the policy-decision service and its collaborators from settings.
Routes reach it through FastAPI dependencies; tests replace it with
app.dependency_overrides.
"""

from __future__ import annotations

from functools import lru_cache

from harbor_core.auth.audit import AuditDispatcher, build_audit_sink
from harbor_core.auth.decision_service import PolicyDecisionService
from harbor_core.auth.jwt_service import JwtService
from harbor_core.infrastructure.profile_store import PostgresProfileStore


@lru_cache()
def get_audit_dispatcher() -> AuditDispatcher:
    """Get the audit dispatcher instance."""
    return AuditDispatcher(build_audit_sink())


@lru_cache()
def get_decision_service() -> PolicyDecisionService:
    """
    Get the policy decision service instance.

    Wires up dependencies: JwtService, PostgresProfileStore, AuditDispatcher.
    """
    return PolicyDecisionService(
        verifier=JwtService(),
        store=PostgresProfileStore(),
        audit=get_audit_dispatcher(),
    )
