"""
Auth module for harborlist-authz.

Provides token verification, trust-domain classification, tier and
delegation checks, the policy-decision service, and FastAPI dependencies.
"""

from harbor_core.auth.decision_service import PolicyDecisionService
from harbor_core.auth.delegation import AccessVerdict, evaluate_access
from harbor_core.auth.dependencies import (
    require_customer,
    require_dealer_action,
    require_dealer_tier,
    require_premium_tier,
    require_staff,
    require_tier,
)
from harbor_core.auth.exceptions import AuthorizationDenied, AuthorizationUnavailable
from harbor_core.auth.jwt_service import JwtService
from harbor_core.auth.middleware import RequestContextMiddleware

__all__ = [
    "PolicyDecisionService",
    "AccessVerdict",
    "evaluate_access",
    "JwtService",
    "RequestContextMiddleware",
    "AuthorizationDenied",
    "AuthorizationUnavailable",
    "require_customer",
    "require_staff",
    "require_tier",
    "require_dealer_tier",
    "require_premium_tier",
    "require_dealer_action",
]
