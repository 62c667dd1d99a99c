"""
FastAPI dependencies for authorization.

Provides dependency injection for:
- Customer-only and staff-only endpoints
- Tier-gated customer features
- Resource-scoped dealer actions (ownership and delegation)

Each dependency asks the policy-decision service for a decision and either
returns the Allow decision or raises HTTPException with the mapped status.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, Request

from harbor_core.auth.decision_service import PolicyDecisionService
from harbor_core.auth.factory import get_decision_service
from harbor_core.auth.policy import DEALER_TIERS
from harbor_core.domain.auth import (
    AuthorizationRequest,
    CustomerTier,
    DealerAction,
    PolicyDecision,
    ResourceTarget,
    StaffRole,
    TrustDomain,
)
from harbor_core.runtime.context import RequestContext

# Decision context keys that are safe and useful in an error body
_DETAIL_CONTEXT_KEYS = ("requiredTier", "upgradeRequired")


def build_authorization_request(
    request: Request,
    expected_domain: TrustDomain,
    **kwargs,
) -> AuthorizationRequest:
    """Describe an inbound HTTP request as an AuthorizationRequest."""
    context = RequestContext.current(request)
    return AuthorizationRequest(
        authorization=request.headers.get("Authorization"),
        resource=f"{request.method} {request.url.path}",
        expected_domain=expected_domain,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
        request_id=context.request_id,
        **kwargs,
    )


def raise_for_decision(decision: PolicyDecision) -> PolicyDecision:
    """Return an Allow decision unchanged; turn a Deny into HTTPException.

    Raises:
        HTTPException: With the status mapped from the error code and a
            ``{code, message}`` detail.
    """
    if decision.allowed:
        return decision

    detail = {"code": decision.error_code, "message": decision.user_message}
    for key in _DETAIL_CONTEXT_KEYS:
        if key in decision.context:
            detail[key] = decision.context[key]

    status = decision.http_status
    headers = {"WWW-Authenticate": "Bearer"} if status == 401 else None
    raise HTTPException(status_code=status, detail=detail, headers=headers)


def require_customer(feature: str | None = None):
    """Dependency factory for endpoints open to any customer account.

    Usage:
        @router.get("/me")
        async def me(decision: PolicyDecision = Depends(require_customer())):
            ...
    """

    async def _check(
        request: Request,
        service: PolicyDecisionService = Depends(get_decision_service),
    ) -> PolicyDecision:
        auth_request = build_authorization_request(request, TrustDomain.CUSTOMER, feature=feature)
        return raise_for_decision(await service.evaluate(auth_request))

    return _check


def require_staff(
    *permissions: str,
    minimum_role: StaffRole | None = None,
):
    """Dependency factory for staff endpoints.

    Args:
        *permissions: Staff permissions that must all be held (``*`` grants all).
        minimum_role: Lowest staff role admitted.
    """

    async def _check(
        request: Request,
        service: PolicyDecisionService = Depends(get_decision_service),
    ) -> PolicyDecision:
        auth_request = build_authorization_request(
            request,
            TrustDomain.STAFF,
            required_staff_permissions=tuple(permissions),
            minimum_staff_role=minimum_role,
        )
        return raise_for_decision(await service.evaluate(auth_request))

    return _check


def require_tier(*tiers: CustomerTier, feature: str | None = None):
    """Dependency factory for tier-gated customer features.

    The tier is read from the profile store, never from the token.
    """
    required = frozenset(tiers)

    async def _check(
        request: Request,
        service: PolicyDecisionService = Depends(get_decision_service),
    ) -> PolicyDecision:
        auth_request = build_authorization_request(
            request,
            TrustDomain.CUSTOMER,
            required_tiers=required,
            feature=feature,
        )
        return raise_for_decision(await service.evaluate(auth_request))

    return _check


def require_dealer_action(
    action: DealerAction,
    target_factory: Callable[[Request], ResourceTarget],
):
    """Dependency factory for resource-scoped dealer actions.

    Args:
        action: The action the route performs.
        target_factory: Builds the ResourceTarget from the request, usually
            from its path parameters.
    """

    async def _check(
        request: Request,
        service: PolicyDecisionService = Depends(get_decision_service),
    ) -> PolicyDecision:
        auth_request = build_authorization_request(
            request,
            TrustDomain.CUSTOMER,
            action=action,
            target=target_factory(request),
        )
        return raise_for_decision(await service.evaluate(auth_request))

    return _check


# Convenience dependencies
require_dealer_tier = require_tier(*DEALER_TIERS, feature="dealer_features")
require_premium_tier = require_tier(CustomerTier.PREMIUM_DEALER, feature="premium_features")
