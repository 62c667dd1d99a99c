"""
Dealer sub-account authorization routes.

Provides endpoints for:
- Viewing a sub-account record (the sub-account itself or its parent dealer)
- Viewing a sub-account's effective permissions and access scope
- Resource-scoped authorization checks for downstream dealer handlers
"""

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, model_validator

from harbor_core.auth.decision_service import PolicyDecisionService
from harbor_core.auth.dependencies import build_authorization_request, require_dealer_action
from harbor_core.auth.factory import get_decision_service
from harbor_core.auth.policy import DEALER_ROLE_PERMISSIONS, ROLE_RESERVED_PERMISSIONS, effective_permissions
from harbor_core.domain.auth import (
    AccessScope,
    CustomerProfile,
    DealerAction,
    DealerRole,
    PolicyDecision,
    ResourceKind,
    ResourceTarget,
    TrustDomain,
)

router = APIRouter(prefix="/dealer", tags=["dealer"])


# =============================================================================
# Request/Response Schemas
# =============================================================================


class SubAccountResponse(BaseModel):
    """A dealer sub-account as its viewers see it."""

    user_id: str
    email: str | None
    parent_dealer_id: str | None
    dealer_account_role: DealerRole | None
    access_scope: AccessScope | None
    delegated_permissions: list[str]


class PermissionsResponse(BaseModel):
    """Derived permission set of a sub-account."""

    user_id: str
    dealer_account_role: DealerRole | None
    role_permissions: list[str]
    explicit_permissions: list[str]
    ignored_permissions: list[str]
    effective_permissions: list[str]
    access_scope: AccessScope | None


class ResourceAuthorizeRequest(BaseModel):
    """A resource-scoped question from a downstream dealer handler."""

    action: DealerAction
    resource_kind: ResourceKind
    resource_id: str | None = None
    owner_id: str | None = None
    owner_parent_dealer_id: str | None = None

    @model_validator(mode="after")
    def _check_target(self) -> "ResourceAuthorizeRequest":
        if self.resource_kind is ResourceKind.SUB_ACCOUNT:
            if not self.resource_id and not self.owner_id:
                raise ValueError("sub_account targets need resource_id, or owner_id for a new sub-account")
        elif not self.owner_id:
            raise ValueError("owner_id is required for non sub-account resources")
        return self

    def to_target(self) -> ResourceTarget:
        if self.resource_kind is ResourceKind.SUB_ACCOUNT and self.resource_id:
            return ResourceTarget.sub_account(self.resource_id)
        return ResourceTarget(
            kind=self.resource_kind,
            resource_id=self.resource_id,
            owner_id=self.owner_id,
            owner_parent_dealer_id=self.owner_parent_dealer_id,
        )


# =============================================================================
# Helpers
# =============================================================================


def _sub_account_target(request: Request) -> ResourceTarget:
    return ResourceTarget.sub_account(request.path_params["sub_account_id"])


require_view_sub_account = require_dealer_action(DealerAction.VIEW_SUB_ACCOUNT, _sub_account_target)


async def _load_profile(service: PolicyDecisionService, user_id: str) -> CustomerProfile:
    # Raises ServiceError subclasses, rendered by the app's exception handler
    return await service.tier_resolver.fetch_profile(user_id)


# =============================================================================
# Routes
# =============================================================================


@router.get("/sub-accounts/{sub_account_id}", response_model=SubAccountResponse)
async def get_sub_account(
    sub_account_id: str,
    decision: PolicyDecision = Depends(require_view_sub_account),
    service: PolicyDecisionService = Depends(get_decision_service),
):
    """Return a sub-account record to the sub-account itself or its parent dealer."""
    profile = await _load_profile(service, sub_account_id)
    return SubAccountResponse(
        user_id=profile.user_id,
        email=profile.email,
        parent_dealer_id=profile.parent_dealer_id,
        dealer_account_role=profile.dealer_account_role,
        access_scope=profile.access_scope,
        delegated_permissions=sorted(profile.delegated_permissions),
    )


@router.get("/sub-accounts/{sub_account_id}/permissions", response_model=PermissionsResponse)
async def get_sub_account_permissions(
    sub_account_id: str,
    decision: PolicyDecision = Depends(require_view_sub_account),
    service: PolicyDecisionService = Depends(get_decision_service),
):
    """Return role default, explicit extras and the effective permission set.

    Defaults are derived from current policy on every read, never stored.
    """
    profile = await _load_profile(service, sub_account_id)
    role = profile.dealer_account_role
    role_permissions = DEALER_ROLE_PERMISSIONS[role] if role else frozenset()
    return PermissionsResponse(
        user_id=profile.user_id,
        dealer_account_role=role,
        role_permissions=sorted(role_permissions),
        explicit_permissions=sorted(profile.delegated_permissions),
        ignored_permissions=sorted(profile.delegated_permissions & ROLE_RESERVED_PERMISSIONS),
        effective_permissions=sorted(effective_permissions(profile)),
        access_scope=profile.access_scope,
    )


@router.post("/authorize")
async def authorize_resource_action(
    request: Request,
    body: ResourceAuthorizeRequest = Body(...),
    service: PolicyDecisionService = Depends(get_decision_service),
):
    """Evaluate ownership and delegation for one resource action.

    Returns the PolicyDecision with the HTTP status its error code maps to.
    """
    auth_request = build_authorization_request(
        request,
        TrustDomain.CUSTOMER,
        action=body.action,
        target=body.to_target(),
    )
    decision = await service.evaluate(auth_request)
    return JSONResponse(status_code=decision.http_status, content=decision.model_dump(mode="json"))
