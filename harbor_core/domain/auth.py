"""
Authentication and authorization domain models.

This module defines the core data structures for authorization:
- TrustDomain, CustomerTier, DealerRole, StaffRole: identity vocabularies
- CustomerPrincipal / StaffPrincipal: the authenticated actor, as a tagged union
- AccessScope / CustomerProfile: the authoritative tier and delegation record
- ResourceTarget / AuthorizationRequest: what is being asked
- PolicyDecision / AuditEntry: what was decided, and the record of it
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator

from harbor_core.runtime.errors import http_status_for


class TrustDomain(str, Enum):
    """The two disjoint identity pools."""

    CUSTOMER = "customer"
    STAFF = "staff"


class CustomerTier(str, Enum):
    """Commercial tier of a customer account, lowest first."""

    INDIVIDUAL = "individual"
    DEALER = "dealer"
    PREMIUM_DEALER = "premium_dealer"

    @property
    def level(self) -> int:
        return _TIER_ORDER.index(self)


_TIER_ORDER = list(CustomerTier)


class DealerRole(str, Enum):
    """Role of a dealer sub-account within its parent dealer."""

    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"


class StaffRole(str, Enum):
    """Internal staff roles, in precedence order (highest first)."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    TEAM_MEMBER = "team_member"

    @property
    def level(self) -> int:
        return len(_STAFF_ROLE_ORDER) - _STAFF_ROLE_ORDER.index(self)


_STAFF_ROLE_ORDER = list(StaffRole)


class Effect(str, Enum):
    ALLOW = "Allow"
    DENY = "Deny"


class PermissionSource(str, Enum):
    """Which evaluation path granted a resource-scoped Allow."""

    OWNER = "owner"
    SELF = "self"
    PARENT_DEALER = "parent_dealer"
    DELEGATED = "delegated"


class ResourceKind(str, Enum):
    SUB_ACCOUNT = "sub_account"
    LISTING = "listing"
    LEAD = "lead"
    ANALYTICS = "analytics"
    INVENTORY = "inventory"
    PRICING = "pricing"
    COMMUNICATIONS = "communications"


class DealerAction(str, Enum):
    """Actions evaluated by the ownership and delegation evaluator.

    The first group doubles as the permission strings a sub-account may hold.
    """

    MANAGE_LISTINGS = "manage_listings"
    CREATE_LISTINGS = "create_listings"
    EDIT_LISTINGS = "edit_listings"
    DELETE_LISTINGS = "delete_listings"
    VIEW_ANALYTICS = "view_analytics"
    RESPOND_TO_LEADS = "respond_to_leads"
    MANAGE_INVENTORY = "manage_inventory"
    UPDATE_PRICING = "update_pricing"
    MANAGE_COMMUNICATIONS = "manage_communications"

    # Sub-account management
    VIEW_SUB_ACCOUNT = "view_sub_account"
    CREATE_SUB_ACCOUNT = "create_sub_account"
    UPDATE_SUB_ACCOUNT = "update_sub_account"
    DELETE_SUB_ACCOUNT = "delete_sub_account"
    ASSIGN_SUB_ACCOUNT_ROLE = "assign_sub_account_role"
    MODIFY_ACCESS_SCOPE = "modify_access_scope"
    MODIFY_DELEGATED_PERMISSIONS = "modify_delegated_permissions"


# =============================================================================
# Principals
# =============================================================================


@dataclass(frozen=True)
class CustomerPrincipal:
    """Authenticated actor from the customer pool."""

    principal_id: str
    email: str
    issued_at: datetime
    expires_at: datetime
    raw_claims: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)
    tier_hint: str | None = None
    groups: tuple[str, ...] = ()
    trust_domain: Literal[TrustDomain.CUSTOMER] = field(default=TrustDomain.CUSTOMER, init=False)

    def __post_init__(self):
        object.__setattr__(self, "raw_claims", MappingProxyType(dict(self.raw_claims)))


@dataclass(frozen=True)
class StaffPrincipal:
    """Authenticated actor from the staff pool."""

    principal_id: str
    email: str
    issued_at: datetime
    expires_at: datetime
    raw_claims: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)
    role: StaffRole = StaffRole.TEAM_MEMBER
    permissions: frozenset[str] = frozenset()
    team: str | None = None
    trust_domain: Literal[TrustDomain.STAFF] = field(default=TrustDomain.STAFF, init=False)

    def __post_init__(self):
        object.__setattr__(self, "raw_claims", MappingProxyType(dict(self.raw_claims)))

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions or "*" in self.permissions


Principal = CustomerPrincipal | StaffPrincipal


# =============================================================================
# Customer profile
# =============================================================================


_SCOPE_FLAGS: dict[ResourceKind, str] = {
    ResourceKind.LEAD: "leads",
    ResourceKind.ANALYTICS: "analytics",
    ResourceKind.INVENTORY: "inventory",
    ResourceKind.PRICING: "pricing",
    ResourceKind.COMMUNICATIONS: "communications",
}


class AccessScope(BaseModel):
    """Per-sub-account resource restriction layered under delegated permissions."""

    model_config = ConfigDict(frozen=True)

    listings: Literal["all"] | frozenset[str] = frozenset()
    leads: bool = False
    analytics: bool = False
    inventory: bool = False
    pricing: bool = False
    communications: bool = False

    def allows(self, category: ResourceKind, resource_id: str | None = None) -> bool:
        """Check whether this scope admits a resource of the given category.

        Listing checks need the listing id unless the scope covers all listings.
        """
        if category is ResourceKind.LISTING:
            if self.listings == "all":
                return True
            return resource_id is not None and resource_id in self.listings
        field_name = _SCOPE_FLAGS.get(category)
        return field_name is not None and bool(getattr(self, field_name))


class CustomerProfile(BaseModel):
    """Authoritative commercial-tier record for a customer account."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str | None = None
    customer_tier: CustomerTier = CustomerTier.INDIVIDUAL
    is_dealer_sub_account: bool = False
    parent_dealer_id: str | None = None
    dealer_account_role: DealerRole | None = None
    access_scope: AccessScope | None = None
    delegated_permissions: frozenset[str] = frozenset()

    @model_validator(mode="after")
    def _check_sub_account_linkage(self) -> "CustomerProfile":
        has_parent = bool(self.parent_dealer_id)
        if self.is_dealer_sub_account != has_parent:
            raise ValueError("is_dealer_sub_account must be set exactly when parent_dealer_id is set")
        if self.is_dealer_sub_account and self.dealer_account_role is None:
            raise ValueError("dealer sub-accounts require a dealer_account_role")
        if not self.is_dealer_sub_account and self.dealer_account_role is not None:
            raise ValueError("dealer_account_role is only valid on dealer sub-accounts")
        if self.parent_dealer_id == self.user_id and has_parent:
            raise ValueError("a sub-account cannot be its own parent dealer")
        return self

    @property
    def is_dealer(self) -> bool:
        """True for top-level dealer accounts (sub-accounts are never dealers)."""
        return not self.is_dealer_sub_account and self.customer_tier in (
            CustomerTier.DEALER,
            CustomerTier.PREMIUM_DEALER,
        )


# =============================================================================
# Requests
# =============================================================================


@dataclass(frozen=True)
class ResourceTarget:
    """The resource an action is attempted on.

    owner_id is the owning account. For sub-account records it is the parent
    dealer. owner_parent_dealer_id is set when the owning account is itself a
    sub-account, so the chain root can be found.
    """

    kind: ResourceKind
    resource_id: str | None = None
    owner_id: str | None = None
    owner_parent_dealer_id: str | None = None

    @classmethod
    def sub_account(cls, sub_account_id: str) -> "ResourceTarget":
        """An existing sub-account; its parent is resolved from the store."""
        return cls(kind=ResourceKind.SUB_ACCOUNT, resource_id=sub_account_id)

    @classmethod
    def new_sub_account(cls, parent_dealer_id: str) -> "ResourceTarget":
        return cls(kind=ResourceKind.SUB_ACCOUNT, owner_id=parent_dealer_id)

    @classmethod
    def listing(
        cls,
        listing_id: str | None,
        owner_id: str,
        owner_parent_dealer_id: str | None = None,
    ) -> "ResourceTarget":
        return cls(
            kind=ResourceKind.LISTING,
            resource_id=listing_id,
            owner_id=owner_id,
            owner_parent_dealer_id=owner_parent_dealer_id,
        )

    @property
    def root_owner_id(self) -> str | None:
        return self.owner_parent_dealer_id or self.owner_id


@dataclass(frozen=True)
class AuthorizationRequest:
    """One authorization question: may this bearer perform this operation?"""

    authorization: str | None
    resource: str
    expected_domain: TrustDomain
    action: DealerAction | None = None
    target: ResourceTarget | None = None
    required_tiers: frozenset[CustomerTier] | None = None
    required_staff_permissions: tuple[str, ...] = ()
    minimum_staff_role: StaffRole | None = None
    feature: str | None = None
    ip_address: str = "unknown"
    user_agent: str = "unknown"
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if (self.action is None) != (self.target is None):
            raise ValueError("action and target must be given together")
        if self.required_tiers is not None and not self.required_tiers:
            raise ValueError("required_tiers must not be empty")

    @property
    def action_name(self) -> str:
        """Name recorded in the audit trail for this request."""
        if self.action is not None:
            return self.action.value
        return self.feature or "invoke"


# =============================================================================
# Decisions and audit
# =============================================================================


class PolicyDecision(BaseModel):
    """Authoritative Allow/Deny for one request. Never cached or reused."""

    model_config = ConfigDict(frozen=True)

    effect: Effect
    principal_id: str
    resource: str
    context: dict[str, str] = Field(default_factory=dict)
    error_code: str | None = None
    user_message: str | None = None

    @property
    def allowed(self) -> bool:
        return self.effect is Effect.ALLOW

    @property
    def http_status(self) -> int:
        """HTTP status a downstream handler should answer with."""
        if self.allowed:
            return 200
        return http_status_for(self.error_code)

    def to_policy_document(self) -> dict[str, Any]:
        """Render as an API Gateway authorizer result."""
        return {
            "principalId": self.principal_id,
            "policyDocument": {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Action": "execute-api:Invoke",
                        "Effect": self.effect.value,
                        "Resource": self.resource,
                    }
                ],
            },
            "context": dict(self.context),
        }


class AuditEntry(BaseModel):
    """Append-only record of one authorization outcome."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: str
    principal_id: str
    trust_domain: TrustDomain | None = None
    email: str | None = None
    action: str
    resource: str
    effect: Effect
    error_code: str | None = None
    ip_address: str = "unknown"
    user_agent: str = "unknown"
