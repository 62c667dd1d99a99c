"""
Ownership and delegation evaluation for dealer-scoped resources.

All resource-scoped permission checks go through evaluate_access, which
applies a fixed first-match order:

1. Direct ownership of the resource (or of its owner's parent dealer).
2. A sub-account reading its own record.
3. A dealer managing one of its own sub-accounts.
4. A sub-account acting on its parent dealer's resources through a
   delegated permission that its access scope also admits. The parent
   must be a top-level account; a sub-account of a sub-account never
   inherits anything.
5. Otherwise FORBIDDEN.

The function is pure: the caller resolves every profile it needs first.
"""

from __future__ import annotations

from dataclasses import dataclass

from harbor_core.auth.policy import (
    ACTION_REQUIREMENTS,
    SUB_ACCOUNT_MANAGEMENT_ACTIONS,
    effective_permissions,
)
from harbor_core.domain.auth import (
    CustomerProfile,
    DealerAction,
    PermissionSource,
    ResourceKind,
    ResourceTarget,
)
from harbor_core.runtime.errors import ErrorCode


@dataclass(frozen=True)
class AccessVerdict:
    """Outcome of one ownership/delegation evaluation."""

    allowed: bool
    source: PermissionSource | None = None
    error_code: str | None = None
    required_permission: str | None = None

    @classmethod
    def allow(cls, source: PermissionSource) -> "AccessVerdict":
        return cls(allowed=True, source=source)

    @classmethod
    def deny(cls, error_code: str, required_permission: str | None = None) -> "AccessVerdict":
        return cls(allowed=False, error_code=error_code, required_permission=required_permission)


def _sub_account_parent(target: ResourceTarget, target_profile: CustomerProfile | None) -> str | None:
    """Parent dealer of a sub-account target.

    Existing sub-accounts are resolved from their stored record; a
    sub-account that is about to be created names its parent directly.
    """
    if target_profile is not None:
        return target_profile.parent_dealer_id if target_profile.is_dealer_sub_account else None
    if target.resource_id is None:
        return target.owner_id
    return None


def _is_direct_owner(actor: CustomerProfile, target: ResourceTarget) -> bool:
    if target.kind is ResourceKind.SUB_ACCOUNT:
        return False
    return actor.user_id in (target.owner_id, target.root_owner_id)


def _is_top_level_parent(actor: CustomerProfile, parent_profile: CustomerProfile | None) -> bool:
    """True when parent_profile is the actor's parent and is not itself a sub-account."""
    return (
        parent_profile is not None
        and parent_profile.user_id == actor.parent_dealer_id
        and not parent_profile.is_dealer_sub_account
    )


def evaluate_access(
    actor: CustomerProfile,
    target: ResourceTarget,
    action: DealerAction,
    target_profile: CustomerProfile | None = None,
    parent_profile: CustomerProfile | None = None,
) -> AccessVerdict:
    """Decide whether actor may perform action on target.

    Args:
        actor: Authoritative profile of the acting customer.
        target: The resource being acted on.
        action: The action attempted.
        target_profile: Stored record of the addressed sub-account, for
            SUB_ACCOUNT targets that already exist.
        parent_profile: Stored record of the actor's parent dealer. Required
            for a sub-account actor to act on its parent's resources.

    Returns:
        AccessVerdict with the permission source on Allow, or one of
        PERMISSION_DENIED, SCOPE_RESTRICTED, FORBIDDEN on Deny.
    """
    # 1. Direct ownership
    if _is_direct_owner(actor, target):
        return AccessVerdict.allow(PermissionSource.OWNER)

    is_sub_account_target = target.kind is ResourceKind.SUB_ACCOUNT
    target_parent = _sub_account_parent(target, target_profile) if is_sub_account_target else None

    # 2. Sub-account reading its own record
    if (
        is_sub_account_target
        and action is DealerAction.VIEW_SUB_ACCOUNT
        and target.resource_id is not None
        and target.resource_id == actor.user_id
    ):
        return AccessVerdict.allow(PermissionSource.SELF)

    # 3. Parent dealer managing its own sub-account
    if (
        is_sub_account_target
        and actor.is_dealer
        and target_parent == actor.user_id
        and action in SUB_ACCOUNT_MANAGEMENT_ACTIONS
    ):
        return AccessVerdict.allow(PermissionSource.PARENT_DEALER)

    # 4. Sub-account acting on its parent dealer's resources
    if not actor.is_dealer_sub_account:
        return AccessVerdict.deny(ErrorCode.FORBIDDEN)
    if not _is_top_level_parent(actor, parent_profile):
        return AccessVerdict.deny(ErrorCode.FORBIDDEN)

    if is_sub_account_target:
        belongs_to_parent = target_parent == actor.parent_dealer_id
    else:
        belongs_to_parent = target.root_owner_id == actor.parent_dealer_id
    if not belongs_to_parent:
        return AccessVerdict.deny(ErrorCode.FORBIDDEN)

    requirement = ACTION_REQUIREMENTS[action]
    if requirement.permission is None:
        # Role, scope and permission changes stay with the parent dealer.
        return AccessVerdict.deny(ErrorCode.FORBIDDEN)

    if requirement.permission not in effective_permissions(actor):
        return AccessVerdict.deny(ErrorCode.PERMISSION_DENIED, requirement.permission)

    if requirement.scope is not None:
        scope = actor.access_scope
        if scope is None or not scope.allows(requirement.scope, target.resource_id):
            return AccessVerdict.deny(ErrorCode.SCOPE_RESTRICTED, requirement.permission)

    return AccessVerdict.allow(PermissionSource.DELEGATED)
