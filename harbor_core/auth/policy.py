"""
Fixed authorization policy tables.

Default permission sets are derived at evaluation time, never stored on the
profile, so a change here applies to every existing sub-account.
"""

from __future__ import annotations

from dataclasses import dataclass

from harbor_core.domain.auth import (
    CustomerProfile,
    CustomerTier,
    DealerAction,
    DealerRole,
    ResourceKind,
    StaffRole,
)

MANAGE_SUB_ACCOUNTS = "manage_sub_accounts"

DEALER_ROLE_PERMISSIONS: dict[DealerRole, frozenset[str]] = {
    DealerRole.ADMIN: frozenset(
        {
            "manage_listings",
            "create_listings",
            "edit_listings",
            "delete_listings",
            "view_analytics",
            "respond_to_leads",
            "manage_inventory",
            "update_pricing",
            "manage_communications",
            MANAGE_SUB_ACCOUNTS,
        }
    ),
    DealerRole.MANAGER: frozenset(
        {
            "manage_listings",
            "create_listings",
            "edit_listings",
            "view_analytics",
            "respond_to_leads",
            "manage_inventory",
            "update_pricing",
            "manage_communications",
        }
    ),
    DealerRole.STAFF: frozenset(
        {
            "edit_listings",
            "respond_to_leads",
            "manage_communications",
        }
    ),
}

# Only conferred by a role default; explicit grants are ignored.
ROLE_RESERVED_PERMISSIONS = frozenset({MANAGE_SUB_ACCOUNTS})


@dataclass(frozen=True)
class ActionRequirement:
    """What a sub-account needs to perform an action on its parent's resource.

    permission is None for actions that can never be delegated.
    scope is None for actions with no access-scope category.
    """

    permission: str | None
    scope: ResourceKind | None


ACTION_REQUIREMENTS: dict[DealerAction, ActionRequirement] = {
    DealerAction.MANAGE_LISTINGS: ActionRequirement("manage_listings", ResourceKind.LISTING),
    DealerAction.CREATE_LISTINGS: ActionRequirement("create_listings", ResourceKind.LISTING),
    DealerAction.EDIT_LISTINGS: ActionRequirement("edit_listings", ResourceKind.LISTING),
    DealerAction.DELETE_LISTINGS: ActionRequirement("delete_listings", ResourceKind.LISTING),
    DealerAction.VIEW_ANALYTICS: ActionRequirement("view_analytics", ResourceKind.ANALYTICS),
    DealerAction.RESPOND_TO_LEADS: ActionRequirement("respond_to_leads", ResourceKind.LEAD),
    DealerAction.MANAGE_INVENTORY: ActionRequirement("manage_inventory", ResourceKind.INVENTORY),
    DealerAction.UPDATE_PRICING: ActionRequirement("update_pricing", ResourceKind.PRICING),
    DealerAction.MANAGE_COMMUNICATIONS: ActionRequirement(
        "manage_communications", ResourceKind.COMMUNICATIONS
    ),
    DealerAction.VIEW_SUB_ACCOUNT: ActionRequirement(MANAGE_SUB_ACCOUNTS, None),
    DealerAction.CREATE_SUB_ACCOUNT: ActionRequirement(MANAGE_SUB_ACCOUNTS, None),
    DealerAction.UPDATE_SUB_ACCOUNT: ActionRequirement(MANAGE_SUB_ACCOUNTS, None),
    DealerAction.DELETE_SUB_ACCOUNT: ActionRequirement(MANAGE_SUB_ACCOUNTS, None),
    DealerAction.ASSIGN_SUB_ACCOUNT_ROLE: ActionRequirement(None, None),
    DealerAction.MODIFY_ACCESS_SCOPE: ActionRequirement(None, None),
    DealerAction.MODIFY_DELEGATED_PERMISSIONS: ActionRequirement(None, None),
}

SUB_ACCOUNT_MANAGEMENT_ACTIONS = frozenset(
    {
        DealerAction.VIEW_SUB_ACCOUNT,
        DealerAction.CREATE_SUB_ACCOUNT,
        DealerAction.UPDATE_SUB_ACCOUNT,
        DealerAction.DELETE_SUB_ACCOUNT,
        DealerAction.ASSIGN_SUB_ACCOUNT_ROLE,
        DealerAction.MODIFY_ACCESS_SCOPE,
        DealerAction.MODIFY_DELEGATED_PERMISSIONS,
    }
)

DEALER_TIERS = frozenset({CustomerTier.DEALER, CustomerTier.PREMIUM_DEALER})


def effective_permissions(profile: CustomerProfile) -> frozenset[str]:
    """Role default plus explicit extras for a dealer sub-account.

    Top-level accounts have no delegated permissions at all.
    """
    if not profile.is_dealer_sub_account or profile.dealer_account_role is None:
        return frozenset()
    extras = profile.delegated_permissions - ROLE_RESERVED_PERMISSIONS
    return DEALER_ROLE_PERMISSIONS[profile.dealer_account_role] | extras


def lowest_tier(tiers: frozenset[CustomerTier]) -> CustomerTier:
    return min(tiers, key=lambda tier: tier.level)


# Staff permissions
STAFF_PERMISSION_NAMES = (
    "user_management",
    "content_moderation",
    "financial_access",
    "system_config",
    "analytics_view",
    "audit_log_view",
    "tier_management",
    "capability_assignment",
    "billing_management",
    "sales_management",
    "platform_settings",
    "support_access",
)

STAFF_ROLE_PERMISSIONS: dict[StaffRole, frozenset[str]] = {
    StaffRole.SUPER_ADMIN: frozenset(STAFF_PERMISSION_NAMES),
    StaffRole.ADMIN: frozenset(
        {
            "user_management",
            "content_moderation",
            "system_config",
            "analytics_view",
            "audit_log_view",
            "tier_management",
            "billing_management",
            "platform_settings",
        }
    ),
    StaffRole.MANAGER: frozenset(
        {
            "user_management",
            "content_moderation",
            "analytics_view",
            "audit_log_view",
            "sales_management",
        }
    ),
    StaffRole.TEAM_MEMBER: frozenset(
        {
            "content_moderation",
            "analytics_view",
            "support_access",
        }
    ),
}
