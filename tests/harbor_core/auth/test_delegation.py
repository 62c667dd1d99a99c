"""Unit tests for ownership and delegation evaluation."""

import pytest

from harbor_core.auth.delegation import evaluate_access
from harbor_core.domain.auth import (
    AccessScope,
    CustomerProfile,
    CustomerTier,
    DealerAction,
    DealerRole,
    PermissionSource,
    ResourceKind,
    ResourceTarget,
)
from harbor_core.runtime.errors import ErrorCode


@pytest.fixture
def profiles(profile_store):
    return profile_store.profiles


@pytest.fixture
def evaluate(profiles):
    """evaluate_access with the actor's stored parent resolved, as the decision service does."""

    def run(actor, target, action, target_profile=None):
        parent = profiles.get(actor.parent_dealer_id) if actor.parent_dealer_id else None
        return evaluate_access(actor, target, action, target_profile, parent)

    return run


class TestDirectOwnership:
    """Step 1: the owner of a resource."""

    def test_owner_may_act_on_own_listing(self, profiles, evaluate):
        """A dealer acting on its own listing is allowed as owner."""
        verdict = evaluate(
            profiles["D1"],
            ResourceTarget.listing("L-1", owner_id="D1"),
            DealerAction.DELETE_LISTINGS,
        )

        assert verdict.allowed
        assert verdict.source is PermissionSource.OWNER

    def test_chain_root_owns_sub_account_resources(self, profiles, evaluate):
        """A dealer owns listings created by its sub-accounts."""
        verdict = evaluate(
            profiles["D1"],
            ResourceTarget.listing("L-9", owner_id="S1", owner_parent_dealer_id="D1"),
            DealerAction.EDIT_LISTINGS,
        )

        assert verdict.allowed
        assert verdict.source is PermissionSource.OWNER

    def test_individual_owner_needs_no_delegation(self, profiles, evaluate):
        """Ownership is independent of tier."""
        verdict = evaluate(
            profiles["IND"],
            ResourceTarget.listing("L-ind", owner_id="IND"),
            DealerAction.EDIT_LISTINGS,
        )

        assert verdict.allowed


class TestSelfScope:
    """Step 2: a sub-account reading itself."""

    def test_sub_account_can_view_itself(self, profiles, evaluate):
        """Self-read is allowed without any delegated permission."""
        verdict = evaluate(
            profiles["S2"],
            ResourceTarget.sub_account("S2"),
            DealerAction.VIEW_SUB_ACCOUNT,
            target_profile=profiles["S2"],
        )

        assert verdict.allowed
        assert verdict.source is PermissionSource.SELF

    def test_sub_account_cannot_change_its_own_role(self, profiles, evaluate):
        """Self-scope covers reads only."""
        verdict = evaluate(
            profiles["S1"],
            ResourceTarget.sub_account("S1"),
            DealerAction.ASSIGN_SUB_ACCOUNT_ROLE,
            target_profile=profiles["S1"],
        )

        assert not verdict.allowed
        assert verdict.error_code == ErrorCode.FORBIDDEN


class TestParentDealer:
    """Step 3: a dealer managing its own sub-accounts."""

    @pytest.mark.parametrize(
        "action",
        [
            DealerAction.VIEW_SUB_ACCOUNT,
            DealerAction.UPDATE_SUB_ACCOUNT,
            DealerAction.DELETE_SUB_ACCOUNT,
            DealerAction.ASSIGN_SUB_ACCOUNT_ROLE,
            DealerAction.MODIFY_ACCESS_SCOPE,
            DealerAction.MODIFY_DELEGATED_PERMISSIONS,
        ],
    )
    def test_parent_may_manage_own_sub_account(self, profiles, evaluate, action):
        """Every management action on an own sub-account is allowed."""
        verdict = evaluate(
            profiles["D1"],
            ResourceTarget.sub_account("S1"),
            action,
            target_profile=profiles["S1"],
        )

        assert verdict.allowed
        assert verdict.source is PermissionSource.PARENT_DEALER

    def test_parent_may_create_sub_account(self, profiles, evaluate):
        """Creating a sub-account under oneself is allowed."""
        verdict = evaluate(
            profiles["D1"],
            ResourceTarget.new_sub_account("D1"),
            DealerAction.CREATE_SUB_ACCOUNT,
        )

        assert verdict.allowed
        assert verdict.source is PermissionSource.PARENT_DEALER

    def test_other_dealer_is_forbidden(self, profiles, evaluate):
        """A dealer managing another dealer's sub-account is FORBIDDEN."""
        verdict = evaluate(
            profiles["D2"],
            ResourceTarget.sub_account("S1"),
            DealerAction.UPDATE_SUB_ACCOUNT,
            target_profile=profiles["S1"],
        )

        assert not verdict.allowed
        assert verdict.error_code == ErrorCode.FORBIDDEN

    def test_downgraded_parent_loses_management(self, profiles, evaluate):
        """The parent path requires the parent to still be dealer tier."""
        downgraded = profiles["D1"].model_copy(update={"customer_tier": CustomerTier.INDIVIDUAL})

        verdict = evaluate(
            downgraded,
            ResourceTarget.sub_account("S1"),
            DealerAction.UPDATE_SUB_ACCOUNT,
            target_profile=profiles["S1"],
        )

        assert verdict.error_code == ErrorCode.FORBIDDEN


class TestDelegatedPermissions:
    """Step 4: a sub-account acting on its parent's resources."""

    def test_scenario_a_manager_edits_parent_listing(self, profiles, evaluate):
        """A manager with listings: all may edit its dealer's listing."""
        verdict = evaluate(
            profiles["S1"],
            ResourceTarget.listing("L-1", owner_id="D1"),
            DealerAction.EDIT_LISTINGS,
        )

        assert verdict.allowed
        assert verdict.source is PermissionSource.DELEGATED

    def test_scenario_b_manager_cannot_delete_listing(self, profiles, evaluate):
        """delete_listings is outside the manager default and not delegated."""
        verdict = evaluate(
            profiles["S1"],
            ResourceTarget.listing("L-1", owner_id="D1"),
            DealerAction.DELETE_LISTINGS,
        )

        assert not verdict.allowed
        assert verdict.error_code == ErrorCode.PERMISSION_DENIED
        assert verdict.required_permission == "delete_listings"

    def test_explicit_extra_grants_permission(self, profiles, evaluate):
        """An explicit extra extends the role default."""
        s1 = profiles["S1"].model_copy(update={"delegated_permissions": frozenset({"delete_listings"})})

        verdict = evaluate(
            s1,
            ResourceTarget.listing("L-1", owner_id="D1"),
            DealerAction.DELETE_LISTINGS,
        )

        assert verdict.allowed

    def test_scenario_c_cross_dealer_update_is_forbidden(self, profiles, evaluate):
        """S1 of D1 updating S2 of D2 is FORBIDDEN, not a permission error."""
        verdict = evaluate(
            profiles["S1"],
            ResourceTarget.sub_account("S2"),
            DealerAction.UPDATE_SUB_ACCOUNT,
            target_profile=profiles["S2"],
        )

        assert not verdict.allowed
        assert verdict.error_code == ErrorCode.FORBIDDEN

    def test_scope_law_permission_without_scope_is_scope_restricted(self, profiles, evaluate):
        """respond_to_leads held but leads: false is SCOPE_RESTRICTED."""
        verdict = evaluate(
            profiles["S3"],
            ResourceTarget(kind=ResourceKind.LEAD, resource_id="lead-1", owner_id="D1"),
            DealerAction.RESPOND_TO_LEADS,
        )

        assert not verdict.allowed
        assert verdict.error_code == ErrorCode.SCOPE_RESTRICTED

    def test_listing_outside_explicit_set_is_scope_restricted(self, profiles, evaluate):
        """An explicit listing set admits only its members."""
        target_in = ResourceTarget.listing("L-1", owner_id="D1")
        target_out = ResourceTarget.listing("L-2", owner_id="D1")

        assert evaluate(profiles["S3"], target_in, DealerAction.EDIT_LISTINGS).allowed
        assert (
            evaluate(profiles["S3"], target_out, DealerAction.EDIT_LISTINGS).error_code
            == ErrorCode.SCOPE_RESTRICTED
        )

    def test_missing_scope_restricts_everything(self, profiles, evaluate):
        """A sub-account without an access scope cannot reach scoped resources."""
        s1 = profiles["S1"].model_copy(update={"access_scope": None})

        verdict = evaluate(
            s1,
            ResourceTarget.listing("L-1", owner_id="D1"),
            DealerAction.EDIT_LISTINGS,
        )

        assert verdict.error_code == ErrorCode.SCOPE_RESTRICTED

    def test_staff_role_cannot_manage_sub_accounts_even_if_granted(self, profiles, evaluate):
        """manage_sub_accounts granted explicitly to a staff role is ignored."""
        assert "manage_sub_accounts" in profiles["S3"].delegated_permissions

        verdict = evaluate(
            profiles["S3"],
            ResourceTarget.new_sub_account("D1"),
            DealerAction.CREATE_SUB_ACCOUNT,
        )

        assert not verdict.allowed
        assert verdict.error_code == ErrorCode.PERMISSION_DENIED

    def test_admin_sub_account_manages_siblings(self, profiles, evaluate):
        """An admin sub-account may update a sibling sub-account."""
        verdict = evaluate(
            profiles["A1"],
            ResourceTarget.sub_account("S1"),
            DealerAction.UPDATE_SUB_ACCOUNT,
            target_profile=profiles["S1"],
        )

        assert verdict.allowed
        assert verdict.source is PermissionSource.DELEGATED

    def test_admin_sub_account_cannot_change_sibling_permissions(self, profiles, evaluate):
        """Permission-set mutation stays with the parent dealer."""
        verdict = evaluate(
            profiles["A1"],
            ResourceTarget.sub_account("S1"),
            DealerAction.MODIFY_DELEGATED_PERMISSIONS,
            target_profile=profiles["S1"],
        )

        assert verdict.error_code == ErrorCode.FORBIDDEN

    def test_sub_account_of_other_dealer_is_forbidden(self, profiles, evaluate):
        """Delegation never reaches another dealer's resources."""
        verdict = evaluate(
            profiles["S1"],
            ResourceTarget.listing("L-D2-1", owner_id="D2"),
            DealerAction.EDIT_LISTINGS,
        )

        assert verdict.error_code == ErrorCode.FORBIDDEN

    def test_role_default_change_applies_to_existing_sub_accounts(self, profiles, evaluate, monkeypatch):
        """Defaults are derived on every evaluation, so policy edits apply retroactively."""
        from harbor_core.auth import policy

        patched = dict(policy.DEALER_ROLE_PERMISSIONS)
        patched[DealerRole.MANAGER] = patched[DealerRole.MANAGER] | {"delete_listings"}
        monkeypatch.setattr(policy, "DEALER_ROLE_PERMISSIONS", patched)

        verdict = evaluate(
            profiles["S1"],
            ResourceTarget.listing("L-1", owner_id="D1"),
            DealerAction.DELETE_LISTINGS,
        )

        assert verdict.allowed

    @pytest.mark.parametrize(
        "action,kind,flag",
        [
            (DealerAction.RESPOND_TO_LEADS, ResourceKind.LEAD, "leads"),
            (DealerAction.VIEW_ANALYTICS, ResourceKind.ANALYTICS, "analytics"),
            (DealerAction.MANAGE_INVENTORY, ResourceKind.INVENTORY, "inventory"),
            (DealerAction.UPDATE_PRICING, ResourceKind.PRICING, "pricing"),
            (DealerAction.MANAGE_COMMUNICATIONS, ResourceKind.COMMUNICATIONS, "communications"),
        ],
    )
    def test_permission_and_scope_flag_allows(self, profiles, evaluate, action, kind, flag):
        """Holding the permission with the matching scope flag set is a delegated Allow."""
        s1 = profiles["S1"].model_copy(update={"access_scope": AccessScope(**{flag: True})})
        target = ResourceTarget(kind=kind, resource_id=f"{kind.value}-1", owner_id="D1")

        verdict = evaluate(s1, target, action)

        assert verdict.allowed
        assert verdict.source is PermissionSource.DELEGATED

    @pytest.mark.parametrize(
        "action,kind",
        [
            (DealerAction.RESPOND_TO_LEADS, ResourceKind.LEAD),
            (DealerAction.VIEW_ANALYTICS, ResourceKind.ANALYTICS),
            (DealerAction.MANAGE_INVENTORY, ResourceKind.INVENTORY),
            (DealerAction.UPDATE_PRICING, ResourceKind.PRICING),
            (DealerAction.MANAGE_COMMUNICATIONS, ResourceKind.COMMUNICATIONS),
        ],
    )
    def test_listing_scope_does_not_admit_other_categories(self, profiles, evaluate, action, kind):
        s1 = profiles["S1"].model_copy(update={"access_scope": AccessScope(listings="all")})
        target = ResourceTarget(kind=kind, resource_id=f"{kind.value}-1", owner_id="D1")

        assert evaluate(s1, target, action).error_code == ErrorCode.SCOPE_RESTRICTED


class TestNesting:
    """Delegation only flows from a top-level parent."""

    @pytest.fixture
    def nested(self, profiles):
        """A manager sub-account whose parent S1 is itself a sub-account."""
        return profiles["S1"].model_copy(update={"user_id": "S1a", "parent_dealer_id": "S1"})

    def test_sub_account_of_sub_account_is_forbidden(self, profiles, nested):
        verdict = evaluate_access(
            nested,
            ResourceTarget.listing("L-9", owner_id="S1"),
            DealerAction.EDIT_LISTINGS,
            parent_profile=profiles["S1"],
        )

        assert not verdict.allowed
        assert verdict.error_code == ErrorCode.FORBIDDEN

    def test_nested_actor_cannot_reach_grandparent_resources(self, profiles, nested):
        verdict = evaluate_access(
            nested,
            ResourceTarget.listing("L-1", owner_id="S1", owner_parent_dealer_id="D1"),
            DealerAction.EDIT_LISTINGS,
            parent_profile=profiles["S1"],
        )

        assert verdict.error_code == ErrorCode.FORBIDDEN

    def test_unresolved_parent_is_forbidden(self, profiles):
        """Without the parent's record a sub-account inherits nothing."""
        verdict = evaluate_access(
            profiles["S1"],
            ResourceTarget.listing("L-1", owner_id="D1"),
            DealerAction.EDIT_LISTINGS,
        )

        assert verdict.error_code == ErrorCode.FORBIDDEN

    def test_mismatched_parent_record_is_forbidden(self, profiles):
        verdict = evaluate_access(
            profiles["S1"],
            ResourceTarget.listing("L-1", owner_id="D1"),
            DealerAction.EDIT_LISTINGS,
            parent_profile=profiles["D2"],
        )

        assert verdict.error_code == ErrorCode.FORBIDDEN

    def test_dealer_cannot_manage_nested_sub_account(self, profiles, nested):
        """A sub-account target hanging off another sub-account is not the dealer's to manage."""
        verdict = evaluate_access(
            profiles["D1"],
            ResourceTarget.sub_account("S1a"),
            DealerAction.UPDATE_SUB_ACCOUNT,
            target_profile=nested,
        )

        assert verdict.error_code == ErrorCode.FORBIDDEN


class TestNoMatch:
    """Step 5: nothing matches."""

    def test_stranger_is_forbidden(self, profiles, evaluate):
        """A top-level account acting on someone else's listing is FORBIDDEN."""
        verdict = evaluate(
            profiles["IND"],
            ResourceTarget.listing("L-1", owner_id="D1"),
            DealerAction.EDIT_LISTINGS,
        )

        assert not verdict.allowed
        assert verdict.error_code == ErrorCode.FORBIDDEN

    def test_evaluation_is_idempotent(self, profiles, evaluate):
        """Same inputs give the same verdict."""
        args = (profiles["S1"], ResourceTarget.listing("L-1", owner_id="D1"), DealerAction.EDIT_LISTINGS)

        assert evaluate(*args) == evaluate(*args)


class TestProfileInvariants:
    """The sub-account linkage invariant is enforced on construction."""

    def test_sub_account_without_parent_is_rejected(self):
        with pytest.raises(ValueError):
            CustomerProfile(user_id="X", is_dealer_sub_account=True, dealer_account_role=DealerRole.STAFF)

    def test_parent_without_sub_account_flag_is_rejected(self):
        with pytest.raises(ValueError):
            CustomerProfile(user_id="X", parent_dealer_id="D1")

    def test_listing_scope_accepts_all(self):
        assert AccessScope(listings="all").allows(ResourceKind.LISTING, None)
