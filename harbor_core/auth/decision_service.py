"""
Policy decision service.

Runs one authorization evaluation end to end:

    Unauthenticated -> Classified{customer|staff} -> TierOk -> Decided{Allow|Deny}

Each step either enriches the decision context or raises. Only this module
turns raised errors into Deny decisions, and every evaluation, allowed or
denied, produces exactly one audit entry.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from loguru import logger

from harbor_core.auth.audit import AuditDispatcher
from harbor_core.auth.classifier import PoolRegistry, build_principal, ensure_domain, parse_bearer
from harbor_core.auth.delegation import evaluate_access
from harbor_core.auth.exceptions import USER_MESSAGES, AuthorizationDenied, AuthorizationUnavailable
from harbor_core.auth.session_gate import SessionFreshnessGate
from harbor_core.auth.tier_resolver import TierResolver
from harbor_core.domain.auth import (
    AuditEntry,
    AuthorizationRequest,
    CustomerPrincipal,
    CustomerProfile,
    Effect,
    PolicyDecision,
    Principal,
    ResourceKind,
    StaffPrincipal,
    TrustDomain,
)
from harbor_core.domain.exceptions import CredentialVerificationError
from harbor_core.domain.interfaces import CredentialVerifierProtocol, ProfileStoreProtocol
from harbor_core.infrastructure.telemetry import get_tracer, record_decision
from harbor_core.runtime.errors import ErrorCode

ANONYMOUS_PRINCIPAL = "anonymous"


@dataclass
class _Evaluation:
    """What one evaluation has learned so far."""

    principal: Principal | None = None
    profile: CustomerProfile | None = None
    context: dict[str, str] = field(default_factory=dict)


class PolicyDecisionService:
    """Assembles verifier, classifier, gates and evaluators into one decision.

    Collaborators are injected so tests can substitute fakes and the owner
    of the service controls client lifetimes.
    """

    def __init__(
        self,
        verifier: CredentialVerifierProtocol,
        store: ProfileStoreProtocol,
        audit: AuditDispatcher,
        pools: PoolRegistry | None = None,
        session_gate: SessionFreshnessGate | None = None,
        tier_resolver: TierResolver | None = None,
    ):
        """Initialize the decision service.

        Args:
            verifier: Cryptographic token verifier.
            store: Authoritative customer profile store.
            audit: Dispatcher for the audit trail.
            pools: Issuer/audience of both identity pools. Defaults to settings.
            session_gate: Staff session freshness gate. Defaults to settings TTL.
            tier_resolver: Store lookups with timeout. Defaults to one over store.
        """
        self.verifier = verifier
        self.store = store
        self.audit = audit
        self.pools = pools or PoolRegistry.from_settings()
        self.session_gate = session_gate or SessionFreshnessGate()
        self.tier_resolver = tier_resolver or TierResolver(store)

    async def evaluate(self, request: AuthorizationRequest) -> PolicyDecision:
        """
        Evaluate one authorization request.

        Never raises: every failure, including unexpected ones, becomes a
        Deny with an error code and a user-safe message.

        Args:
            request: The bearer credential and the operation being attempted.

        Returns:
            The PolicyDecision for this request.
        """
        state = _Evaluation()

        with get_tracer().start_as_current_span("authz.evaluate") as span:
            span.set_attribute("authz.expected_domain", request.expected_domain.value)
            span.set_attribute("authz.action", request.action_name)

            try:
                await self._run(request, state)
                decision = self._allow(request, state)
            except (AuthorizationDenied, AuthorizationUnavailable) as e:
                logger.info(
                    f"[{request.request_id}] Deny {e.code} ({e.category.value}) on {request.resource}: "
                    f"{e.message_debug or e.message_safe}"
                )
                span.set_attribute("authz.error_category", e.category.value)
                decision = self._deny(request, state, e.code, e.context)
            except Exception as e:
                logger.exception(f"[{request.request_id}] Authorization evaluation failed: {e}")
                decision = self._deny(request, state, ErrorCode.INTERNAL_ERROR)

            span.set_attribute("authz.effect", decision.effect.value)
            if decision.error_code:
                span.set_attribute("authz.error_code", decision.error_code)

        await self._record(request, state, decision)
        return decision

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def _run(self, request: AuthorizationRequest, state: _Evaluation) -> None:
        if request.target is not None and request.target.resource_id:
            state.context["resourceId"] = request.target.resource_id

        token = parse_bearer(request.authorization)
        claims = await self._verify(token, request.expected_domain)

        principal = build_principal(claims, request.expected_domain, self.pools)
        state.principal = principal
        state.context.update(self._principal_context(principal))

        self.session_gate.check(principal)

        if isinstance(principal, StaffPrincipal):
            self._check_staff_requirements(principal, request)
        else:
            await self._check_customer_requirements(principal, request, state)

    async def _verify(self, token: str, expected_domain: TrustDomain) -> Mapping[str, Any]:
        """Reject foreign-pool tokens early, then verify against the expected pool."""
        peeked = self.verifier.peek_claims(token)
        if peeked is None:
            raise AuthorizationDenied(ErrorCode.INVALID_TOKEN_FORMAT, "Token payload is not decodable")
        ensure_domain(peeked, expected_domain, self.pools)

        pool = self.pools.for_domain(expected_domain)
        try:
            return await asyncio.to_thread(self.verifier.verify, token, pool.issuer, pool.audience)
        except CredentialVerificationError as e:
            if e.expired:
                self._raise_if_stale_staff_session(peeked, expected_domain)
                raise AuthorizationDenied(ErrorCode.TOKEN_EXPIRED, str(e), cause=e) from e
            raise AuthorizationDenied(ErrorCode.INVALID_TOKEN, str(e), cause=e) from e

    def _raise_if_stale_staff_session(self, claims: Mapping[str, Any], domain: TrustDomain) -> None:
        """A staff token past both TTL and exp reports the session limit."""
        if domain is not TrustDomain.STAFF:
            return
        issued_at = claims.get("iat")
        if isinstance(issued_at, bool) or not isinstance(issued_at, (int, float)):
            return
        if self.session_gate.is_stale(datetime.fromtimestamp(issued_at, tz=timezone.utc)):
            raise AuthorizationDenied(
                ErrorCode.SESSION_EXPIRED,
                "Staff token has exceeded maximum session duration",
            )

    def _check_staff_requirements(self, principal: StaffPrincipal, request: AuthorizationRequest) -> None:
        missing = [p for p in request.required_staff_permissions if not principal.has_permission(p)]
        if missing:
            raise AuthorizationDenied(
                ErrorCode.PERMISSION_DENIED,
                f"Staff {principal.principal_id} lacks {missing}",
                context={"requiredPermissions": ",".join(missing)},
            )

        minimum = request.minimum_staff_role
        if minimum is not None and principal.role.level < minimum.level:
            raise AuthorizationDenied(
                ErrorCode.FORBIDDEN,
                f"Staff role {principal.role.value} is below {minimum.value}",
                context={"requiredRole": minimum.value},
            )

    async def _check_customer_requirements(
        self,
        principal: CustomerPrincipal,
        request: AuthorizationRequest,
        state: _Evaluation,
    ) -> None:
        if request.required_tiers is None and request.action is None:
            return

        if request.required_tiers is not None:
            profile = await self.tier_resolver.require_tier(principal, request.required_tiers)
        else:
            profile = await self.tier_resolver.fetch_profile(principal.principal_id)

        state.profile = profile
        state.context.update(self._profile_context(profile))

        if request.action is None or request.target is None:
            return

        target = request.target
        target_profile = None
        if target.kind is ResourceKind.SUB_ACCOUNT and target.resource_id:
            if target.resource_id == profile.user_id:
                target_profile = profile
            else:
                target_profile = await self.tier_resolver.fetch_profile(target.resource_id)

        parent_profile = None
        if profile.is_dealer_sub_account:
            parent_profile = await self._fetch_parent(profile)

        verdict = evaluate_access(profile, target, request.action, target_profile, parent_profile)
        if not verdict.allowed:
            extra = {"requiredPermission": verdict.required_permission} if verdict.required_permission else {}
            raise AuthorizationDenied(
                verdict.error_code or ErrorCode.FORBIDDEN,
                f"{profile.user_id} may not {request.action.value} {target.kind.value} "
                f"{target.resource_id or '(new)'}",
                context=extra,
            )
        state.context["permissionSource"] = verdict.source.value

    async def _fetch_parent(self, profile: CustomerProfile) -> CustomerProfile:
        """Load a sub-account's parent and reject multi-level nesting."""
        parent = await self.tier_resolver.fetch_profile(profile.parent_dealer_id)
        if parent.is_dealer_sub_account:
            raise AuthorizationDenied(
                ErrorCode.FORBIDDEN,
                f"{profile.user_id} has parent {parent.user_id}, which is itself a sub-account",
            )
        return parent

    # -------------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------------

    @staticmethod
    def _principal_context(principal: Principal) -> dict[str, str]:
        context = {
            "userId": principal.principal_id,
            "email": principal.email,
            "trustDomain": principal.trust_domain.value,
        }
        if isinstance(principal, CustomerPrincipal):
            if principal.tier_hint:
                context["tierHint"] = str(principal.tier_hint)
        else:
            context["role"] = principal.role.value
            context["permissions"] = json.dumps(sorted(principal.permissions))
            if principal.team:
                context["team"] = str(principal.team)
        return context

    @staticmethod
    def _profile_context(profile: CustomerProfile) -> dict[str, str]:
        context = {
            "customerType": profile.customer_tier.value,
            "tier": profile.customer_tier.value,
            "isDealerSubAccount": "true" if profile.is_dealer_sub_account else "false",
        }
        if profile.parent_dealer_id:
            context["parentDealerId"] = profile.parent_dealer_id
        if profile.dealer_account_role:
            context["dealerAccountRole"] = profile.dealer_account_role.value
        return context

    @staticmethod
    def _principal_id(state: _Evaluation) -> str:
        return state.principal.principal_id if state.principal else ANONYMOUS_PRINCIPAL

    def _allow(self, request: AuthorizationRequest, state: _Evaluation) -> PolicyDecision:
        return PolicyDecision(
            effect=Effect.ALLOW,
            principal_id=self._principal_id(state),
            resource=request.resource,
            context=dict(state.context),
        )

    def _deny(
        self,
        request: AuthorizationRequest,
        state: _Evaluation,
        code: str,
        extra: dict[str, str] | None = None,
    ) -> PolicyDecision:
        user_message = USER_MESSAGES.get(code, USER_MESSAGES[ErrorCode.FORBIDDEN])
        context = {**state.context, **(extra or {}), "errorCode": code, "userMessage": user_message}
        return PolicyDecision(
            effect=Effect.DENY,
            principal_id=self._principal_id(state),
            resource=request.resource,
            context=context,
            error_code=code,
            user_message=user_message,
        )

    async def _record(
        self,
        request: AuthorizationRequest,
        state: _Evaluation,
        decision: PolicyDecision,
    ) -> None:
        principal = state.principal
        trust_domain = principal.trust_domain if principal else None
        record_decision(decision.effect.value, trust_domain.value if trust_domain else None, decision.error_code)

        entry = AuditEntry(
            request_id=request.request_id,
            principal_id=decision.principal_id,
            trust_domain=trust_domain,
            email=principal.email if principal else None,
            action=request.action_name,
            resource=request.resource,
            effect=decision.effect,
            error_code=decision.error_code,
            ip_address=request.ip_address,
            user_agent=request.user_agent,
        )
        await self.audit.emit(entry)
