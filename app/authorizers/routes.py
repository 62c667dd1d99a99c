"""
Gateway authorizer endpoints.

API Gateway calls these with the caller's bearer token and the ARN of the
method being invoked. The answer is always HTTP 200 carrying an IAM policy
document; its Effect is the verdict.
"""

from fastapi import APIRouter, Body, Depends, Request
from pydantic import BaseModel, Field

from harbor_core.auth.decision_service import PolicyDecisionService
from harbor_core.auth.factory import get_decision_service
from harbor_core.config import settings
from harbor_core.domain.auth import AuthorizationRequest, TrustDomain
from harbor_core.infrastructure.rate_limiter import limiter
from harbor_core.runtime.context import RequestContext

router = APIRouter(prefix="/authorizers", tags=["authorizers"])


class TokenAuthorizerEvent(BaseModel):
    """TOKEN authorizer event as API Gateway sends it."""

    type: str = "TOKEN"
    authorizationToken: str | None = None
    methodArn: str = Field(..., min_length=1)


class PolicyStatement(BaseModel):
    Action: str
    Effect: str
    Resource: str


class PolicyDocument(BaseModel):
    Version: str
    Statement: list[PolicyStatement]


class AuthorizerResponse(BaseModel):
    """IAM policy returned to API Gateway."""

    principalId: str
    policyDocument: PolicyDocument
    context: dict[str, str]


async def _authorize(
    request: Request,
    event: TokenAuthorizerEvent,
    domain: TrustDomain,
    service: PolicyDecisionService,
) -> dict:
    context = RequestContext.current(request)
    decision = await service.evaluate(
        AuthorizationRequest(
            authorization=event.authorizationToken,
            resource=event.methodArn,
            expected_domain=domain,
            feature=f"{domain.value}_authorizer",
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            request_id=context.request_id,
        )
    )
    return decision.to_policy_document()


@router.post("/customer", response_model=AuthorizerResponse)
@limiter.limit(settings.AUTHORIZER_RATE_LIMIT)
async def customer_authorizer(
    request: Request,
    event: TokenAuthorizerEvent = Body(...),
    service: PolicyDecisionService = Depends(get_decision_service),
):
    """Authorize a call to a customer API. Staff tokens are denied."""
    return await _authorize(request, event, TrustDomain.CUSTOMER, service)


@router.post("/staff", response_model=AuthorizerResponse)
@limiter.limit(settings.AUTHORIZER_RATE_LIMIT)
async def staff_authorizer(
    request: Request,
    event: TokenAuthorizerEvent = Body(...),
    service: PolicyDecisionService = Depends(get_decision_service),
):
    """Authorize a call to a staff API. Customer tokens are denied."""
    return await _authorize(request, event, TrustDomain.STAFF, service)
