"""
Request-scoped context for authorization calls.

RequestContext carries the correlation ID and the client details that end
up in audit entries. The middleware builds one per HTTP request.
"""

from __future__ import annotations

import uuid

from pydantic import BaseModel
from starlette.requests import Request


class RequestContext(BaseModel):
    """Request-scoped context.

    Attributes:
        request_id: Unique identifier for request tracing.
        ip_address: Client address as seen by the service.
        user_agent: Client User-Agent header.
    """

    request_id: str
    ip_address: str = "unknown"
    user_agent: str = "unknown"

    model_config = {"frozen": True}

    @classmethod
    def from_request(cls, request: Request) -> "RequestContext":
        """Create RequestContext from incoming HTTP headers.

        X-Forwarded-For wins over the socket peer, so the first hop behind
        the load balancer is recorded.
        """
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            ip_address = forwarded.split(",")[0].strip()
        elif request.client:
            ip_address = request.client.host
        else:
            ip_address = "unknown"

        return cls(
            request_id=request.headers.get("X-Request-Id") or str(uuid.uuid4()),
            ip_address=ip_address or "unknown",
            user_agent=request.headers.get("User-Agent") or "unknown",
        )

    @classmethod
    def current(cls, request: Request) -> "RequestContext":
        """Context attached by the middleware, or a fresh one outside it."""
        context = getattr(request.state, "context", None)
        return context if context is not None else cls.from_request(request)

    def get_headers(self) -> dict[str, str]:
        """Headers echoed back to the client for correlation."""
        return {"X-Request-Id": self.request_id}
