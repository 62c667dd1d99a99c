"""
FastAPI request context middleware.

Attaches a RequestContext (request id, client address, user agent) to
request.state. Authorization itself happens in the route dependencies,
because each route asserts its own trust domain and resource.
"""

from __future__ import annotations

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from harbor_core.runtime.context import RequestContext


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware that assigns every request a correlation context."""

    async def dispatch(self, request: Request, call_next):
        context = RequestContext.from_request(request)
        request.state.context = context
        request.state.request_id = context.request_id

        logger.debug(f"[{context.request_id}] {request.method} {request.url.path} from {context.ip_address}")

        response = await call_next(request)
        response.headers.update(context.get_headers())
        return response
