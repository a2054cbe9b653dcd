"""Per-client rate limiting middleware."""
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response

from merchantpay.errors import RateLimited
from merchantpay.services.rate_limit import FixedWindowRateLimiter

logger = logging.getLogger(__name__)


def get_client_ip(request: Request, trust_forwarded_for: bool = False) -> str | None:
    """Extract the client IP; the first X-Forwarded-For hop only behind a trusted proxy."""
    if trust_forwarded_for:
        xff = request.headers.get("x-forwarded-for")
        if xff:
            return xff.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests over the limiter's budget with a 429 envelope."""

    def __init__(
        self,
        app,
        limiter: FixedWindowRateLimiter,
        exclude_paths: list[str] | None = None,
        trust_forwarded_for: bool = False,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.exclude_paths = set(exclude_paths or [])
        self.trust_forwarded_for = trust_forwarded_for

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        client_id = get_client_ip(request, self.trust_forwarded_for) or "unknown"

        try:
            self.limiter.check(client_id)
        except RateLimited as exc:
            return JSONResponse(status_code=exc.status_code, content=exc.to_body())

        return await call_next(request)
