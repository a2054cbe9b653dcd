"""Bearer-token request authentication.

Fail-open by policy: a missing, malformed, forged or expired token leaves
``request.state.identity`` as None and the request continues. Guards on the
individual routes decide whether anonymous access is acceptable.
"""
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from merchantpay.errors import TokenError
from merchantpay.services.tokens import TokenCodec, VerifiedIdentity

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "accessToken"


def extract_bearer_token(request: Request) -> str | None:
    """Bearer header first, then the access-token cookie set at login."""
    auth = request.headers.get("authorization")
    if auth:
        scheme, _, token = auth.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
        return None
    return request.cookies.get(ACCESS_COOKIE) or None


class RequestAuthenticationMiddleware(BaseHTTPMiddleware):
    """Attach the verified identity (or None) to every request."""

    def __init__(self, app, codec: TokenCodec):
        super().__init__(app)
        self.codec = codec

    def authenticate(self, request: Request) -> VerifiedIdentity | None:
        token = extract_bearer_token(request)
        if token is None:
            return None
        try:
            return self.codec.verify(token).identity
        except TokenError as exc:
            logger.debug(f"Ignoring unverifiable bearer token on {request.url.path}: {exc}")
            return None

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.identity = self.authenticate(request)
        return await call_next(request)
