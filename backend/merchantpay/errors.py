"""Authentication error taxonomy.

Every user-visible auth failure maps to an HTTP status plus a stable,
machine-readable code. Codec errors never reach clients directly; the
authentication middleware swallows them and the guards raise the HTTP ones.
"""
from datetime import datetime, timezone


class AuthError(Exception):
    """Base class for errors rendered to clients."""

    status_code = 401
    code = "UNAUTHORIZED"
    error = "Unauthorized"
    message = "Access denied. Invalid or missing authentication"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_body(self) -> dict:
        return {
            "error": self.error,
            "code": self.code,
            "message": self.message,
            "statusCode": self.status_code,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password"


class InvalidRefreshToken(AuthError):
    """Not found, expired, revoked or reused; deliberately indistinguishable."""

    code = "INVALID_REFRESH_TOKEN"
    message = "Invalid or expired refresh token"


class Unauthenticated(AuthError):
    code = "UNAUTHENTICATED"
    message = "Authentication required"


class Forbidden(AuthError):
    status_code = 403
    code = "FORBIDDEN"
    error = "Forbidden"
    message = "Insufficient permissions to access this resource"


class RateLimited(AuthError):
    status_code = 429
    code = "RATE_LIMITED"
    error = "Too Many Requests"
    message = "Rate limit exceeded"


class TokenError(Exception):
    """Raised by the token codec when a token cannot be trusted."""


class InvalidSignature(TokenError):
    """Malformed token, bad signature, wrong algorithm or wrong token type."""


class TokenExpired(TokenError):
    """Signature is valid but the token is past its expiry."""
