"""Shared FastAPI dependencies."""
from collections.abc import Callable
import hmac

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from merchantpay.config import Settings
from merchantpay.database import get_db
from merchantpay.errors import Unauthenticated
from merchantpay.models.user import Role, User
from merchantpay.security.guards import AUTHENTICATED, RoutePolicy, authorize
from merchantpay.services.sessions import SessionService
from merchantpay.services.tokens import VerifiedIdentity

__all__ = [
    "get_db",
    "get_app_settings",
    "get_session_service",
    "get_identity",
    "require_policy",
    "require_roles",
    "get_current_identity",
    "get_current_user",
    "require_api_key",
]


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_service(request: Request) -> SessionService:
    return request.app.state.session_service


def get_identity(request: Request) -> VerifiedIdentity | None:
    """Identity attached by the authentication middleware, if any."""
    return getattr(request.state, "identity", None)


def require_policy(policy: RoutePolicy) -> Callable[..., VerifiedIdentity]:
    """Build a dependency enforcing ``policy`` on the current identity."""

    def dependency(identity: VerifiedIdentity | None = Depends(get_identity)) -> VerifiedIdentity:
        return authorize(identity, policy)

    return dependency


def require_roles(*roles: Role) -> Callable[..., VerifiedIdentity]:
    return require_policy(RoutePolicy.of(*roles))


get_current_identity = require_policy(AUTHENTICATED)


def get_current_user(
    identity: VerifiedIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> User:
    """Load the authenticated user; deleted or deactivated accounts are rejected."""
    user = db.get(User, identity.subject_id)
    if user is None or not user.is_active:
        raise Unauthenticated()
    return user


def require_api_key(
    x_api_key: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Authenticate server-to-server payment callers by shared API key."""
    if not x_api_key:
        raise Unauthenticated("API key is required")
    if not settings.payment_api_key:
        raise Unauthenticated("Payment API key not configured")
    if not hmac.compare_digest(x_api_key.encode("utf-8"), settings.payment_api_key.encode("utf-8")):
        raise Unauthenticated("Invalid API key")
