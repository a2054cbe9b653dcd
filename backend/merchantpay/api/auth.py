"""Authentication API endpoints."""
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from merchantpay.api.deps import (
    get_app_settings,
    get_current_user,
    get_db,
    get_session_service,
)
from merchantpay.api.errors import auth_error_response
from merchantpay.config import Settings
from merchantpay.errors import InvalidRefreshToken
from merchantpay.middleware.authentication import ACCESS_COOKIE
from merchantpay.middleware.rate_limiting import get_client_ip
from merchantpay.models.user import User
from merchantpay.schemas.auth import (
    LoginRequest,
    LogoutRequest,
    LogoutResponse,
    RefreshRequest,
    TokenResponse,
    UserResponse,
)
from merchantpay.services.sessions import IssuedSession, SessionService

router = APIRouter(prefix="/auth", tags=["auth"])

REFRESH_COOKIE = "refreshToken"
EXPIRY_COOKIE = "tokenExpiry"
SESSION_COOKIES = (ACCESS_COOKIE, REFRESH_COOKIE, EXPIRY_COOKIE)


def set_session_cookies(response: Response, issued: IssuedSession, settings: Settings) -> None:
    """Issue the access/refresh/expiry cookies together."""
    common = {
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
        "path": settings.cookie_path,
    }
    response.set_cookie(
        key=ACCESS_COOKIE,
        value=issued.access_token,
        httponly=True,
        max_age=settings.access_token_expire_minutes * 60,
        **common,
    )
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=issued.refresh_token,
        httponly=True,
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        **common,
    )
    # Readable by the frontend so it can refresh ahead of expiry.
    response.set_cookie(
        key=EXPIRY_COOKIE,
        value=issued.access_expires_at.isoformat(),
        httponly=False,
        max_age=settings.access_token_expire_minutes * 60,
        **common,
    )


def clear_session_cookies(response: Response, settings: Settings) -> None:
    """Clear all session cookies as a group."""
    for name in SESSION_COOKIES:
        response.delete_cookie(
            key=name,
            path=settings.cookie_path,
            secure=settings.cookie_secure,
            httponly=name != EXPIRY_COOKIE,
            samesite=settings.cookie_samesite,
        )


def token_response(issued: IssuedSession) -> TokenResponse:
    return TokenResponse(
        access_token=issued.access_token,
        refresh_token=issued.refresh_token,
        expires_at=issued.access_expires_at,
        user=UserResponse.model_validate(issued.user),
    )


@router.post("/login", response_model=TokenResponse)
def login(
    credentials: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
    settings: Settings = Depends(get_app_settings),
):
    """Login with email and password and get a token pair."""
    issued = sessions.login(
        db,
        credentials.email,
        credentials.password,
        user_agent=request.headers.get("user-agent"),
        ip_address=get_client_ip(request, settings.trust_forwarded_for),
    )
    set_session_cookies(response, issued, settings)
    return token_response(issued)


@router.post("/refresh", response_model=TokenResponse)
def refresh_tokens(
    request: Request,
    response: Response,
    payload: RefreshRequest | None = None,
    db: Session = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
    settings: Settings = Depends(get_app_settings),
):
    """Rotate a refresh token (body, or the refresh cookie) into a new pair."""
    refresh_token = (payload.refresh_token if payload else None) or request.cookies.get(REFRESH_COOKIE)

    try:
        issued = sessions.refresh(
            db,
            refresh_token,
            user_agent=request.headers.get("user-agent"),
            ip_address=get_client_ip(request, settings.trust_forwarded_for),
        )
    except InvalidRefreshToken as exc:
        failure = auth_error_response(exc)
        clear_session_cookies(failure, settings)
        return failure

    set_session_cookies(response, issued, settings)
    return token_response(issued)


@router.post("/logout", response_model=LogoutResponse)
def logout(
    request: Request,
    response: Response,
    payload: LogoutRequest | None = None,
    db: Session = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
    settings: Settings = Depends(get_app_settings),
):
    """Revoke the refresh token and clear session cookies. Always succeeds."""
    refresh_token = (payload.refresh_token if payload else None) or request.cookies.get(REFRESH_COOKIE)
    sessions.logout(db, refresh_token)
    clear_session_cookies(response, settings)
    return LogoutResponse(success=True)


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    """Get current user information."""
    return UserResponse.model_validate(current_user)
