"""Authentication schemas."""
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field
from pydantic.alias_generators import to_camel

from merchantpay.models.user import Role


class CamelModel(BaseModel):
    """Base for bodies exchanged with the frontend in camelCase."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class LoginRequest(CamelModel):
    """User login request."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(CamelModel):
    """Token refresh request. Falls back to the refresh cookie when omitted."""

    refresh_token: str | None = None


class LogoutRequest(CamelModel):
    refresh_token: str | None = None


class UserResponse(CamelModel):
    """User info response."""

    id: str
    email: str
    first_name: str
    last_name: str
    role: Role
    is_active: bool
    tenant_id: str | None = None
    merchant_id: str | None = None
    branch_id: str | None = None
    pos_id: str | None = None


class TokenResponse(CamelModel):
    """Token pair response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserResponse


class LogoutResponse(CamelModel):
    success: bool = True
