"""User administration schemas."""
from pydantic import EmailStr, Field

from merchantpay.models.user import Role
from merchantpay.schemas.auth import CamelModel


class UserCreate(CamelModel):
    """User creation request."""

    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: Role = Role.CASHIER
    tenant_id: str | None = None
    merchant_id: str | None = None
    branch_id: str | None = None
    pos_id: str | None = None
