"""SQLAlchemy models package."""
from merchantpay.models.user import Role, User
from merchantpay.models.auth import RefreshSession

__all__ = [
    "Role",
    "User",
    "RefreshSession",
]
