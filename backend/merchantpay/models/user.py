"""User model."""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum, String
from sqlalchemy.orm import relationship

from merchantpay.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    """Platform roles. Checks against these are exact; there is no hierarchy."""

    SUPERADMIN = "superadmin"  # platform operator, creates merchants
    ADMIN = "admin"  # merchant admin
    BRANCH_ADMIN = "branch_admin"
    CASHIER = "cashier"  # bound to a single POS
    TENANT_ADMIN = "tenant_admin"


class User(Base):
    """User account with its tenant/merchant/branch/POS scoping."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    role = Column(
        Enum(Role, values_callable=lambda roles: [r.value for r in roles], native_enum=False, length=20),
        nullable=False,
        default=Role.CASHIER,
    )
    is_active = Column(Boolean, nullable=False, default=True)

    # superadmin: no scope; admin: merchant; branch_admin: merchant + branch;
    # cashier: merchant + branch + pos
    tenant_id = Column(String(36), index=True)
    merchant_id = Column(String(36), index=True)
    branch_id = Column(String(36))
    pos_id = Column(String(36))

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    refresh_sessions = relationship("RefreshSession", back_populates="user", cascade="all, delete-orphan")
