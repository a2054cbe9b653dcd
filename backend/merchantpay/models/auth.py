"""Authentication/session models."""
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship

from merchantpay.database import Base
from merchantpay.models.user import utcnow


class RefreshSession(Base):
    """Tracks refresh-token sessions for rotation and revocation.

    Only the SHA-256 digest of the opaque refresh token is stored.
    """

    __tablename__ = "refresh_sessions"
    __table_args__ = (
        Index("ix_refresh_sessions_user_active", "user_id", "revoked_at"),
        Index("ix_refresh_sessions_expires_at", "expires_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    issued_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True))
    last_used_at = Column(DateTime(timezone=True))
    rotated_from_id = Column(String(36), ForeignKey("refresh_sessions.id", ondelete="SET NULL"))
    user_agent = Column(String(255))
    ip_address = Column(String(45))

    user = relationship("User", back_populates="refresh_sessions")
