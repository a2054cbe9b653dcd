"""Service to seed the initial superadmin account."""
import logging

from sqlalchemy.orm import Session

from merchantpay.config import Settings
from merchantpay.models.user import Role, User
from merchantpay.services.credentials import hash_password, normalize_email

logger = logging.getLogger(__name__)


def ensure_superadmin(db: Session, settings: Settings) -> User | None:
    """Create the configured superadmin if it does not exist yet.

    Returns the superadmin, or None when no seed account is configured.
    """
    if not settings.seed_superadmin_email or not settings.seed_superadmin_password:
        return None

    email = normalize_email(settings.seed_superadmin_email)
    user = db.query(User).filter(User.email == email).first()
    if user:
        if user.role != Role.SUPERADMIN:
            logger.warning(f"Seed email {email} belongs to a {user.role.value} user; not promoting")
        return user

    user = User(
        email=email,
        password_hash=hash_password(settings.seed_superadmin_password),
        first_name="Super",
        last_name="Admin",
        role=Role.SUPERADMIN,
    )
    db.add(user)
    db.commit()
    logger.info(f"Seeded superadmin {user.id}")
    return user
