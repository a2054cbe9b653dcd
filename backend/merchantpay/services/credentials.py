"""Email/password credential checks."""
from functools import lru_cache
import logging

import bcrypt
from sqlalchemy.orm import Session

from merchantpay.errors import InvalidCredentials
from merchantpay.models.user import User

logger = logging.getLogger(__name__)


def _password_bytes(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes and newer releases reject longer input.
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    """Hash a password."""
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


@lru_cache
def _dummy_hash() -> str:
    return hash_password("not-a-real-password")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialValidator:
    """Resolves an email/password pair to a user.

    Unknown emails, wrong passwords and inactive accounts all raise the same
    InvalidCredentials, and every path pays for one bcrypt comparison.
    """

    def validate(self, db: Session, email: str, password: str) -> User:
        user = db.query(User).filter(User.email == normalize_email(email)).first()

        if user is None:
            verify_password(password, _dummy_hash())
            raise InvalidCredentials()

        if not verify_password(password, user.password_hash):
            raise InvalidCredentials()

        if not user.is_active:
            logger.info(f"Login attempt for inactive user {user.id}")
            raise InvalidCredentials()

        return user
