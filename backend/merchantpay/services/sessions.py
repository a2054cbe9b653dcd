"""Login, refresh-token rotation and logout."""
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import hashlib
import logging
import secrets

from sqlalchemy import update
from sqlalchemy.orm import Session

from merchantpay.config import Settings
from merchantpay.errors import InvalidRefreshToken
from merchantpay.models.auth import RefreshSession
from merchantpay.models.user import User, utcnow
from merchantpay.services.credentials import CredentialValidator
from merchantpay.services.tokens import TokenCodec, VerifiedIdentity

logger = logging.getLogger(__name__)


def hash_token(refresh_token: str) -> str:
    """Hash an opaque refresh token before persisting or looking it up."""
    return hashlib.sha256(refresh_token.encode("utf-8")).hexdigest()


@dataclass
class IssuedSession:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    user: User


class SessionService:
    """Issues access/refresh pairs and rotates refresh tokens one-shot.

    Each user holds at most one active refresh session: login revokes the
    previous one and refresh swaps it for a successor in one transaction.
    """

    def __init__(
        self,
        codec: TokenCodec,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        validator: CredentialValidator | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.codec = codec
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.validator = validator or CredentialValidator()
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], datetime] = utcnow) -> "SessionService":
        return cls(
            codec=TokenCodec(settings.secret_key, settings.algorithm, clock=clock),
            access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
            clock=clock,
        )

    def login(
        self,
        db: Session,
        email: str,
        password: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> IssuedSession:
        user = self.validator.validate(db, email, password)

        revoked = self.revoke_all(db, user.id)
        if revoked:
            logger.debug(f"Login for user {user.id} superseded {revoked} refresh session(s)")

        issued = self._issue(db, user, user_agent=user_agent, ip_address=ip_address)
        db.commit()
        logger.info(f"User {user.id} logged in")
        return issued

    def refresh(
        self,
        db: Session,
        refresh_token: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> IssuedSession:
        """Exchange a live refresh token for a new pair; the old one dies here."""
        if not refresh_token:
            raise InvalidRefreshToken()

        token_hash = hash_token(refresh_token)
        now = self._clock()

        # The conditional update is the first statement of the transaction:
        # of several callers holding the same token only one sees rowcount 1.
        result = db.execute(
            update(RefreshSession)
            .where(
                RefreshSession.token_hash == token_hash,
                RefreshSession.revoked_at.is_(None),
                RefreshSession.expires_at > now,
            )
            .values(revoked_at=now, last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            self._log_rejected_refresh(db, token_hash)
            raise InvalidRefreshToken()

        previous = db.query(RefreshSession).filter(RefreshSession.token_hash == token_hash).one()
        owner_id = previous.user_id
        user = db.get(User, owner_id)
        if user is None or not user.is_active:
            # Keep the revocation; the owner can no longer hold sessions.
            db.commit()
            logger.info(f"Refresh rejected for missing or inactive user {owner_id}")
            raise InvalidRefreshToken()

        issued = self._issue(
            db,
            user,
            rotated_from_id=previous.id,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        db.commit()
        logger.debug(f"Rotated refresh session {previous.id} for user {user.id}")
        return issued

    def logout(self, db: Session, refresh_token: str | None) -> None:
        """Revoke a refresh token. Unknown or already revoked tokens are a no-op."""
        if not refresh_token:
            return

        now = self._clock()
        result = db.execute(
            update(RefreshSession)
            .where(
                RefreshSession.token_hash == hash_token(refresh_token),
                RefreshSession.revoked_at.is_(None),
            )
            .values(revoked_at=now, last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount:
            logger.info("Refresh session revoked on logout")

    def revoke_all(self, db: Session, user_id: str) -> int:
        """Revoke all active refresh sessions for a user. Caller commits."""
        now = self._clock()
        result = db.execute(
            update(RefreshSession)
            .where(
                RefreshSession.user_id == user_id,
                RefreshSession.revoked_at.is_(None),
            )
            .values(revoked_at=now, last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _issue(
        self,
        db: Session,
        user: User,
        rotated_from_id: str | None = None,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> IssuedSession:
        now = self._clock()
        refresh_token = secrets.token_urlsafe(48)
        refresh_expires_at = now + self.refresh_ttl

        db.add(RefreshSession(
            user_id=user.id,
            token_hash=hash_token(refresh_token),
            issued_at=now,
            expires_at=refresh_expires_at,
            rotated_from_id=rotated_from_id,
            user_agent=(user_agent or "")[:255] or None,
            ip_address=ip_address,
        ))
        db.flush()

        access_token, claims = self.codec.mint(VerifiedIdentity.from_user(user), self.access_ttl)
        return IssuedSession(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_at=datetime.fromtimestamp(claims.expires_at, tz=timezone.utc),
            refresh_expires_at=refresh_expires_at,
            user=user,
        )

    def _log_rejected_refresh(self, db: Session, token_hash: str) -> None:
        known = db.query(RefreshSession).filter(RefreshSession.token_hash == token_hash).first()
        if known is None:
            logger.info("Refresh rejected for unknown token")
        elif known.revoked_at is not None:
            logger.warning(f"Refresh token reuse detected for user {known.user_id} (session {known.id})")
        else:
            logger.info(f"Refresh rejected for expired session {known.id}")
        db.rollback()
