"""Signed session token encoding and verification."""
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from jose import JWTError, jwt

from merchantpay.config import ALLOWED_ALGORITHMS
from merchantpay.errors import InvalidSignature, TokenExpired
from merchantpay.models.user import Role, utcnow

ACCESS = "access"

# claim name -> VerifiedIdentity attribute, for the optional scoping claims
SCOPE_CLAIMS = {
    "tenantId": "tenant_id",
    "merchantId": "merchant_id",
    "branchId": "branch_id",
    "posId": "pos_id",
}


@dataclass(frozen=True)
class VerifiedIdentity:
    """Who the bearer is and which resources they are scoped to."""

    subject_id: str
    email: str
    role: Role
    tenant_id: str | None = None
    merchant_id: str | None = None
    branch_id: str | None = None
    pos_id: str | None = None

    @classmethod
    def from_user(cls, user) -> "VerifiedIdentity":
        return cls(
            subject_id=user.id,
            email=user.email,
            role=Role(user.role),
            tenant_id=user.tenant_id,
            merchant_id=user.merchant_id,
            branch_id=user.branch_id,
            pos_id=user.pos_id,
        )


@dataclass(frozen=True)
class SessionClaims:
    identity: VerifiedIdentity
    issued_at: int
    expires_at: int
    token_type: str = ACCESS


class TokenCodec:
    """Issues and verifies HMAC-signed JWTs.

    Expiry is checked against the injected clock rather than by python-jose,
    so the codec and the refresh store agree on what "now" is.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = utcnow,
    ):
        if not secret_key:
            raise ValueError("Token codec requires a signing secret.")
        if algorithm not in ALLOWED_ALGORITHMS:
            raise ValueError(f"Unsupported signing algorithm: {algorithm}")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self._clock = clock

    def now(self) -> int:
        return int(self._clock().timestamp())

    def issue(self, identity: VerifiedIdentity, ttl: timedelta, token_type: str = ACCESS) -> str:
        """Sign a token for ``identity`` valid for ``ttl`` from now."""
        token, _ = self.mint(identity, ttl, token_type)
        return token

    def mint(
        self,
        identity: VerifiedIdentity,
        ttl: timedelta,
        token_type: str = ACCESS,
    ) -> tuple[str, SessionClaims]:
        """Like issue(), but also return the claims that were signed."""
        issued_at = self.now()
        expires_at = issued_at + int(ttl.total_seconds())
        if expires_at <= issued_at:
            raise ValueError("Token TTL must be positive.")

        claims = {
            "sub": identity.subject_id,
            "email": identity.email,
            "role": identity.role.value,
            "iat": issued_at,
            "exp": expires_at,
            "type": token_type,
        }
        for claim, attr in SCOPE_CLAIMS.items():
            value = getattr(identity, attr)
            if value is not None:
                claims[claim] = value

        # Sorted keys give a canonical payload: same claims and instant, same signature.
        token = jwt.encode(dict(sorted(claims.items())), self._secret_key, algorithm=self.algorithm)
        return token, SessionClaims(identity, issued_at, expires_at, token_type)

    def verify(self, token: str, token_type: str = ACCESS) -> SessionClaims:
        """Return the token's claims, or raise InvalidSignature / TokenExpired."""
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise InvalidSignature("Malformed token") from exc

        # Pinning the algorithm rejects "none" and any algorithm confusion.
        if header.get("alg") != self.algorithm:
            raise InvalidSignature("Unexpected signing algorithm")

        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise InvalidSignature("Signature verification failed") from exc

        if payload.get("type") != token_type:
            raise InvalidSignature("Invalid token type")

        try:
            identity = VerifiedIdentity(
                subject_id=str(payload["sub"]),
                email=str(payload["email"]),
                role=Role(payload["role"]),
                **{attr: payload.get(claim) for claim, attr in SCOPE_CLAIMS.items()},
            )
            issued_at = int(payload["iat"])
            expires_at = int(payload["exp"])
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidSignature("Missing or malformed claims") from exc

        if expires_at <= issued_at:
            raise InvalidSignature("Token expiry precedes issue time")
        if self.now() >= expires_at:
            raise TokenExpired("Token has expired")

        return SessionClaims(
            identity=identity,
            issued_at=issued_at,
            expires_at=expires_at,
            token_type=token_type,
        )
