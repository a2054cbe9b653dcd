"""User administration endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from merchantpay.api.deps import get_db, get_session_service, require_roles
from merchantpay.errors import Forbidden
from merchantpay.models.user import Role, User
from merchantpay.schemas.auth import UserResponse
from merchantpay.schemas.user import UserCreate
from merchantpay.security.guards import enforce_scope
from merchantpay.services.credentials import hash_password, normalize_email
from merchantpay.services.sessions import SessionService
from merchantpay.services.tokens import VerifiedIdentity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

# Roles each administrator may hand out.
GRANTABLE_ROLES = {
    Role.SUPERADMIN: set(Role),
    Role.TENANT_ADMIN: {Role.ADMIN, Role.BRANCH_ADMIN, Role.CASHIER},
    Role.ADMIN: {Role.BRANCH_ADMIN, Role.CASHIER},
}

# Scoping ids a role must carry.
REQUIRED_SCOPE = {
    Role.TENANT_ADMIN: ("tenant_id",),
    Role.ADMIN: ("merchant_id",),
    Role.BRANCH_ADMIN: ("merchant_id", "branch_id"),
    Role.CASHIER: ("merchant_id", "branch_id", "pos_id"),
}


def _require_own_scope(actor: VerifiedIdentity) -> None:
    """Scoped administrators must carry the ids their scope is keyed on."""
    if actor.role is Role.SUPERADMIN:
        return
    missing = [field for field in REQUIRED_SCOPE.get(actor.role, ()) if not getattr(actor, field)]
    if missing:
        raise Forbidden(f"{actor.role.value} account is missing {', '.join(missing)}")


def _scoped_payload(user_data: UserCreate, actor: VerifiedIdentity) -> UserCreate:
    """Pin the new user inside the creator's tenant/merchant."""
    _require_own_scope(actor)
    if user_data.role not in GRANTABLE_ROLES[actor.role]:
        raise Forbidden(f"{actor.role.value} cannot create {user_data.role.value} users")

    if actor.role is Role.SUPERADMIN:
        return user_data

    if user_data.tenant_id not in (None, actor.tenant_id):
        raise Forbidden("Access denied to this tenant")
    pinned = {"tenant_id": actor.tenant_id}

    if actor.role is Role.ADMIN:
        enforce_scope(actor, merchant_id=user_data.merchant_id)
        pinned["merchant_id"] = actor.merchant_id

    return user_data.model_copy(update=pinned)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    actor: VerifiedIdentity = Depends(require_roles(Role.SUPERADMIN, Role.TENANT_ADMIN, Role.ADMIN)),
):
    """Create a user inside the caller's scope."""
    user_data = _scoped_payload(user_data, actor)

    missing = [field for field in REQUIRED_SCOPE.get(user_data.role, ()) if not getattr(user_data, field)]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{user_data.role.value} users require {', '.join(missing)}",
        )

    email = normalize_email(user_data.email)
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    user = User(
        email=email,
        password_hash=hash_password(user_data.password),
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        role=user_data.role,
        tenant_id=user_data.tenant_id,
        merchant_id=user_data.merchant_id,
        branch_id=user_data.branch_id,
        pos_id=user_data.pos_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"User {actor.subject_id} created {user.role.value} user {user.id}")
    return UserResponse.model_validate(user)


@router.get("", response_model=list[UserResponse])
def list_users(
    db: Session = Depends(get_db),
    actor: VerifiedIdentity = Depends(require_roles(Role.SUPERADMIN, Role.TENANT_ADMIN, Role.ADMIN)),
):
    """List users visible to the caller."""
    _require_own_scope(actor)
    query = db.query(User)
    if actor.role is Role.TENANT_ADMIN:
        query = query.filter(User.tenant_id == actor.tenant_id)
    elif actor.role is Role.ADMIN:
        query = query.filter(User.merchant_id == actor.merchant_id)

    users = query.order_by(User.created_at).limit(500).all()
    return [UserResponse.model_validate(u) for u in users]


@router.patch("/{user_id}/deactivate", response_model=UserResponse)
def deactivate_user(
    user_id: str,
    db: Session = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
    actor: VerifiedIdentity = Depends(require_roles(Role.SUPERADMIN, Role.TENANT_ADMIN, Role.ADMIN)),
):
    """Deactivate a user and revoke their refresh sessions."""
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if actor.role is not Role.SUPERADMIN:
        _require_own_scope(actor)
        if actor.role is Role.TENANT_ADMIN:
            if user.tenant_id != actor.tenant_id:
                raise Forbidden("Access denied to this tenant")
        else:
            enforce_scope(actor, merchant_id=user.merchant_id or "")
        if user.role not in GRANTABLE_ROLES[actor.role]:
            raise Forbidden(f"{actor.role.value} cannot deactivate {user.role.value} users")

    user.is_active = False
    revoked = sessions.revoke_all(db, user.id)
    db.commit()
    db.refresh(user)

    logger.info(f"User {actor.subject_id} deactivated user {user.id} ({revoked} session(s) revoked)")
    return UserResponse.model_validate(user)
