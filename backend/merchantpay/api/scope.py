"""Merchant/branch/POS access checks."""
from fastapi import APIRouter, Depends
from pydantic.alias_generators import to_camel

from merchantpay.api.deps import get_current_identity, require_api_key
from merchantpay.security.guards import enforce_scope
from merchantpay.services.tokens import VerifiedIdentity

router = APIRouter(tags=["scope"])


def _scope_response(identity: VerifiedIdentity, **requested: str) -> dict:
    enforce_scope(identity, **requested)
    return {
        "allowed": True,
        "role": identity.role.value,
        **{to_camel(key): value for key, value in requested.items()},
    }


@router.get("/scope/merchants/{merchant_id}")
def check_merchant_access(
    merchant_id: str,
    identity: VerifiedIdentity = Depends(get_current_identity),
):
    """Confirm the caller may act on a merchant."""
    return _scope_response(identity, merchant_id=merchant_id)


@router.get("/scope/merchants/{merchant_id}/branches/{branch_id}")
def check_branch_access(
    merchant_id: str,
    branch_id: str,
    identity: VerifiedIdentity = Depends(get_current_identity),
):
    """Confirm the caller may act on a branch."""
    return _scope_response(identity, merchant_id=merchant_id, branch_id=branch_id)


@router.get("/scope/merchants/{merchant_id}/branches/{branch_id}/pos/{pos_id}")
def check_pos_access(
    merchant_id: str,
    branch_id: str,
    pos_id: str,
    identity: VerifiedIdentity = Depends(get_current_identity),
):
    """Confirm the caller may operate a POS terminal."""
    return _scope_response(identity, merchant_id=merchant_id, branch_id=branch_id, pos_id=pos_id)


@router.get("/payment-gateway/ping", dependencies=[Depends(require_api_key)])
def payment_gateway_ping():
    """Liveness probe for API-key authenticated payment callers."""
    return {"status": "ok"}
