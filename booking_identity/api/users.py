"""Account profile routes guarded by role and ownership rules."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..domain.account import Role
from ..domain.contracts import ProfileUpdate
from ..domain.service import AccountService
from ..security.authorization import AuthorizationGate
from ..security.tokens import TokenClaims
from .dependencies import current_claims, get_gate, get_service, require_roles
from .schemas import AccountResponse, ChangePasswordRequest, MessageResponse, UpdateProfileRequest

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[AccountResponse])
def list_users(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    _: TokenClaims = Depends(require_roles(Role.admin)),
    service: AccountService = Depends(get_service),
) -> list[AccountResponse]:
    return [AccountResponse.from_domain(account) for account in service.list_accounts(limit=limit, offset=offset)]


@router.get("/me", response_model=AccountResponse)
def get_profile(
    claims: TokenClaims = Depends(current_claims),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    return AccountResponse.from_domain(service.get_account(claims.subject))


@router.get("/{account_id}", response_model=AccountResponse)
def get_user(
    account_id: str,
    claims: TokenClaims = Depends(current_claims),
    gate: AuthorizationGate = Depends(get_gate),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    """Return an account to its owner or to an admin."""
    gate.require_owner_or_admin(claims, account_id)
    return AccountResponse.from_domain(service.get_account(account_id))


@router.put("/{account_id}", response_model=AccountResponse)
def update_user(
    account_id: str,
    payload: UpdateProfileRequest,
    claims: TokenClaims = Depends(current_claims),
    gate: AuthorizationGate = Depends(get_gate),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    gate.require_owner_or_admin(claims, account_id)
    account = service.update_profile(
        account_id,
        ProfileUpdate(
            name=payload.name,
            mobile_number=payload.mobile_number,
            address=payload.address.to_domain() if payload.address else None,
            role=payload.role,
        ),
        actor_role=claims.role,
    )
    return AccountResponse.from_domain(account)


@router.put("/{account_id}/password", response_model=MessageResponse)
def change_password(
    account_id: str,
    payload: ChangePasswordRequest,
    claims: TokenClaims = Depends(current_claims),
    gate: AuthorizationGate = Depends(get_gate),
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    """Set a new password; owners must confirm the current one, admins may skip it."""
    gate.require_owner_or_admin(claims, account_id)
    acting_on_self = claims.subject == account_id
    service.set_password(
        account_id,
        payload.new_password,
        current_password=payload.current_password,
        require_current=acting_on_self or claims.role is not Role.admin,
    )
    return MessageResponse(message="Password updated; please log in again")


@router.delete("/{account_id}", response_model=MessageResponse)
def delete_user(
    account_id: str,
    _: TokenClaims = Depends(require_roles(Role.admin)),
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    service.delete_account(account_id)
    return MessageResponse(message="User deleted successfully")
