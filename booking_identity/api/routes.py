"""HTTP route definitions for registration, login and the credential lifecycle."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from ..domain.contracts import RegistrationInput
from ..domain.service import AccountService
from .dependencies import enforce_rate_limit, get_service
from .schemas import (
    AccessTokenResponse,
    AccountResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshTokenRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
)

router = APIRouter(tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    payload: RegisterRequest,
    service: AccountService = Depends(get_service),
) -> RegisterResponse:
    """Create an unverified account and send its verification email."""
    enforce_rate_limit(request, "register")
    result = service.register(
        RegistrationInput(
            name=payload.name,
            email=payload.email,
            password=payload.password,
            mobile_number=payload.mobile_number,
            address=payload.address.to_domain(),
            role=payload.role,
        )
    )
    return RegisterResponse(account_id=result.account.account_id)


@router.post("/login", response_model=LoginResponse)
def login(
    request: Request,
    payload: LoginRequest,
    service: AccountService = Depends(get_service),
) -> LoginResponse:
    """Exchange email and password for an access/refresh token pair."""
    enforce_rate_limit(request, "login", payload.email.lower())
    account, tokens = service.login(payload.email, payload.password)
    return LoginResponse(
        account=AccountResponse.from_domain(account),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.access_expires_in,
    )


@router.post("/refresh-token", response_model=AccessTokenResponse)
def refresh_token(
    request: Request,
    payload: RefreshTokenRequest,
    service: AccountService = Depends(get_service),
) -> AccessTokenResponse:
    enforce_rate_limit(request, "refresh-token", payload.refresh_token)
    return AccessTokenResponse(access_token=service.refresh_access_token(payload.refresh_token))


@router.get("/verify-email/{token}", response_model=MessageResponse)
def verify_email(token: str, service: AccountService = Depends(get_service)) -> MessageResponse:
    service.verify_email(token)
    return MessageResponse(message="Email verified successfully")


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    request: Request,
    payload: ForgotPasswordRequest,
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    """Issue a password reset token and email it to the account holder."""
    enforce_rate_limit(request, "forgot-password", payload.email.lower())
    service.request_password_reset(payload.email)
    return MessageResponse(message="Password reset email sent")


@router.post("/reset-password/{token}", response_model=MessageResponse)
def reset_password(
    token: str,
    payload: ResetPasswordRequest,
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    service.reset_password(token, payload.password)
    return MessageResponse(message="Password reset successful")


@router.post("/logout", response_model=MessageResponse)
def logout(payload: RefreshTokenRequest, service: AccountService = Depends(get_service)) -> MessageResponse:
    """End the session held by the refresh token; unknown tokens are accepted silently."""
    service.logout(payload.refresh_token)
    return MessageResponse(message="Logged out successfully")
