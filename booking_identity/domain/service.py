"""Account service orchestrating persistence, credentials, sessions and notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Protocol

from ..metrics import EMAILS_SENT, record_auth_event
from ..notifications.mailer import PASSWORD_RESET, VERIFY_EMAIL
from ..security.one_time_tokens import PasswordResetTokenManager, VerificationTokenManager
from ..security.passwords import CredentialStore
from .account import Account, Role, normalize_email
from .contracts import AccountStore, NewAccount, ProfileUpdate, RegistrationInput
from .errors import (
    AccessDeniedError,
    DuplicateCredentialError,
    EmailUnverifiedError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationError,
)
from .sessions import SessionManager, SessionTokens

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
SELF_SERVICE_ROLES = frozenset({Role.user, Role.customer})


class Mailer(Protocol):
    def send(self, to: str, template_name: str, payload: Any) -> bool:
        ...


@dataclass(slots=True)
class RegisterResult:
    account: Account
    email_sent: bool


class AccountService:
    """Account workflows: registration, login, verification, password reset and profile CRUD."""

    def __init__(
        self,
        repository: AccountStore,
        credentials: CredentialStore,
        sessions: SessionManager,
        verification_tokens: VerificationTokenManager,
        reset_tokens: PasswordResetTokenManager,
        mailer: Mailer,
    ) -> None:
        """Store dependencies used to orchestrate persistence, tokens and email."""
        self._repository = repository
        self._credentials = credentials
        self._sessions = sessions
        self._verification_tokens = verification_tokens
        self._reset_tokens = reset_tokens
        self._mailer = mailer

    def register(self, payload: RegistrationInput) -> RegisterResult:
        """Create an unverified account and email it a verification link.

        A failed email does not undo the registration; the account stays
        unverified until a verification token is consumed.
        """
        email = normalize_email(payload.email)
        name = payload.name.strip()
        mobile_number = payload.mobile_number.strip()
        if not name:
            raise ValidationError("name is required", detail={"name": "Name is required"})
        if not mobile_number:
            raise ValidationError("mobile number is required", detail={"mobileNumber": "Mobile number is required"})
        if payload.role not in SELF_SERVICE_ROLES:
            raise ValidationError("role not allowed at registration", detail={"role": "Invalid role"})
        self._check_password_policy(payload.password)

        if self._repository.find_by_email(email) is not None:
            record_auth_event("register", "duplicate")
            raise DuplicateCredentialError("email already registered")
        if self._repository.find_by_mobile(mobile_number) is not None:
            record_auth_event("register", "duplicate")
            raise DuplicateCredentialError("mobile number already registered")

        account = self._repository.create_account(
            NewAccount(
                name=name,
                email=email,
                mobile_number=mobile_number,
                address=payload.address,
                password_hash=self._credentials.hash(payload.password),
                role=payload.role,
            )
        )
        raw_token = self._verification_tokens.issue(account)
        email_sent = self._send(account.email, VERIFY_EMAIL, raw_token)
        record_auth_event("register", "success")
        logger.info("registered account %s (verification email sent: %s)", account.account_id, email_sent)
        return RegisterResult(account=account, email_sent=email_sent)

    def login(self, email: str, password: str) -> tuple[Account, SessionTokens]:
        """Authenticate by email and password and open the account's single session."""
        account = self._repository.find_by_email(normalize_email(email))
        if account is None:
            self._credentials.dummy_verify(password)
            record_auth_event("login", "invalid_credentials")
            raise InvalidCredentialsError("invalid email or password")
        if not self._credentials.verify(password, account.password_hash):
            record_auth_event("login", "invalid_credentials")
            logger.info("failed login for account %s", account.account_id)
            raise InvalidCredentialsError("invalid email or password")
        if not account.is_email_verified:
            record_auth_event("login", "unverified")
            raise EmailUnverifiedError("please verify your email first")

        tokens = self._sessions.login(account)
        record_auth_event("login", "success")
        return account, tokens

    def refresh_access_token(self, refresh_token: str) -> str:
        try:
            access_token = self._sessions.refresh(refresh_token)
        except Exception:
            record_auth_event("refresh", "rejected")
            raise
        record_auth_event("refresh", "success")
        return access_token

    def logout(self, refresh_token: str) -> None:
        self._sessions.logout(refresh_token)
        record_auth_event("logout", "success")

    def verify_email(self, token: str) -> Account:
        try:
            account = self._verification_tokens.consume(token)
        except Exception:
            record_auth_event("verify_email", "rejected")
            raise
        record_auth_event("verify_email", "success")
        return account

    def request_password_reset(self, email: str) -> bool:
        """Issue a reset token for ``email`` and mail it; returns whether the email went out."""
        account = self._repository.find_by_email(normalize_email(email))
        if account is None:
            raise NotFoundError("user not found")
        raw_token = self._reset_tokens.issue(account)
        record_auth_event("forgot_password", "issued")
        return self._send(account.email, PASSWORD_RESET, raw_token)

    def reset_password(self, token: str, new_password: str) -> Account:
        self._check_password_policy(new_password)
        try:
            account = self._reset_tokens.consume(token, new_password)
        except Exception:
            record_auth_event("reset_password", "rejected")
            raise
        record_auth_event("reset_password", "success")
        return account

    def set_password(
        self,
        account_id: str,
        new_password: str,
        *,
        current_password: str | None = None,
        require_current: bool = True,
    ) -> Account:
        """Replace an account's password; the only path besides a reset token that changes it.

        Every session of the account ends with the change.
        """
        account = self._require_account(account_id)
        if require_current and not self._credentials.verify(current_password or "", account.password_hash):
            raise InvalidCredentialsError("current password is incorrect")
        self._check_password_policy(new_password)
        updated = self._repository.compare_and_set(
            account.account_id,
            {"password_hash": account.password_hash},
            {"password_hash": self._credentials.hash(new_password), "refresh_token_hash": None},
        )
        if updated is None:
            raise InvalidCredentialsError("password changed concurrently; try again")
        record_auth_event("set_password", "success")
        logger.info("password changed for account %s", account.account_id)
        return updated

    def get_account(self, account_id: str) -> Account:
        return self._require_account(account_id)

    def list_accounts(self, *, limit: int = 50, offset: int = 0) -> list[Account]:
        return self._repository.list_accounts(limit=max(1, min(limit, 100)), offset=max(0, offset))

    def update_profile(self, account_id: str, changes: ProfileUpdate, *, actor_role: Role | None) -> Account:
        """Apply profile changes; only admins may change roles."""
        if changes.role is not None and actor_role is not Role.admin:
            raise AccessDeniedError("only admins may change roles")
        if changes.name is not None and not changes.name.strip():
            raise ValidationError("name is required", detail={"name": "Name is required"})
        if changes.mobile_number is not None:
            mobile_number = changes.mobile_number.strip()
            if not mobile_number:
                raise ValidationError("mobile number is required", detail={"mobileNumber": "Mobile number is required"})
            changes = replace(changes, mobile_number=mobile_number)
        if changes.is_empty():
            return self._require_account(account_id)
        if changes.mobile_number is not None:
            holder = self._repository.find_by_mobile(changes.mobile_number)
            if holder is not None and holder.account_id != account_id:
                raise DuplicateCredentialError("mobile number already registered")
        account = self._repository.update_profile(account_id, changes)
        if account is None:
            raise NotFoundError("user not found")
        return account

    def delete_account(self, account_id: str) -> None:
        if not self._repository.delete_account(account_id):
            raise NotFoundError("user not found")
        logger.info("deleted account %s", account_id)

    def _require_account(self, account_id: str) -> Account:
        account = self._repository.get_account(account_id)
        if account is None:
            raise NotFoundError("user not found")
        return account

    def _check_password_policy(self, password: str) -> None:
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"password must be at least {MIN_PASSWORD_LENGTH} characters",
                detail={"password": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"},
            )

    def _send(self, to: str, template_name: str, payload: Any) -> bool:
        try:
            delivered = bool(self._mailer.send(to, template_name, payload))
        except Exception:
            # Transport failures never abort the triggering operation.
            logger.exception("email transport raised while sending %s to %s", template_name, to)
            delivered = False
        EMAILS_SENT.labels(template=template_name, delivered=str(delivered).lower()).inc()
        if not delivered:
            logger.warning("%s email to %s was not delivered", template_name, to)
        return delivered
