"""Single-use, time-bounded email verification and password reset tokens.

Only the SHA-256 hash of a token is stored on the account; the raw value is
returned once from ``issue`` and handed to the email collaborator. Consumption
is a conditional update that expects the stored hash to be unchanged, so two
concurrent consumers of the same token cannot both succeed.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from ..domain.account import Account
from ..domain.contracts import AccountStore
from ..domain.errors import NotFoundError, TokenNotFoundOrExpiredError
from .passwords import CredentialStore
from .tokens import generate_opaque_token, hash_token

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _OneTimeTokenManager(ABC):
    hash_field: str
    expiry_field: str
    purpose: str

    def __init__(
        self,
        repository: AccountStore,
        ttl_seconds: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    def issue(self, account: Account) -> str:
        """Store a fresh token hash and expiry on ``account`` and return the raw token."""
        raw_token, token_hash = generate_opaque_token()
        updated = self._repository.compare_and_set(
            account.account_id,
            {},
            {self.hash_field: token_hash, self.expiry_field: self._clock() + self._ttl},
        )
        if updated is None:
            raise NotFoundError("account not found")
        logger.info("%s token issued for account %s", self.purpose, account.account_id)
        return raw_token

    @abstractmethod
    def _lookup(self, token_hash: str) -> Account | None:
        """Find the account currently holding ``token_hash``."""

    def _consume(self, raw_token: str, changes: dict[str, Any]) -> Account:
        if not raw_token:
            raise self._failure()
        token_hash = hash_token(raw_token)
        account = self._lookup(token_hash)
        if account is None:
            raise self._failure()
        expires_at = getattr(account, self.expiry_field)
        if expires_at is None or expires_at <= self._clock():
            logger.info("expired %s token presented for account %s", self.purpose, account.account_id)
            raise self._failure()

        updated = self._repository.compare_and_set(
            account.account_id,
            {self.hash_field: token_hash},
            {**changes, self.hash_field: None, self.expiry_field: None},
        )
        if updated is None:
            # Lost the race against another consumer or a re-issue.
            logger.warning("%s token for account %s was consumed concurrently", self.purpose, account.account_id)
            raise self._failure()
        return updated

    def _failure(self) -> TokenNotFoundOrExpiredError:
        return TokenNotFoundOrExpiredError(f"invalid or expired {self.purpose} token")


class VerificationTokenManager(_OneTimeTokenManager):
    """Issue and consume email verification tokens (default lifetime 24 hours)."""

    hash_field = "email_verification_token_hash"
    expiry_field = "email_verification_expires_at"
    purpose = "verification"

    def __init__(
        self,
        repository: AccountStore,
        ttl_seconds: int = 24 * 3600,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(repository, ttl_seconds, clock)

    def _lookup(self, token_hash: str) -> Account | None:
        return self._repository.find_by_verification_hash(token_hash)

    def consume(self, raw_token: str) -> Account:
        """Mark the owning account verified and clear the token fields."""
        account = self._consume(raw_token, {"is_email_verified": True})
        logger.info("email verified for account %s", account.account_id)
        return account


class PasswordResetTokenManager(_OneTimeTokenManager):
    """Issue and consume password reset tokens (default lifetime 1 hour)."""

    hash_field = "password_reset_token_hash"
    expiry_field = "password_reset_expires_at"
    purpose = "password reset"

    def __init__(
        self,
        repository: AccountStore,
        credentials: CredentialStore,
        ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(repository, ttl_seconds, clock)
        self._credentials = credentials

    def _lookup(self, token_hash: str) -> Account | None:
        return self._repository.find_by_reset_hash(token_hash)

    def consume(self, raw_token: str, new_password: str) -> Account:
        """Replace the password hash and end any active session in one conditional update."""
        # Hash first so an unacceptable password leaves the token usable.
        password_hash = self._credentials.hash(new_password)
        account = self._consume(
            raw_token,
            {"password_hash": password_hash, "refresh_token_hash": None},
        )
        logger.info("password reset completed for account %s", account.account_id)
        return account
