"""Refresh-token session slot management: one active session per account."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..security.tokens import TokenFailure, TokenIssuer, TokenVerificationError, hash_token
from .account import Account
from .contracts import AccountStore
from .errors import NotFoundError, TokenExpiredError, TokenInvalidError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SessionTokens:
    """Encapsulates the access/refresh token pair returned to API consumers."""

    access_token: str
    access_expires_in: int
    refresh_token: str


class SessionManager:
    """Own the single refresh-token slot of each account.

    The slot stores the SHA-256 hash of the most recently issued refresh token.
    A refresh token is honoured only while its hash occupies the slot, so a
    later login or a logout retires every earlier token even if its signature
    and expiry are still valid.
    """

    def __init__(self, repository: AccountStore, issuer: TokenIssuer) -> None:
        self._repository = repository
        self._issuer = issuer

    def login(self, account: Account) -> SessionTokens:
        """Mint an access/refresh pair and make the refresh token the account's only session."""
        access_token = self._issuer.issue_access(account.account_id, account.role)
        refresh_token = self._issuer.issue_refresh(account.account_id)
        updated = self._repository.compare_and_set(
            account.account_id,
            {},
            {"refresh_token_hash": hash_token(refresh_token)},
        )
        if updated is None:
            raise NotFoundError("account not found")
        if account.has_active_session:
            logger.info("login for account %s replaced an existing session", account.account_id)
        return SessionTokens(
            access_token=access_token,
            access_expires_in=self._issuer.access_ttl_seconds,
            refresh_token=refresh_token,
        )

    def refresh(self, raw_refresh_token: str) -> str:
        """Exchange a refresh token for a new access token; the refresh token is not rotated."""
        try:
            claims = self._issuer.verify_refresh(raw_refresh_token)
        except TokenVerificationError as exc:
            if exc.kind is TokenFailure.expired:
                raise TokenExpiredError("refresh token expired") from exc
            raise TokenInvalidError("invalid refresh token") from exc

        account = self._repository.find_by_refresh_token_hash(hash_token(raw_refresh_token))
        if account is None or account.account_id != claims.subject:
            logger.warning("superseded or revoked refresh token presented for account %s", claims.subject)
            raise TokenInvalidError("invalid refresh token")
        return self._issuer.issue_access(account.account_id, account.role)

    def logout(self, raw_refresh_token: str) -> None:
        """Clear the slot holding this token; unknown tokens are ignored."""
        if not raw_refresh_token:
            return
        token_hash = hash_token(raw_refresh_token)
        cleared = self._repository.compare_and_set(
            None,
            {"refresh_token_hash": token_hash},
            {"refresh_token_hash": None},
        )
        if cleared is not None:
            logger.info("session ended for account %s", cleared.account_id)
