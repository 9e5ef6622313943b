"""Utilities for issuing and validating access and refresh JWTs."""

from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

import jwt

from ..config import Settings
from ..domain.account import Role

_ALGORITHM = "HS256"
_ACCESS = "access"
_REFRESH = "refresh"


class TokenFailure(str, Enum):
    malformed = "malformed"
    invalid_signature = "invalid_signature"
    expired = "expired"


class TokenVerificationError(Exception):
    """Raised when a JWT cannot be accepted; ``kind`` tells callers why."""

    def __init__(self, kind: TokenFailure, message: str) -> None:
        super().__init__(message)
        self.kind = kind


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Decoded payload of an access or refresh token."""

    subject: str
    token_type: str
    issued_at: datetime
    expires_at: datetime
    token_id: str
    role: Role | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Sign and verify access and refresh tokens with two distinct HMAC keys."""

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = _utcnow) -> None:
        if settings.jwt_access_secret == settings.jwt_refresh_secret:
            raise ValueError("access and refresh tokens must be signed with distinct keys")
        self._access_secret = settings.jwt_access_secret
        self._refresh_secret = settings.jwt_refresh_secret
        self._issuer = settings.jwt_issuer
        self._access_ttl = settings.access_ttl_seconds
        self._refresh_ttl = settings.refresh_ttl_seconds
        self._clock = clock

    @property
    def access_ttl_seconds(self) -> int:
        return self._access_ttl

    def issue_access(self, account_id: str, role: Role) -> str:
        """Create a signed access token for an authenticated account.

        Parameters
        ----------
        account_id:
            Account identifier embedded in the ``sub`` claim.
        role:
            Role baked into the token for downstream authorization checks.

        Returns
        -------
        str
            The encoded JWT.
        """
        return self._encode(
            {"sub": account_id, "role": Role(role).value, "typ": _ACCESS},
            self._access_secret,
            self._access_ttl,
        )

    def issue_refresh(self, account_id: str) -> str:
        """Create a signed refresh token; it carries no role and only mints access tokens."""
        return self._encode({"sub": account_id, "typ": _REFRESH}, self._refresh_secret, self._refresh_ttl)

    def verify_access(self, token: str) -> TokenClaims:
        """Decode and verify an access token.

        Raises
        ------
        TokenVerificationError
            With kind ``malformed``, ``invalid_signature`` or ``expired``.
        """
        payload = self._decode(token, self._access_secret, _ACCESS)
        try:
            role = Role(payload.get("role"))
        except ValueError as exc:
            raise TokenVerificationError(TokenFailure.invalid_signature, "unknown role claim") from exc
        return self._claims(payload, role)

    def verify_refresh(self, token: str) -> TokenClaims:
        """Decode and verify a refresh token with the refresh key."""
        return self._claims(self._decode(token, self._refresh_secret, _REFRESH), None)

    def _encode(self, claims: dict[str, Any], secret: str, ttl_seconds: int) -> str:
        now = int(self._clock().timestamp())
        payload: dict[str, Any] = {
            **claims,
            "iss": self._issuer,
            "iat": now,
            "exp": now + ttl_seconds,
            # keeps two tokens minted within the same second distinct
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    def _decode(self, token: str, secret: str, expected_type: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[_ALGORITHM],
                issuer=self._issuer,
                options={"require": ["sub", "iat", "exp", "jti", "typ"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenVerificationError(TokenFailure.expired, "token expired") from exc
        except jwt.InvalidSignatureError as exc:
            raise TokenVerificationError(TokenFailure.invalid_signature, "invalid token signature") from exc
        except jwt.DecodeError as exc:
            raise TokenVerificationError(TokenFailure.malformed, "malformed token") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenVerificationError(TokenFailure.invalid_signature, f"invalid token: {exc}") from exc
        if payload.get("typ") != expected_type:
            raise TokenVerificationError(TokenFailure.invalid_signature, "unexpected token type")
        return payload

    @staticmethod
    def _claims(payload: dict[str, Any], role: Role | None) -> TokenClaims:
        return TokenClaims(
            subject=str(payload["sub"]),
            token_type=payload["typ"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            token_id=payload["jti"],
            role=role,
        )


def generate_opaque_token() -> tuple[str, str]:
    """Generate a 32-byte random token string and its SHA-256 hash."""
    token = secrets.token_hex(32)
    return token, hash_token(token)


def hash_token(token: str) -> str:
    """Return the SHA-256 hex digest for a token string."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
