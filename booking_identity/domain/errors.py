"""Error taxonomy for identity workflows.

Every exception carries the HTTP status and stable error code the API layer
reports, so services raise domain errors and never build HTTP responses.
"""

from __future__ import annotations

from typing import Any


class IdentityError(Exception):
    """Base class for identity errors mapped to HTTP responses."""

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(IdentityError):
    status_code = 400
    error_code = "validation_error"


class DuplicateCredentialError(IdentityError):
    """Email or mobile number already belongs to another account."""

    status_code = 400
    error_code = "duplicate_credential"


class TokenNotFoundOrExpiredError(IdentityError):
    """A verification or reset token is unknown, already used, or past its expiry."""

    status_code = 400
    error_code = "token_not_found_or_expired"


class InvalidCredentialsError(IdentityError):
    status_code = 401
    error_code = "invalid_credentials"


class EmailUnverifiedError(IdentityError):
    status_code = 401
    error_code = "email_unverified"


class NoTokenError(IdentityError):
    status_code = 401
    error_code = "no_token"


class TokenInvalidError(IdentityError):
    status_code = 401
    error_code = "token_invalid"


class TokenExpiredError(IdentityError):
    status_code = 401
    error_code = "token_expired"


class AccessDeniedError(IdentityError):
    status_code = 403
    error_code = "access_denied"


class NotFoundError(IdentityError):
    status_code = 404
    error_code = "not_found"


class RateLimitedError(IdentityError):
    status_code = 429
    error_code = "rate_limited"

    def __init__(self, message: str = "rate limited", *, retry_after_seconds: int = 0) -> None:
        super().__init__(message, detail={"retryAfterSeconds": retry_after_seconds})
        self.retry_after_seconds = retry_after_seconds
