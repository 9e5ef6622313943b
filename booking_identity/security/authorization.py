"""Bearer credential decoding and role/ownership rules for protected calls."""

from __future__ import annotations

import logging
from typing import Iterable

from ..domain.account import Role
from ..domain.errors import AccessDeniedError, NoTokenError, TokenExpiredError, TokenInvalidError
from .tokens import TokenClaims, TokenFailure, TokenIssuer, TokenVerificationError

logger = logging.getLogger(__name__)


class AuthorizationGate:
    """Validate access tokens and enforce role and owner-or-admin rules."""

    def __init__(self, issuer: TokenIssuer) -> None:
        self._issuer = issuer

    def require_authenticated(self, authorization: str | None) -> TokenClaims:
        """Return the claims of the bearer token in an ``Authorization`` header value.

        A missing header, or one that is not ``Bearer <token>``, raises
        ``NoTokenError``; a token that fails decoding raises ``TokenInvalidError``
        or ``TokenExpiredError``.
        """
        token = _bearer_token(authorization)
        if token is None:
            raise NoTokenError("no token provided")
        try:
            return self._issuer.verify_access(token)
        except TokenVerificationError as exc:
            if exc.kind is TokenFailure.expired:
                raise TokenExpiredError("token has expired") from exc
            raise TokenInvalidError("invalid token") from exc

    def require_role(self, claims: TokenClaims, allowed_roles: Iterable[Role]) -> None:
        allowed = {Role(role) for role in allowed_roles}
        if claims.role not in allowed:
            logger.info("account %s with role %s denied; requires one of %s", claims.subject, claims.role, sorted(r.value for r in allowed))
            raise AccessDeniedError("access denied")

    def require_owner_or_admin(self, claims: TokenClaims, resource_owner_id: str) -> None:
        if claims.role is Role.admin or claims.subject == resource_owner_id:
            return
        logger.info("account %s denied access to resources of %s", claims.subject, resource_owner_id)
        raise AccessDeniedError("access denied")


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        return None
    return token
