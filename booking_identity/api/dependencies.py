"""FastAPI dependencies resolving services and enforcing the authorization gate."""

from __future__ import annotations

import hashlib
from typing import Callable

from fastapi import Depends, Header, Request

from ..domain.account import Role
from ..domain.errors import RateLimitedError
from ..domain.service import AccountService
from ..security.authorization import AuthorizationGate
from ..security.rate_limiter import RateLimiter
from ..security.tokens import TokenClaims


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def get_gate(request: Request) -> AuthorizationGate:
    gate: AuthorizationGate = request.app.state.authorization_gate
    return gate


def current_claims(
    authorization: str | None = Header(default=None, alias="Authorization"),
    gate: AuthorizationGate = Depends(get_gate),
) -> TokenClaims:
    """Decode the bearer access token of the current request."""
    return gate.require_authenticated(authorization)


def require_roles(*roles: Role) -> Callable[..., TokenClaims]:
    """Build a dependency that admits only callers holding one of ``roles``."""

    def dependency(
        claims: TokenClaims = Depends(current_claims),
        gate: AuthorizationGate = Depends(get_gate),
    ) -> TokenClaims:
        gate.require_role(claims, roles)
        return claims

    return dependency


def enforce_rate_limit(request: Request, scope: str, subject: str | None = None) -> None:
    """Count one attempt against ``scope`` for the caller and raise once over the limit."""
    limiter: RateLimiter = request.app.state.rate_limiter
    client = request.client.host if request.client else "unknown"
    key = f"{scope}:{client}"
    if subject:
        digest = hashlib.sha256(subject.encode("utf-8")).hexdigest()[:12]
        key = f"{key}:{digest}"
    decision = limiter.hit(key)
    if not decision.allowed:
        raise RateLimitedError(retry_after_seconds=decision.retry_after_seconds)
