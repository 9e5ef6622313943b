from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from booking_identity.config import Settings
from booking_identity.domain.account import Role
from booking_identity.security.tokens import (
    TokenFailure,
    TokenIssuer,
    TokenVerificationError,
    generate_opaque_token,
    hash_token,
)


def test_access_token_round_trips_subject_and_role(issuer: TokenIssuer):
    claims = issuer.verify_access(issuer.issue_access("acct-1", Role.admin))
    assert claims.subject == "acct-1"
    assert claims.role is Role.admin
    assert claims.token_type == "access"
    assert claims.expires_at - claims.issued_at == timedelta(seconds=3600)


def test_refresh_token_uses_refresh_ttl_and_carries_no_role(issuer: TokenIssuer, settings: Settings):
    claims = issuer.verify_refresh(issuer.issue_refresh("acct-1"))
    assert claims.subject == "acct-1"
    assert claims.role is None
    assert (claims.expires_at - claims.issued_at).total_seconds() == settings.refresh_ttl_seconds


def test_tokens_minted_back_to_back_differ(issuer: TokenIssuer):
    assert issuer.issue_refresh("acct-1") != issuer.issue_refresh("acct-1")
    assert issuer.issue_access("acct-1", Role.user) != issuer.issue_access("acct-1", Role.user)


def test_access_and_refresh_keys_are_not_interchangeable(issuer: TokenIssuer):
    with pytest.raises(TokenVerificationError) as refresh_as_access:
        issuer.verify_access(issuer.issue_refresh("acct-1"))
    assert refresh_as_access.value.kind is TokenFailure.invalid_signature

    with pytest.raises(TokenVerificationError) as access_as_refresh:
        issuer.verify_refresh(issuer.issue_access("acct-1", Role.user))
    assert access_as_refresh.value.kind is TokenFailure.invalid_signature


def test_token_signed_with_access_key_but_refresh_type_is_rejected(issuer: TokenIssuer, settings: Settings):
    now = int(datetime.now(timezone.utc).timestamp())
    forged = jwt.encode(
        {"sub": "acct-1", "typ": "refresh", "iss": settings.jwt_issuer, "iat": now, "exp": now + 60, "jti": "x"},
        settings.jwt_access_secret,
        algorithm="HS256",
    )
    with pytest.raises(TokenVerificationError) as exc_info:
        issuer.verify_access(forged)
    assert exc_info.value.kind is TokenFailure.invalid_signature


def test_expired_tokens_report_expired(settings: Settings):
    past = datetime.now(timezone.utc) - timedelta(days=30)
    stale_issuer = TokenIssuer(settings, clock=lambda: past)
    current_issuer = TokenIssuer(settings)

    with pytest.raises(TokenVerificationError) as access_exc:
        current_issuer.verify_access(stale_issuer.issue_access("acct-1", Role.user))
    assert access_exc.value.kind is TokenFailure.expired

    with pytest.raises(TokenVerificationError) as refresh_exc:
        current_issuer.verify_refresh(stale_issuer.issue_refresh("acct-1"))
    assert refresh_exc.value.kind is TokenFailure.expired


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_garbage_is_reported_malformed(issuer: TokenIssuer, token: str):
    with pytest.raises(TokenVerificationError) as exc_info:
        issuer.verify_access(token)
    assert exc_info.value.kind is TokenFailure.malformed


def test_tampered_signature_is_reported_invalid(issuer: TokenIssuer, settings: Settings):
    token = issuer.issue_access("acct-1", Role.user)
    other = TokenIssuer(replace(settings, jwt_access_secret="another-access-secret"))
    with pytest.raises(TokenVerificationError) as exc_info:
        other.verify_access(token)
    assert exc_info.value.kind is TokenFailure.invalid_signature


def test_foreign_issuer_is_rejected(issuer: TokenIssuer, settings: Settings):
    token = TokenIssuer(replace(settings, jwt_issuer="someone.else")).issue_access("acct-1", Role.user)
    with pytest.raises(TokenVerificationError) as exc_info:
        issuer.verify_access(token)
    assert exc_info.value.kind is TokenFailure.invalid_signature


def test_identical_signing_keys_are_refused(settings: Settings):
    with pytest.raises(ValueError):
        TokenIssuer(replace(settings, jwt_refresh_secret=settings.jwt_access_secret))
    with pytest.raises(ValueError):
        replace(settings, jwt_refresh_secret=settings.jwt_access_secret).validate()


def test_opaque_tokens_are_32_random_bytes_stored_as_sha256():
    raw, digest = generate_opaque_token()
    assert len(bytes.fromhex(raw)) == 32
    assert digest == hash_token(raw)
    assert len(digest) == 64
    assert generate_opaque_token()[0] != raw
