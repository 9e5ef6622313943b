from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from booking_identity.domain.errors import TokenExpiredError, TokenInvalidError
from booking_identity.domain.sessions import SessionManager
from booking_identity.security.tokens import TokenIssuer, hash_token


def test_login_issues_tokens_for_the_account(sessions, issuer, repository, make_account):
    account = make_account()
    tokens = sessions.login(account)

    assert issuer.verify_refresh(tokens.refresh_token).subject == account.account_id
    assert issuer.verify_access(tokens.access_token).role is account.role
    assert repository.raw(account.account_id).refresh_token_hash == hash_token(tokens.refresh_token)


def test_refresh_returns_a_new_access_token_without_rotating(sessions, issuer, repository, make_account):
    account = make_account()
    tokens = sessions.login(account)

    access = sessions.refresh(tokens.refresh_token)

    assert access != tokens.access_token
    assert issuer.verify_access(access).subject == account.account_id
    assert repository.raw(account.account_id).refresh_token_hash == hash_token(tokens.refresh_token)
    # still usable: refresh does not consume the token
    sessions.refresh(tokens.refresh_token)


def test_second_login_supersedes_the_first_refresh_token(sessions, issuer, make_account):
    account = make_account()
    first = sessions.login(account)
    second = sessions.login(account)

    # the superseded token is still cryptographically valid
    assert issuer.verify_refresh(first.refresh_token).subject == account.account_id
    with pytest.raises(TokenInvalidError):
        sessions.refresh(first.refresh_token)
    sessions.refresh(second.refresh_token)


def test_logout_then_refresh_fails(sessions, repository, make_account):
    account = make_account()
    tokens = sessions.login(account)

    sessions.logout(tokens.refresh_token)

    assert repository.raw(account.account_id).refresh_token_hash is None
    with pytest.raises(TokenInvalidError):
        sessions.refresh(tokens.refresh_token)


def test_logout_with_unknown_or_stale_token_is_a_no_op(sessions, repository, make_account):
    account = make_account()
    old = sessions.login(account)
    current = sessions.login(account)

    sessions.logout("garbage")
    sessions.logout("")
    sessions.logout(old.refresh_token)

    assert repository.raw(account.account_id).refresh_token_hash == hash_token(current.refresh_token)


def test_logout_is_idempotent(sessions, make_account):
    tokens = sessions.login(make_account())
    sessions.logout(tokens.refresh_token)
    sessions.logout(tokens.refresh_token)


def test_refresh_rejects_tokens_it_cannot_verify(sessions):
    with pytest.raises(TokenInvalidError):
        sessions.refresh("not-a-jwt")


def test_refresh_reports_expired_tokens(settings, repository, make_account):
    past = datetime.now(timezone.utc) - timedelta(days=8)
    stale = SessionManager(repository, TokenIssuer(settings, clock=lambda: past))
    current = SessionManager(repository, TokenIssuer(settings))
    tokens = stale.login(make_account())

    with pytest.raises(TokenExpiredError):
        current.refresh(tokens.refresh_token)


def test_refresh_token_of_another_account_slot_is_rejected(sessions, issuer, repository, make_account):
    alice = make_account()
    bob = make_account()
    sessions.login(alice)
    # A validly signed token for Bob that was never stored in Bob's slot.
    unstored = issuer.issue_refresh(bob.account_id)
    with pytest.raises(TokenInvalidError):
        sessions.refresh(unstored)
