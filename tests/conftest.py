from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Mapping

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from booking_identity.api.errors import register_exception_handlers
from booking_identity.api.routes import router as auth_router
from booking_identity.api.users import router as users_router
from booking_identity.config import Settings
from booking_identity.domain.account import Account, Address, Role
from booking_identity.domain.contracts import CREDENTIAL_FIELDS, NewAccount, ProfileUpdate
from booking_identity.domain.errors import DuplicateCredentialError
from booking_identity.domain.sessions import SessionManager
from booking_identity.main import wire_services
from booking_identity.security.passwords import CredentialStore
from booking_identity.security.rate_limiter import SlidingWindowRateLimiter
from booking_identity.security.tokens import TokenIssuer


class FakeRepository:
    """In-memory account store mimicking the Postgres conditional-update semantics."""

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._lock = Lock()

    def create_account(self, payload: NewAccount) -> Account:
        with self._lock:
            for existing in self._accounts.values():
                if existing.email == payload.email:
                    raise DuplicateCredentialError("email already registered")
                if existing.mobile_number == payload.mobile_number:
                    raise DuplicateCredentialError("mobile number already registered")
            now = datetime.now(timezone.utc)
            account = Account(
                account_id=str(uuid.uuid4()),
                name=payload.name,
                email=payload.email,
                mobile_number=payload.mobile_number,
                address=payload.address,
                role=payload.role,
                password_hash=payload.password_hash,
                is_email_verified=False,
                created_at=now,
                updated_at=now,
            )
            self._accounts[account.account_id] = account
            return replace(account)

    def get_account(self, account_id: str) -> Account | None:
        return self._find(lambda a: a.account_id == account_id)

    def find_by_email(self, email: str) -> Account | None:
        return self._find(lambda a: a.email == email)

    def find_by_mobile(self, mobile_number: str) -> Account | None:
        return self._find(lambda a: a.mobile_number == mobile_number)

    def find_by_verification_hash(self, token_hash: str) -> Account | None:
        return self._find(lambda a: a.email_verification_token_hash == token_hash)

    def find_by_reset_hash(self, token_hash: str) -> Account | None:
        return self._find(lambda a: a.password_reset_token_hash == token_hash)

    def find_by_refresh_token_hash(self, token_hash: str) -> Account | None:
        return self._find(lambda a: a.refresh_token_hash == token_hash)

    def list_accounts(self, *, limit: int = 50, offset: int = 0) -> list[Account]:
        with self._lock:
            ordered = sorted(self._accounts.values(), key=lambda a: (a.created_at, a.account_id))
            return [replace(a) for a in ordered[offset : offset + limit]]

    def update_profile(self, account_id: str, changes: ProfileUpdate) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return None
            values: dict[str, Any] = {}
            if changes.name is not None:
                values["name"] = changes.name.strip()
            if changes.mobile_number is not None:
                values["mobile_number"] = changes.mobile_number.strip()
            if changes.address is not None:
                values["address"] = changes.address
            if changes.role is not None:
                values["role"] = Role(changes.role)
            updated = replace(account, updated_at=datetime.now(timezone.utc), **values)
            self._accounts[account_id] = updated
            return replace(updated)

    def delete_account(self, account_id: str) -> bool:
        with self._lock:
            return self._accounts.pop(account_id, None) is not None

    def compare_and_set(
        self,
        account_id: str | None,
        expected: Mapping[str, Any],
        changes: Mapping[str, Any],
    ) -> Account | None:
        assert set(expected) | set(changes) <= CREDENTIAL_FIELDS
        with self._lock:
            for account in self._accounts.values():
                if account_id is not None and account.account_id != account_id:
                    continue
                if all(getattr(account, field) == value for field, value in expected.items()):
                    updated = replace(account, updated_at=datetime.now(timezone.utc), **changes)
                    self._accounts[account.account_id] = updated
                    return replace(updated)
            return None

    def raw(self, account_id: str) -> Account:
        """Direct access to the stored record for assertions."""
        return self._accounts[account_id]

    def _find(self, predicate) -> Account | None:
        with self._lock:
            for account in self._accounts.values():
                if predicate(account):
                    return replace(account)
        return None


class RecordingMailer:
    """Email collaborator double capturing what would have been sent."""

    def __init__(self, deliver: bool = True) -> None:
        self.deliver = deliver
        self.sent: list[tuple[str, str, Any]] = []

    def send(self, to: str, template_name: str, payload: Any) -> bool:
        self.sent.append((to, template_name, payload))
        return self.deliver

    def last_token(self, template_name: str) -> str:
        for _, name, payload in reversed(self.sent):
            if name == template_name:
                return payload
        raise AssertionError(f"no {template_name} email sent")


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jwt_access_secret="test-access-secret",
        jwt_refresh_secret="test-refresh-secret",
        jwt_issuer="booking.identity.test",
        bcrypt_rounds=4,
        public_base_url="http://testserver",
    )


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def credentials() -> CredentialStore:
    return CredentialStore(rounds=4)


@pytest.fixture
def issuer(settings: Settings) -> TokenIssuer:
    return TokenIssuer(settings)


@pytest.fixture
def sessions(repository: FakeRepository, issuer: TokenIssuer) -> SessionManager:
    return SessionManager(repository, issuer)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def make_account(repository: FakeRepository, credentials: CredentialStore):
    """Persist an account directly, bypassing registration."""
    counter = iter(range(1, 10_000))

    def factory(
        *,
        email: str | None = None,
        password: str = "s3cret-pass",
        role: Role = Role.user,
        verified: bool = True,
    ) -> Account:
        n = next(counter)
        account = repository.create_account(
            NewAccount(
                name=f"User {n}",
                email=email or f"user{n}@example.com",
                mobile_number=f"90000000{n:02d}",
                address=Address(line1=f"{n} Market Road", pincode="560001"),
                password_hash=credentials.hash(password),
                role=role,
            )
        )
        if verified:
            account = repository.compare_and_set(account.account_id, {}, {"is_email_verified": True})
        return account

    return factory


@pytest.fixture
def app(settings: Settings, repository: FakeRepository, mailer: RecordingMailer) -> FastAPI:
    """FastAPI app wired against the in-memory repository and a recording mailer."""
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(auth_router)
    app.include_router(users_router)
    wire_services(
        app,
        settings,
        repository,
        mailer=mailer,
        rate_limiter=SlidingWindowRateLimiter(max_requests=100, window_seconds=60),
    )
    return app


@pytest.fixture
def api_client(app: FastAPI):
    with TestClient(app) as client:
        yield client
