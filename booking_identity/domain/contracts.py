"""Domain-level request contracts and the persistence port shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from .account import Account, Address, Role

# Columns the credential lifecycle may touch through ``compare_and_set``.
CREDENTIAL_FIELDS = frozenset(
    {
        "password_hash",
        "is_email_verified",
        "email_verification_token_hash",
        "email_verification_expires_at",
        "password_reset_token_hash",
        "password_reset_expires_at",
        "refresh_token_hash",
    }
)


@dataclass(slots=True)
class NewAccount:
    """Validated inputs required to persist a freshly registered, unverified account."""

    name: str
    email: str
    mobile_number: str
    address: Address
    password_hash: str
    role: Role = Role.user


@dataclass(slots=True)
class RegistrationInput:
    """Registration payload as received from the API layer (plaintext password)."""

    name: str
    email: str
    password: str
    mobile_number: str
    address: Address
    role: Role = Role.user


@dataclass(slots=True)
class ProfileUpdate:
    """Partial profile changes; ``None`` leaves a field untouched."""

    name: str | None = None
    mobile_number: str | None = None
    address: Address | None = None
    role: Role | None = None

    def is_empty(self) -> bool:
        return all(value is None for value in (self.name, self.mobile_number, self.address, self.role))


class AccountStore(Protocol):
    """Persistence port consumed by the identity services."""

    def create_account(self, payload: NewAccount) -> Account:
        ...

    def get_account(self, account_id: str) -> Account | None:
        ...

    def find_by_email(self, email: str) -> Account | None:
        ...

    def find_by_mobile(self, mobile_number: str) -> Account | None:
        ...

    def find_by_verification_hash(self, token_hash: str) -> Account | None:
        ...

    def find_by_reset_hash(self, token_hash: str) -> Account | None:
        ...

    def find_by_refresh_token_hash(self, token_hash: str) -> Account | None:
        ...

    def list_accounts(self, *, limit: int = 50, offset: int = 0) -> list[Account]:
        ...

    def update_profile(self, account_id: str, changes: ProfileUpdate) -> Account | None:
        ...

    def delete_account(self, account_id: str) -> bool:
        ...

    def compare_and_set(
        self,
        account_id: str | None,
        expected: Mapping[str, Any],
        changes: Mapping[str, Any],
    ) -> Account | None:
        """Apply ``changes`` only if every ``expected`` field still holds its value.

        ``account_id`` may be ``None`` when the expected values alone identify the
        record (e.g. a refresh-token slot). Returns the updated account, or
        ``None`` when no record matched.
        """
        ...
