from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    user = "user"
    admin = "admin"
    customer = "customer"


@dataclass(slots=True)
class Address:
    line1: str
    pincode: str
    landmark: str | None = None


@dataclass(slots=True)
class Account:
    """Aggregate root for a booking customer's identity and credential state."""

    account_id: str
    name: str
    email: str
    mobile_number: str
    address: Address
    role: Role
    password_hash: str
    is_email_verified: bool
    created_at: datetime
    updated_at: datetime
    email_verification_token_hash: str | None = None
    email_verification_expires_at: datetime | None = None
    password_reset_token_hash: str | None = None
    password_reset_expires_at: datetime | None = None
    refresh_token_hash: str | None = None

    @property
    def has_active_session(self) -> bool:
        return self.refresh_token_hash is not None


def normalize_email(email: str) -> str:
    """Return the canonical (trimmed, lower-cased) form used for storage and lookup."""
    return email.strip().lower()
