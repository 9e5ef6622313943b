"""Request and response bodies for the identity HTTP API (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from ..domain.account import Account, Address, Role


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AddressBody(CamelModel):
    line1: str = Field(..., min_length=1)
    landmark: str | None = None
    pincode: str = Field(..., min_length=1)

    def to_domain(self) -> Address:
        return Address(line1=self.line1, landmark=self.landmark, pincode=self.pincode)


class AccountResponse(CamelModel):
    """Serialised representation of an `Account` aggregate; never includes credential state."""

    id: str
    name: str
    email: EmailStr
    mobile_number: str
    address: AddressBody
    role: Role
    is_email_verified: bool
    created_at: datetime

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            id=account.account_id,
            name=account.name,
            email=account.email,
            mobile_number=account.mobile_number,
            address=AddressBody(
                line1=account.address.line1,
                landmark=account.address.landmark,
                pincode=account.address.pincode,
            ),
            role=account.role,
            is_email_verified=account.is_email_verified,
            created_at=account.created_at,
        )


class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    mobile_number: str = Field(..., min_length=1)
    address: AddressBody
    role: Role = Role.user


class RegisterResponse(CamelModel):
    account_id: str
    message: str = "Registration successful. Please check your email to verify your account."


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class LoginResponse(CamelModel):
    """Token issuance response containing the bearer tokens and the account summary."""

    account: AccountResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class AccessTokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    password: str = Field(..., min_length=6)


class ChangePasswordRequest(CamelModel):
    current_password: str | None = None
    new_password: str = Field(..., min_length=6)


class UpdateProfileRequest(CamelModel):
    name: str | None = None
    mobile_number: str | None = None
    address: AddressBody | None = None
    role: Role | None = None


class MessageResponse(BaseModel):
    message: str
