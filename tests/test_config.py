from __future__ import annotations

import pytest

from booking_identity.config import Settings


def test_defaults_match_token_lifetimes():
    settings = Settings()
    assert settings.access_ttl_seconds == 3600
    assert settings.refresh_ttl_seconds == 7 * 24 * 3600
    assert settings.email_verification_ttl_seconds == 24 * 3600
    assert settings.password_reset_ttl_seconds == 3600


@pytest.mark.parametrize(
    "overrides",
    [
        {"jwt_access_secret": "same", "jwt_refresh_secret": "same"},
        {"jwt_access_secret": ""},
        {"bcrypt_rounds": 3},
    ],
)
def test_validate_rejects_unsafe_settings(overrides):
    with pytest.raises(ValueError):
        Settings(**overrides).validate()


def test_validate_returns_the_settings(settings):
    assert settings.validate() is settings
