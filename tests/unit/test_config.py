"""Unit tests for settings validation."""

import pytest
from pydantic import ValidationError

from src.config import Settings


def make_settings(**overrides) -> Settings:
    values = {
        "access_token_secret": "access-secret",
        "refresh_token_secret": "refresh-secret",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_defaults():
    settings = make_settings()

    assert settings.access_token_expire_minutes == 60
    assert settings.refresh_token_expire_days == 10
    assert settings.bcrypt_rounds == 10
    assert settings.refresh_reuse_revokes_session is True
    assert settings.cookie_secure is True


def test_secrets_must_differ():
    with pytest.raises(ValidationError):
        make_settings(refresh_token_secret="access-secret")


@pytest.mark.parametrize("field", ["access_token_secret", "refresh_token_secret"])
def test_blank_secret_rejected(field):
    with pytest.raises(ValidationError):
        make_settings(**{field: "   "})


def test_cloudinary_requires_credentials():
    with pytest.raises(ValidationError):
        make_settings(blob_store_backend="cloudinary", cloudinary_cloud_name="demo")


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15")
    monkeypatch.setenv("COOKIE_SAMESITE", "strict")

    settings = make_settings()

    assert settings.access_token_expire_minutes == 15
    assert settings.cookie_samesite == "strict"
