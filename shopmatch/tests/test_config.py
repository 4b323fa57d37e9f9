import logging

import pytest

from shopmatch.core.config import Settings, validate_config


def make_settings(**overrides):
    values = {
        "STRIPE_SECRET_KEY": "sk_test_123",
        "STRIPE_WEBHOOK_SECRET": "whsec_test",
        "AUTH_JWT_SECRET": "secret",
        "RATE_LIMIT_BACKEND": "memory",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_complete_config_is_valid(caplog):
    with caplog.at_level(logging.WARNING, logger="shopmatch"):
        assert validate_config(strict=True, settings_obj=make_settings()) is True

    assert not caplog.records


def test_missing_keys_warn_without_strict(caplog):
    settings_obj = make_settings(STRIPE_WEBHOOK_SECRET=None, AUTH_JWT_SECRET=None)

    with caplog.at_level(logging.WARNING, logger="shopmatch"):
        validate_config(strict=False, settings_obj=settings_obj)

    assert "STRIPE_WEBHOOK_SECRET, AUTH_JWT_SECRET" in caplog.text
    assert "whsec" not in caplog.text


def test_missing_keys_raise_in_strict_mode():
    with pytest.raises(RuntimeError, match="STRIPE_SECRET_KEY"):
        validate_config(strict=True, settings_obj=make_settings(STRIPE_SECRET_KEY=None))


def test_strict_defaults_to_setting():
    settings_obj = make_settings(CONFIG_STRICT=True, RATE_LIMIT_BACKEND="memcached")

    with pytest.raises(RuntimeError, match="RATE_LIMIT_BACKEND"):
        validate_config(settings_obj=settings_obj)


def test_jwt_algorithms_parsed_from_csv():
    assert make_settings(AUTH_JWT_ALGORITHMS="HS256, HS512").jwt_algorithms == ["HS256", "HS512"]
