"""Tests for configuration validation."""

import logging
from types import SimpleNamespace

import pytest

from edudash.core.config import Settings, config_problems, cors_origins, validate_config


def make_settings(**overrides):
    defaults = dict(
        ENV="development",
        CONFIG_STRICT=False,
        DATABASE_URL="sqlite://",
        TEST_DATABASE_URL=None,
        CORS_ORIGINS="http://localhost:8081",
        DEFAULT_PAYMENT_WINDOW_START=1,
        DEFAULT_PAYMENT_WINDOW_END=7,
    )
    defaults.update(overrides)
    return SimpleNamespace(**defaults)


def test_valid_config_passes():
    assert validate_config(strict=True, settings_obj=make_settings()) is True


def test_missing_database_url_warns(caplog):
    logger = logging.getLogger("edudash.test_config")
    with caplog.at_level(logging.WARNING, logger="edudash.test_config"):
        validate_config(strict=False, settings_obj=make_settings(DATABASE_URL=None), logger=logger)
    assert any("DATABASE_URL" in r.getMessage() for r in caplog.records)


def test_missing_database_url_strict_fails():
    with pytest.raises(RuntimeError):
        validate_config(strict=True, settings_obj=make_settings(DATABASE_URL=None))


def test_payment_window_defaults_out_of_range_strict_fails():
    with pytest.raises(RuntimeError):
        validate_config(strict=True, settings_obj=make_settings(DEFAULT_PAYMENT_WINDOW_END=40))


def test_cors_origins_split():
    cfg = make_settings(CORS_ORIGINS="http://a.test, http://b.test,,")
    assert cors_origins(cfg) == ["http://a.test", "http://b.test"]


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("PARENT_CODE_MAX_USES", "250")
    monkeypatch.setenv("FEE_CURRENCY", "USD")
    cfg = Settings()
    assert cfg.PARENT_CODE_MAX_USES == 250
    assert cfg.FEE_CURRENCY == "USD"
    assert cfg.INVITE_CODE_LENGTH == 8


def test_reversed_payment_window_defaults_reported():
    problems = config_problems(make_settings(DEFAULT_PAYMENT_WINDOW_START=10, DEFAULT_PAYMENT_WINDOW_END=5))
    assert problems == ["DEFAULT_PAYMENT_WINDOW_START must not be after DEFAULT_PAYMENT_WINDOW_END"]


def test_unknown_log_level_reported():
    problems = config_problems(make_settings(LOG_LEVEL="chatty"))
    assert problems == ["Unknown LOG_LEVEL: CHATTY"]
