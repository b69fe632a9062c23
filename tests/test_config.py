"""Tests for centralized Config class."""
import warnings

import pytest

from keydrop.config import Config


def test_config_defaults():
    """Verify default configuration values."""
    assert Config.PORT == 3000
    assert Config.REDIS_KEYSET == "unused_keys"
    assert Config.CLAIM_TTL == 600
    assert Config.RATE_LIMIT_WINDOW_SECONDS == 60
    assert Config.RATE_LIMIT_MAX_REQUESTS == 30
    assert Config.INSPECT_LIMIT == 200
    assert Config.EXPIRY_MARKER_PREFIX == "page_ttl:"


@pytest.mark.parametrize("raw, expected", [("80", 80), ("3000", 3000), ("65535", 65535)])
def test_parse_port(raw, expected):
    assert Config._parse_port(raw) == expected


@pytest.mark.parametrize("raw", ["0", "70000", "http"])
def test_invalid_port_rejected(raw):
    with pytest.raises(ValueError, match="Invalid PORT"):
        Config._parse_port(raw)


def test_config_validation_passes(monkeypatch):
    monkeypatch.setattr(Config, "ADMIN_TOKEN", "x" * 32)
    assert Config.validate() is True


@pytest.mark.parametrize(
    "name, value, message",
    [
        ("CLAIM_TTL", 0, "CLAIM_TTL must be > 0"),
        ("STORE_TIMEOUT_SECONDS", -1, "STORE_TIMEOUT_SECONDS must be > 0"),
        ("RATE_LIMIT_MAX_REQUESTS", 0, "RATE_LIMIT_MAX_REQUESTS must be > 0"),
        ("RATE_LIMIT_WINDOW_SECONDS", 0, "RATE_LIMIT_WINDOW_SECONDS must be > 0"),
        ("INSPECT_LIMIT", 5000, "INSPECT_LIMIT must be"),
        ("REDIS_KEYSET", "", "REDIS_KEYSET must not be empty"),
    ],
)
def test_config_validation_failures(monkeypatch, name, value, message):
    monkeypatch.setattr(Config, name, value)
    with pytest.raises(ValueError, match=message):
        Config.validate()


def test_missing_admin_token_warns(monkeypatch):
    monkeypatch.setattr(Config, "ADMIN_TOKEN", "")
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        assert Config.validate() is True
    assert any("ADMIN_TOKEN not set" in str(w.message) for w in caught)


def test_missing_admin_token_fails_in_production(monkeypatch):
    monkeypatch.setattr(Config, "ADMIN_TOKEN", "")
    monkeypatch.setenv("ENVIRONMENT", "production")
    with pytest.raises(ValueError, match="ADMIN_TOKEN must be set"):
        Config.validate()


@pytest.mark.parametrize(
    "url, expected",
    [
        ("postgres://u:p@db/keys", "postgresql+asyncpg://u:p@db/keys"),
        ("postgresql://u:p@db/keys", "postgresql+asyncpg://u:p@db/keys"),
        ("postgresql+asyncpg://db/keys", "postgresql+asyncpg://db/keys"),
        ("sqlite+aiosqlite:///ledger.db", "sqlite+aiosqlite:///ledger.db"),
    ],
)
def test_normalize_database_url(url, expected):
    assert Config.normalize_database_url(url) == expected
