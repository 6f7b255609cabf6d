"""
Tests for environment-driven settings.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from core.config import IPPrivacy, Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "TRACKER_DATA_FILE", "TRACKER_IP_PRIVACY", "TRACKER_IP_SALT",
        "TRACKER_PUSH_ENABLED", "TRACKER_EMAIL_ENABLED", "TRACKER_LOG_LEVEL",
        "HOST", "PORT",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings.from_env()

    assert settings.data_file == Path("tracking-data.json")
    assert settings.ip_privacy == IPPrivacy.TRUNCATE
    assert settings.push_enabled is True
    assert settings.email_enabled is True
    assert settings.port == 3000


def test_reads_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("TRACKER_DATA_FILE", str(tmp_path / "state.json"))
    monkeypatch.setenv("TRACKER_IP_PRIVACY", "hash")
    monkeypatch.setenv("TRACKER_IP_SALT", "pepper")
    monkeypatch.setenv("TRACKER_PUSH_ENABLED", "false")
    monkeypatch.setenv("PORT", "8080")

    settings = Settings.from_env()

    assert settings.data_file == tmp_path / "state.json"
    assert settings.ip_privacy == IPPrivacy.HASH
    assert settings.ip_salt == "pepper"
    assert settings.push_enabled is False
    assert settings.email_enabled is True
    assert settings.port == 8080


def test_invalid_value_rejected(monkeypatch):
    monkeypatch.setenv("TRACKER_IP_PRIVACY", "plaintext")

    with pytest.raises(ValidationError):
        Settings.from_env()


def test_hash_mode_requires_salt(monkeypatch):
    """Test that hashing IPs without a salt refuses to start."""
    monkeypatch.setenv("TRACKER_IP_PRIVACY", "hash")

    with pytest.raises(ValidationError):
        Settings.from_env()

    monkeypatch.setenv("TRACKER_IP_SALT", "pepper")
    assert Settings.from_env().ip_salt == "pepper"
