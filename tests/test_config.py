from __future__ import annotations

import os
import stat
from dataclasses import fields
from pathlib import Path

import pytest

from notesafe.core.config import (
    EphemeralTokenConfig,
    HashingConfig,
    LoggingConfig,
    PathConfig,
    SecureConfig,
    SessionConfig,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("NOTESAFE_"):
            monkeypatch.delenv(key)
    SecureConfig.reset_instance()
    yield
    SecureConfig.reset_instance()


def test_defaults():
    config = SecureConfig()

    assert config.hashing.memory_cost == 65536
    assert config.hashing.time_cost == 3
    assert config.hashing.parallelism == 2
    assert config.session.lifetime_seconds == 30 * 24 * 3600
    assert config.session.renew_threshold_seconds == 15 * 24 * 3600
    assert config.session.renewal_retries == 1
    assert config.tokens.ttl_seconds == 1800
    assert config.tokens.sweep_interval_seconds == 600
    assert config.logging.level == "INFO"
    assert config.paths.data_dir.is_absolute()


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("NOTESAFE_SESSION__LIFETIME_SECONDS", "604800")
    monkeypatch.setenv("NOTESAFE_SESSION__RENEW_THRESHOLD_SECONDS", "86400")
    monkeypatch.setenv("NOTESAFE_HASHING__MEMORY_COST", "131072")
    monkeypatch.setenv("NOTESAFE_TOKENS__TTL_SECONDS", "90.5")
    monkeypatch.setenv("NOTESAFE_LOGGING__ENABLE_JSON", "yes")
    monkeypatch.setenv("NOTESAFE_PATHS__DATA_DIR", str(tmp_path / "data"))

    config = SecureConfig.load()

    assert config.session.lifetime_seconds == 604800
    assert config.session.renew_threshold_seconds == 86400
    assert config.hashing.memory_cost == 131072
    assert config.tokens.ttl_seconds == 90.5
    assert config.logging.enable_json is True
    assert config.paths.data_dir == tmp_path / "data"
    assert config.paths.session_db == tmp_path / "data" / "sessions.db"


def test_custom_prefix(monkeypatch):
    monkeypatch.setenv("MYAPP_LOGGING__LEVEL", "DEBUG")
    assert SecureConfig.load(env_prefix="MYAPP").logging.level == "DEBUG"


def test_sensitive_keys_are_ignored(monkeypatch):
    monkeypatch.setenv("NOTESAFE_HASHING__PEPPER", "do-not-read")
    monkeypatch.setenv("NOTESAFE_DB__PASSWORD", "hunter2")

    assert SecureConfig._parse_env_overrides("NOTESAFE") == {}


@pytest.mark.parametrize("var,value", [
    ("NOTESAFE_SESSION__RENEW_THRESHOLD_SECONDS", str(31 * 24 * 3600)),
    ("NOTESAFE_HASHING__SALT_LENGTH", "8"),
    ("NOTESAFE_TOKENS__TTL_SECONDS", "0"),
    ("NOTESAFE_LOGGING__LEVEL", "LOUD"),
    ("NOTESAFE_HASHING__TIME_COST", "three"),
])
def test_invalid_overrides_fail_loudly(monkeypatch, var, value):
    monkeypatch.setenv(var, value)
    with pytest.raises(ValueError):
        SecureConfig.load()


def test_relative_paths_rejected():
    with pytest.raises(ValueError):
        PathConfig(data_dir=Path("relative"))


@pytest.mark.parametrize("cls,kwargs", [
    (HashingConfig, {"parallelism": 0}),
    (HashingConfig, {"memory_cost": 8, "parallelism": 2}),
    (HashingConfig, {"workers": 0}),
    (SessionConfig, {"lifetime_seconds": 0}),
    (SessionConfig, {"renewal_retries": -1}),
    (EphemeralTokenConfig, {"sweep_interval_seconds": -5}),
    (LoggingConfig, {"level": "VERBOSE"}),
])
def test_section_validation(cls, kwargs):
    with pytest.raises(ValueError):
        cls(**kwargs)


def test_config_is_immutable():
    config = SecureConfig()
    with pytest.raises(AttributeError):
        config.session = SessionConfig()
    with pytest.raises(AttributeError):
        config.session.lifetime_seconds = 1


def test_config_hash_tracks_content():
    a = SecureConfig(session=SessionConfig(lifetime_seconds=7200, renew_threshold_seconds=60))
    b = SecureConfig(session=SessionConfig(lifetime_seconds=7200, renew_threshold_seconds=60))
    c = SecureConfig()

    assert a.config_hash == b.config_hash
    assert a.config_hash != c.config_hash
    assert repr(a) == f"SecureConfig(hash={a.config_hash})"


def test_get_instance_is_cached(monkeypatch):
    first = SecureConfig.get_instance()
    monkeypatch.setenv("NOTESAFE_LOGGING__LEVEL", "DEBUG")
    assert SecureConfig.get_instance() is first

    SecureConfig.reset_instance()
    assert SecureConfig.get_instance().logging.level == "DEBUG"


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_ensure_directories(tmp_path):
    config = SecureConfig(paths=PathConfig(data_dir=tmp_path / "d", log_dir=tmp_path / "l"))
    config.ensure_directories()

    for directory in (tmp_path / "d", tmp_path / "l"):
        assert directory.is_dir()
        assert stat.S_IMODE(directory.stat().st_mode) == 0o700


def test_unknown_keys_are_ignored(monkeypatch):
    monkeypatch.setenv("NOTESAFE_SESSION__COOKIE_NAME", "sid")
    monkeypatch.setenv("NOTESAFE_TOKENS__HEADER_NAME", "X-Token")

    config = SecureConfig.load()

    assert config.session == SessionConfig()
    assert config.tokens == EphemeralTokenConfig()
    assert {f.name for f in fields(SessionConfig)} == {
        "lifetime_seconds", "renew_threshold_seconds", "renewal_retries",
    }
    assert {f.name for f in fields(EphemeralTokenConfig)} == {
        "ttl_seconds", "sweep_interval_seconds",
    }
