from __future__ import annotations

import os

import pytest

from devlink.shared.protocol.errors import ConfigurationError
from devlink.shared.security import TrustMode
from devlink.shared.settings import Settings, load_settings


def test_defaults_without_environment(tmp_path, monkeypatch):
    for key in list(os.environ):
        if key.startswith("DEVLINK_"):
            monkeypatch.delenv(key)
    settings = load_settings(env_path=str(tmp_path / "missing.env"), settings=Settings())
    assert settings.port == 1716
    assert settings.trust_mode is TrustMode.OPPORTUNISTIC
    assert settings.certificate_validity_days == 3650


def test_environment_values_are_coerced(tmp_path, monkeypatch):
    monkeypatch.setenv("DEVLINK_PORT", "1764")
    monkeypatch.setenv("DEVLINK_DEVICE_NAME", "kitchen tablet")
    monkeypatch.setenv("DEVLINK_TRUST_MODE", "STRICT")
    monkeypatch.setenv("DEVLINK_HANDSHAKE_TIMEOUT", "2.5")

    settings = load_settings(env_path=str(tmp_path / "missing.env"), settings=Settings())
    assert settings.port == 1764
    assert settings.device_name == "kitchen tablet"
    assert settings.trust_mode is TrustMode.STRICT
    assert settings.handshake_timeout == 2.5


def test_invalid_values_raise_configuration_error(tmp_path, monkeypatch):
    monkeypatch.setenv("DEVLINK_PORT", "not-a-port")
    with pytest.raises(ConfigurationError):
        load_settings(env_path=str(tmp_path / "missing.env"), settings=Settings())

    monkeypatch.setenv("DEVLINK_PORT", "70000")
    with pytest.raises(ConfigurationError):
        load_settings(env_path=str(tmp_path / "missing.env"), settings=Settings())


def test_unknown_trust_mode_is_rejected(tmp_path, monkeypatch):
    monkeypatch.setenv("DEVLINK_TRUST_MODE", "paranoid")
    with pytest.raises(ConfigurationError):
        load_settings(env_path=str(tmp_path / "missing.env"), settings=Settings())


def test_dotenv_file_is_read(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("DEVLINK_MAX_PENDING_CONNECTIONS=5\nDEVLINK_LOG_LEVEL=DEBUG\n")
    # Registered with monkeypatch so the values loaded from the file are undone.
    monkeypatch.setenv("DEVLINK_MAX_PENDING_CONNECTIONS", "placeholder")
    monkeypatch.setenv("DEVLINK_LOG_LEVEL", "placeholder")
    monkeypatch.delenv("DEVLINK_MAX_PENDING_CONNECTIONS")
    monkeypatch.delenv("DEVLINK_LOG_LEVEL")

    settings = load_settings(env_path=str(env_file), settings=Settings())
    assert settings.max_pending_connections == 5
    assert settings.log_level == "DEBUG"
