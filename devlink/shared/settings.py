from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from devlink.shared.protocol.constants import (
    CERTIFICATE_VALIDITY_DAYS,
    DEFAULT_FRAME_BUFFER_LIMIT,
    DEFAULT_MAX_PENDING_CONNECTIONS,
    DEFAULT_PORT,
    DEFAULT_READ_CHUNK_SIZE,
    RSA_KEY_SIZE,
)
from devlink.shared.protocol.errors import ConfigurationError
from devlink.shared.security.trust import TrustMode

ENV_PREFIX = "DEVLINK_"


@dataclass
class Settings:
    """Baseline transport settings shared by the listener and the connector."""

    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    device_name: str = "devlink-device"
    log_level: str = "INFO"
    read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE
    max_pending_connections: int = DEFAULT_MAX_PENDING_CONNECTIONS
    frame_buffer_limit: int = DEFAULT_FRAME_BUFFER_LIMIT
    certificate_validity_days: int = CERTIFICATE_VALIDITY_DAYS
    key_size: int = RSA_KEY_SIZE
    trust_mode: TrustMode = TrustMode.OPPORTUNISTIC
    handshake_timeout: float = 10.0


SETTINGS = Settings()


def load_settings(env_path: str = ".env", settings: Optional[Settings] = None) -> Settings:
    """Load settings from env/.env (``DEVLINK_<FIELD>`` variables)."""
    if Path(env_path).exists():
        load_dotenv(env_path)
    target = settings if settings is not None else SETTINGS
    for field in fields(Settings):
        raw = os.getenv(f"{ENV_PREFIX}{field.name.upper()}")
        if raw is None:
            continue
        setattr(target, field.name, _coerce(field.name, raw, type(getattr(target, field.name))))
    _validate(target)
    return target


def _coerce(name: str, value: str, target_type: type) -> Any:
    try:
        if issubclass(target_type, TrustMode):
            return TrustMode(value.strip().lower())
        return target_type(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Cannot convert {ENV_PREFIX}{name.upper()}={value!r} to {target_type.__name__}") from exc


def _validate(settings: Settings) -> None:
    if not (0 <= settings.port <= 65535):
        raise ConfigurationError("port must be between 0 and 65535")
    if settings.read_chunk_size <= 0:
        raise ConfigurationError("read_chunk_size must be positive")
    if settings.max_pending_connections <= 0:
        raise ConfigurationError("max_pending_connections must be positive")
    if settings.certificate_validity_days <= 0:
        raise ConfigurationError("certificate_validity_days must be positive")
    if not settings.device_name.strip():
        raise ConfigurationError("device_name must not be empty")


__all__ = ["ENV_PREFIX", "Settings", "SETTINGS", "load_settings"]
