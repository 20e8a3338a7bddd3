from __future__ import annotations

import hashlib
from datetime import datetime, timezone


def sha256_hex(data: bytes) -> str:
    """Hex SHA-256 digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def preview(data: bytes, limit: int = 32) -> str:
    """Short printable rendering of a byte string for debug logs."""
    text = data[:limit].decode("utf-8", errors="replace")
    return text + "..." if len(data) > limit else text


__all__ = ["sha256_hex", "utc_now", "preview"]
