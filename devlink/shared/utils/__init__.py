from .common import preview, sha256_hex, utc_now
from .signals import Signal

__all__ = ["Signal", "preview", "sha256_hex", "utc_now"]
