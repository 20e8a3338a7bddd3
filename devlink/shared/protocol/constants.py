"""Transport-wide constants shared by client and server."""

FRAME_DELIMITER = b"\n"
DEFAULT_PORT = 1716
DEFAULT_READ_CHUNK_SIZE = 64 * 1024
DEFAULT_FRAME_BUFFER_LIMIT = 1024 * 1024  # pause reading above this many buffered bytes
DEFAULT_MAX_PENDING_CONNECTIONS = 30

CERTIFICATE_VALIDITY_DAYS = 3650  # ten years
RSA_KEY_SIZE = 2048
CERTIFICATE_ORGANIZATION = "devlink"
CERTIFICATE_ORGANIZATIONAL_UNIT = "devlink transport"

__all__ = [
    "FRAME_DELIMITER",
    "DEFAULT_PORT",
    "DEFAULT_READ_CHUNK_SIZE",
    "DEFAULT_FRAME_BUFFER_LIMIT",
    "DEFAULT_MAX_PENDING_CONNECTIONS",
    "CERTIFICATE_VALIDITY_DAYS",
    "RSA_KEY_SIZE",
    "CERTIFICATE_ORGANIZATION",
    "CERTIFICATE_ORGANIZATIONAL_UNIT",
]
