"""
Device identity material and trust policy used by the secure channel.
"""

from .identity import (
    Identity,
    PeerIdentity,
    certificate_fingerprint,
    common_name,
    generate_identity,
    load_certificate,
)
from .trust import AcceptedIssuers, TrustMode, TrustPolicy

__all__ = [
    "Identity",
    "PeerIdentity",
    "generate_identity",
    "certificate_fingerprint",
    "common_name",
    "load_certificate",
    "AcceptedIssuers",
    "TrustMode",
    "TrustPolicy",
]
