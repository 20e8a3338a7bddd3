from __future__ import annotations

from enum import Enum
from typing import Dict, Iterator, List, Literal, Optional

from cryptography import x509
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .identity import certificate_fingerprint


class TrustMode(str, Enum):
    """Peer verification policy for one side of a connection."""

    STRICT = "strict"
    OPPORTUNISTIC = "opportunistic"


class TrustPolicy(BaseModel):
    """Per-side verification knobs, validated on every assignment."""

    model_config = ConfigDict(validate_assignment=True)

    mode: TrustMode = Field(default=TrustMode.STRICT, description="strict / opportunistic")
    peer_verify_name: Optional[str] = Field(default=None, description="Expected peer certificate common name")
    min_tls_version: Literal["1.2", "1.3"] = Field(default="1.2", description="Lowest TLS version offered")

    @field_validator("peer_verify_name", mode="before")
    @classmethod
    def _blank_name_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        return value or None


class AcceptedIssuers:
    """Certificates a side trusts as proof of peer identity, keyed by fingerprint."""

    def __init__(self) -> None:
        self._by_fingerprint: Dict[str, x509.Certificate] = {}

    def add(self, certificate: x509.Certificate) -> bool:
        """Add ``certificate``; returns False if it was already present."""
        fingerprint = certificate_fingerprint(certificate)
        if fingerprint in self._by_fingerprint:
            return False
        self._by_fingerprint[fingerprint] = certificate
        return True

    def remove(self, certificate: x509.Certificate) -> None:
        self._by_fingerprint.pop(certificate_fingerprint(certificate), None)

    def clear(self) -> None:
        self._by_fingerprint.clear()

    def __contains__(self, certificate: object) -> bool:
        if not isinstance(certificate, x509.Certificate):
            return False
        return certificate_fingerprint(certificate) in self._by_fingerprint

    def __iter__(self) -> Iterator[x509.Certificate]:
        return iter(list(self._by_fingerprint.values()))

    def __len__(self) -> int:
        return len(self._by_fingerprint)

    def fingerprints(self) -> List[str]:
        return list(self._by_fingerprint)


__all__ = ["TrustMode", "TrustPolicy", "AcceptedIssuers"]
