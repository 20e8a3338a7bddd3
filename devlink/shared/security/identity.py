"""Self-issued device identities.

Every device owns one long-lived RSA key and a self-signed X.509 certificate
whose common name is the human readable device name. There is no shared
authority: peers learn each other's certificates out of band (pairing) and
trust them directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from devlink.shared.protocol.constants import (
    CERTIFICATE_ORGANIZATION,
    CERTIFICATE_ORGANIZATIONAL_UNIT,
    CERTIFICATE_VALIDITY_DAYS,
    RSA_KEY_SIZE,
)
from devlink.shared.protocol.errors import ConfigurationError
from devlink.shared.utils.common import sha256_hex, utc_now


def certificate_fingerprint(certificate: x509.Certificate) -> str:
    """SHA-256 over the DER encoding, lowercase hex."""
    return sha256_hex(certificate.public_bytes(serialization.Encoding.DER))


def common_name(certificate: x509.Certificate) -> Optional[str]:
    attributes = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        return None
    value = attributes[0].value
    return value.decode("utf-8") if isinstance(value, bytes) else value


def load_certificate(pem: bytes) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(pem)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid certificate PEM: {exc}") from exc


@dataclass(frozen=True)
class Identity:
    """Local identity: private key, self-signed certificate and device name."""

    private_key: rsa.RSAPrivateKey
    certificate: x509.Certificate
    name: str

    @property
    def fingerprint(self) -> str:
        return certificate_fingerprint(self.certificate)

    def certificate_pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    def private_key_pem(self) -> bytes:
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )


@dataclass(frozen=True)
class PeerIdentity:
    """What a connection learned about the remote side from its certificate."""

    certificate: x509.Certificate
    name: Optional[str]
    fingerprint: str

    @classmethod
    def from_certificate(cls, certificate: x509.Certificate) -> "PeerIdentity":
        return cls(
            certificate=certificate,
            name=common_name(certificate),
            fingerprint=certificate_fingerprint(certificate),
        )


def generate_identity(
    device_name: str,
    *,
    validity_days: int = CERTIFICATE_VALIDITY_DAYS,
    key_size: int = RSA_KEY_SIZE,
) -> Identity:
    """Create a fresh RSA key and a self-signed certificate for ``device_name``.

    The certificate is valid from now until ``validity_days`` later and carries
    the device name as its common name.
    """
    if not device_name or not device_name.strip():
        raise ConfigurationError("Device name must not be empty")
    if validity_days <= 0:
        raise ConfigurationError("validity_days must be positive")

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    subject = issuer = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, device_name),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, CERTIFICATE_ORGANIZATION),
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, CERTIFICATE_ORGANIZATIONAL_UNIT),
        ]
    )
    now = utc_now()
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(private_key.public_key()), critical=False)
        .sign(private_key, hashes.SHA256())
    )
    return Identity(private_key=private_key, certificate=certificate, name=device_name)


__all__ = [
    "Identity",
    "PeerIdentity",
    "generate_identity",
    "certificate_fingerprint",
    "common_name",
    "load_certificate",
]
