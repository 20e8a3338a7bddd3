"""TLS session engine for a single connection.

The engine never touches a socket. The owning connection feeds it the raw
bytes it reads (``receive_data``) and the engine pushes every byte it needs to
send through the ``transmit`` callable it was created with. pyOpenSSL memory
BIOs do the record layer work; this module only drives the handshake state
machine and applies the trust policy.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import List, Optional

from cryptography import x509
from OpenSSL import SSL, crypto

from devlink.shared.protocol.errors import (
    ConfigurationError,
    ConnectionClosed,
    ErrorCode,
    HandshakeFailure,
    TransportError,
)
from devlink.shared.security.identity import Identity, PeerIdentity, common_name
from devlink.shared.security.trust import AcceptedIssuers, TrustMode, TrustPolicy
from devlink.shared.utils.signals import Signal

logger = logging.getLogger(__name__)

Transmit = Callable[[bytes], None]

_BIO_CHUNK = 64 * 1024

_TLS_VERSIONS = {
    "1.2": SSL.TLS1_2_VERSION,
    "1.3": SSL.TLS1_3_VERSION,
}


class HandshakeState(Enum):
    IDLE = "idle"
    HANDSHAKING = "handshaking"
    ESTABLISHED = "established"
    FAILED = "failed"


def _describe(exc: SSL.Error) -> str:
    # OpenSSL errors arrive as [(lib, func, reason), ...]
    reasons: List[str] = []
    if exc.args and isinstance(exc.args[0], list):
        reasons = [str(entry[-1]) for entry in exc.args[0] if isinstance(entry, tuple) and entry]
    return ", ".join(reasons) or str(exc) or exc.__class__.__name__


class SecureChannel:
    """Handshake state machine and record protection for one side of a connection."""

    def __init__(self, transmit: Transmit, *, label: str = "") -> None:
        self._transmit = transmit
        self.label = label
        self.policy = TrustPolicy()
        self.accepted_issuers = AcceptedIssuers()
        self._identity: Optional[Identity] = None
        self._state = HandshakeState.IDLE
        self._server_side: Optional[bool] = None
        self._tls: Optional[SSL.Connection] = None
        self._peer_certificate: Optional[x509.Certificate] = None
        self._rejection: Optional[str] = None
        self._peer_closed = False

        self.encrypted = Signal("encrypted")
        self.handshake_failed = Signal("handshake_failed")

    # ------------------------------------------------------------------
    # Configuration (IDLE only)
    # ------------------------------------------------------------------

    @property
    def state(self) -> HandshakeState:
        return self._state

    @property
    def server_side(self) -> Optional[bool]:
        return self._server_side

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def peer_closed(self) -> bool:
        """True once the peer sent a TLS close_notify."""
        return self._peer_closed

    def set_identity(self, identity: Identity) -> None:
        self._require_idle("set identity")
        self._identity = identity

    def set_trust_mode(self, mode: TrustMode) -> None:
        self._require_idle("change trust mode")
        self.policy.mode = mode

    def set_peer_verify_name(self, name: Optional[str]) -> None:
        self._require_idle("change peer verify name")
        self.policy.peer_verify_name = name

    def add_accepted_issuer(self, certificate: x509.Certificate) -> None:
        self._require_idle("change accepted issuers")
        self.accepted_issuers.add(certificate)

    def _require_idle(self, action: str) -> None:
        if self._state is not HandshakeState.IDLE:
            raise TransportError(ErrorCode.INVALID_STATE, f"Cannot {action} in state {self._state.value}")

    # ------------------------------------------------------------------
    # Handshake
    # ------------------------------------------------------------------

    def start(self, server_side: bool) -> None:
        """Begin the handshake as the TLS server or client.

        Raises ``ConfigurationError`` (state stays IDLE) when no identity has
        been installed, ``HandshakeFailure`` if the very first step fails.
        """
        self._require_idle("start encryption")
        if self._identity is None:
            raise ConfigurationError("A local identity is required before starting encryption")

        context = self._build_context(server_side)
        tls = SSL.Connection(context, None)
        if server_side:
            tls.set_accept_state()
        else:
            tls.set_connect_state()

        self._tls = tls
        self._server_side = server_side
        self._state = HandshakeState.HANDSHAKING
        if self.policy.mode is TrustMode.STRICT and self.policy.peer_verify_name is None:
            logger.warning("%s: strict mode without a peer verify name, peer name check disabled", self.label)
        logger.debug(
            "%s: starting %s handshake (%s)",
            self.label,
            "server" if server_side else "client",
            self.policy.mode.value,
        )
        self._advance_handshake()

    def _build_context(self, server_side: bool) -> SSL.Context:
        assert self._identity is not None
        context = SSL.Context(SSL.TLS_METHOD)
        context.set_min_proto_version(_TLS_VERSIONS[self.policy.min_tls_version])
        try:
            context.use_privatekey(self._identity.private_key)
            context.use_certificate(self._identity.certificate)
            context.check_privatekey()
            store = context.get_cert_store()
            for certificate in self.accepted_issuers:
                store.add_cert(certificate)
        except SSL.Error as exc:
            raise ConfigurationError(f"Invalid identity material: {_describe(exc)}") from exc

        # Both modes request the peer certificate; only strict mode insists on it.
        mode = SSL.VERIFY_PEER
        if server_side and self.policy.mode is TrustMode.STRICT:
            mode |= SSL.VERIFY_FAIL_IF_NO_PEER_CERT
        context.set_verify(mode, self._verify_peer)
        return context

    def _verify_peer(
        self, _conn: SSL.Connection, certificate: crypto.X509, errno: int, depth: int, preverify_ok: int
    ) -> bool:
        if self.policy.mode is TrustMode.OPPORTUNISTIC:
            return True
        if not preverify_ok:
            self._rejection = f"peer certificate not trusted (verify error {errno} at depth {depth})"
            return False
        expected = self.policy.peer_verify_name
        if depth == 0 and expected is not None:
            actual = common_name(certificate.to_cryptography())
            if actual != expected:
                self._rejection = f"peer name {actual!r} does not match expected {expected!r}"
                return False
        return True

    def _advance_handshake(self) -> None:
        assert self._tls is not None
        try:
            self._tls.do_handshake()
        except SSL.WantReadError:
            self._flush()
            return
        except SSL.Error as exc:
            self._fail(self._rejection or _describe(exc))

        self._state = HandshakeState.ESTABLISHED
        peer = self._tls.get_peer_certificate()
        self._peer_certificate = peer.to_cryptography() if peer is not None else None
        self._flush()
        logger.info(
            "%s: encrypted with %s/%s, peer %s",
            self.label,
            self.protocol_version(),
            self.cipher_name(),
            self._peer_certificate and common_name(self._peer_certificate),
        )
        self.encrypted.emit()

    def _fail(self, reason: str) -> None:
        self._state = HandshakeState.FAILED
        self._flush()
        failure = HandshakeFailure(reason)
        logger.warning("%s: handshake failed: %s", self.label, reason)
        self.handshake_failed.emit(failure)
        raise failure

    def abort(self, reason: str) -> Optional[HandshakeFailure]:
        """Fail an in-progress handshake without raising (connection teardown)."""
        if self._state is not HandshakeState.HANDSHAKING:
            return None
        self._state = HandshakeState.FAILED
        failure = HandshakeFailure(reason)
        logger.warning("%s: handshake aborted: %s", self.label, reason)
        self.handshake_failed.emit(failure)
        return failure

    # ------------------------------------------------------------------
    # Record layer
    # ------------------------------------------------------------------

    def receive_data(self, data: bytes) -> bytes:
        """Feed ciphertext read from the wire, return any decrypted plaintext."""
        if self._state is HandshakeState.IDLE:
            raise TransportError(ErrorCode.INVALID_STATE, "Encryption has not been started")
        if self._state is HandshakeState.FAILED or self._tls is None:
            return b""

        self._tls.bio_write(data)
        if self._state is HandshakeState.HANDSHAKING:
            self._advance_handshake()
            if self._state is not HandshakeState.ESTABLISHED:
                return b""
        return self._drain_plaintext()

    def _drain_plaintext(self) -> bytes:
        assert self._tls is not None
        chunks: List[bytes] = []
        while True:
            try:
                chunk = self._tls.recv(_BIO_CHUNK)
            except SSL.WantReadError:
                break
            except SSL.ZeroReturnError:
                self._peer_closed = True
                break
            except SSL.Error as exc:
                self._flush()
                raise ConnectionClosed(f"TLS session terminated: {_describe(exc)}") from exc
            if not chunk:
                break
            chunks.append(chunk)
        # Post-handshake messages (session tickets, key updates) may need an answer.
        self._flush()
        return b"".join(chunks)

    def send(self, data: bytes) -> None:
        if self._state is not HandshakeState.ESTABLISHED or self._tls is None:
            raise TransportError(ErrorCode.INVALID_STATE, f"Cannot send in state {self._state.value}")
        try:
            self._tls.sendall(data)
        except SSL.Error as exc:
            raise ConnectionClosed(f"TLS send failed: {_describe(exc)}") from exc
        self._flush()

    def shutdown(self) -> None:
        """Queue a close_notify for the peer."""
        if self._state is not HandshakeState.ESTABLISHED or self._tls is None:
            return
        try:
            self._tls.shutdown()
        except SSL.Error as exc:
            logger.debug("%s: close_notify not sent: %s", self.label, _describe(exc))
        self._flush()

    def _flush(self) -> None:
        if self._tls is None:
            return
        chunks: List[bytes] = []
        while True:
            try:
                chunks.append(self._tls.bio_read(_BIO_CHUNK))
            except SSL.WantReadError:
                break
        if chunks:
            self._transmit(b"".join(chunks))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def is_established(self) -> bool:
        return self._state is HandshakeState.ESTABLISHED

    def peer_certificate(self) -> Optional[x509.Certificate]:
        return self._peer_certificate

    def peer_identity(self) -> Optional[PeerIdentity]:
        if self._peer_certificate is None:
            return None
        return PeerIdentity.from_certificate(self._peer_certificate)

    def cipher_name(self) -> Optional[str]:
        return self._tls.get_cipher_name() if self._tls is not None else None

    def protocol_version(self) -> Optional[str]:
        return self._tls.get_protocol_version_name() if self._tls is not None else None


__all__ = ["HandshakeState", "SecureChannel", "Transmit"]
