"""Exception types raised by fingerprinting and pinned connections."""
from __future__ import annotations

from typing import Optional


class PinningError(Exception):
    """Base class for every certificate pinning failure.

    ``session`` is set when the failure belongs to a connection attempt, so
    callers can inspect the terminal state of the session that was refused.
    """

    def __init__(self, message: str = "", *, session=None):
        super().__init__(message)
        self.session = session


class InvalidCertificateData(PinningError):
    pass


class UnsupportedAlgorithm(PinningError):
    def __init__(self, algorithm, message: Optional[str] = None, *, session=None):
        super().__init__(message or f"unsupported fingerprint algorithm: {algorithm!r}", session=session)
        self.algorithm = algorithm


class NoPeerCertificate(PinningError):
    pass


class FingerprintMismatch(PinningError):
    def __init__(self, expected, actual, *, session=None):
        super().__init__(
            f"peer certificate fingerprint {actual.hex()} does not match the pinned value",
            session=session,
        )
        self.expected = expected
        self.actual = actual


class HandshakeTimeout(PinningError):
    pass


class TransportError(PinningError):
    pass


class SessionNotEstablished(PinningError):
    def __init__(self, state, *, session=None):
        super().__init__(f"session is {state.value}, not established", session=session)
        self.state = state
