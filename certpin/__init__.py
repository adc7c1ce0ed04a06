"""Certificate pinning: fingerprint computation, pin configurations and pin store."""

from .endpoint import Endpoint
from .errors import (
    FingerprintMismatch,
    HandshakeTimeout,
    InvalidCertificateData,
    NoPeerCertificate,
    PinningError,
    SessionNotEstablished,
    TransportError,
    UnsupportedAlgorithm,
)
from .fingerprint import Fingerprint, HashAlgorithm, PinConfiguration, fingerprint
from .store import PinStore, PinStoreError
from .utils import cert_pem_to_der, fingerprint_file, fingerprint_pem, load_cert_der

__all__ = [
    "Endpoint",
    "Fingerprint",
    "FingerprintMismatch",
    "HandshakeTimeout",
    "HashAlgorithm",
    "InvalidCertificateData",
    "NoPeerCertificate",
    "PinConfiguration",
    "PinStore",
    "PinStoreError",
    "PinningError",
    "SessionNotEstablished",
    "TransportError",
    "UnsupportedAlgorithm",
    "cert_pem_to_der",
    "fingerprint",
    "fingerprint_file",
    "fingerprint_pem",
    "load_cert_der",
]
