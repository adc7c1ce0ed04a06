"""Utility helpers for certificate loading, generation and peer extraction."""
from __future__ import annotations

import ipaddress
import os
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from .errors import InvalidCertificateData
from .fingerprint import Fingerprint, HashAlgorithm, fingerprint

PEM_MARKER = b"-----BEGIN CERTIFICATE-----"


def cert_pem_to_der(cert_pem: Union[str, bytes]) -> bytes:
    """Convert PEM (str or bytes) to DER bytes using cryptography.

    Only the first certificate of a bundle is returned.
    """
    if isinstance(cert_pem, str):
        cert_pem = cert_pem.encode("utf-8")

    try:
        cert = x509.load_pem_x509_certificate(cert_pem)
    except ValueError as exc:
        raise InvalidCertificateData(f"malformed PEM certificate: {exc}") from exc
    return cert.public_bytes(serialization.Encoding.DER)


def load_cert_der(path_or_data: Union[str, bytes]) -> bytes:
    """Return DER bytes for a PEM or DER certificate given as a path or as bytes."""
    if isinstance(path_or_data, str):
        if not os.path.isfile(path_or_data):
            raise FileNotFoundError(f"Certificate file not found: {path_or_data}")
        with open(path_or_data, "rb") as f:
            data = f.read()
    else:
        data = bytes(path_or_data)

    if PEM_MARKER in data:
        return cert_pem_to_der(data)
    return data


def fingerprint_pem(cert_pem: Union[str, bytes]) -> str:
    """Return SHA-256 fingerprint (hex lowercase) for a PEM certificate."""
    return fingerprint(cert_pem_to_der(cert_pem), HashAlgorithm.SHA256).hex()


def fingerprint_file(
    path: str, algorithm: Union[str, HashAlgorithm] = HashAlgorithm.SHA256
) -> Fingerprint:
    """Fingerprint a PEM or DER certificate file."""
    return fingerprint(load_cert_der(path), algorithm)


def make_self_signed_cert(
    common_name: str = "localhost",
    hosts: Iterable[str] = ("localhost", "127.0.0.1", "::1"),
    days: int = 14,
) -> Tuple[bytes, bytes]:
    """Generate a self-signed ECDSA P-256 certificate.

    Browsers only accept ``serverCertificateHashes`` for ECDSA certificates
    valid for at most 14 days, hence the defaults.

    :return: (cert_pem, key_pem)
    """
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])

    alt_names = []
    for host in hosts:
        try:
            alt_names.append(x509.IPAddress(ipaddress.ip_address(host)))
        except ValueError:
            alt_names.append(x509.DNSName(host))

    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=days))
    )
    if alt_names:
        builder = builder.add_extension(x509.SubjectAlternativeName(alt_names), critical=False)
    cert = builder.sign(key, hashes.SHA256())

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert_pem, key_pem


def write_self_signed_cert(cert_path: str, key_path: str, **kwargs) -> Fingerprint:
    """Write a fresh self-signed certificate and key; return the certificate's fingerprint."""
    cert_pem, key_pem = make_self_signed_cert(**kwargs)

    for path in (cert_path, key_path):
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)

    with open(cert_path, "wb") as f:
        f.write(cert_pem)
    with open(key_path, "wb") as f:
        f.write(key_pem)
    os.chmod(key_path, 0o600)

    return fingerprint(cert_pem_to_der(cert_pem))


def get_peer_cert_der_from_ssl(ssl_object) -> Optional[bytes]:
    """Return the raw DER certificate the peer sent over a TLS socket, if any.

    ``getpeercert(binary_form=True)`` hands back the bytes from the handshake
    even when chain verification is disabled.
    """
    if ssl_object is None:
        return None
    der = ssl_object.getpeercert(binary_form=True)
    return der or None


def get_peer_cert_der_from_protocol(protocol) -> Optional[bytes]:
    """Return the peer's leaf certificate (DER) from an aioquic protocol.

    aioquic does not expose a public accessor, so this reads the TLS context
    attached to the protocol's QuicConnection. The leaf is stored as a parsed
    ``cryptography`` certificate; DER is canonical, so serializing it again
    yields the bytes received in the handshake.
    """
    quic = getattr(protocol, "_quic", None)
    tls = getattr(quic, "tls", None)
    if tls is None:
        return None

    cert = getattr(tls, "peer_certificate", None) or getattr(tls, "_peer_certificate", None)
    if cert is None:
        return None
    if isinstance(cert, (bytes, bytearray)):
        return bytes(cert) or None
    return cert.public_bytes(serialization.Encoding.DER)
