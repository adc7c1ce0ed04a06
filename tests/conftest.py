import os

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from certpin.utils import write_self_signed_cert

# Known vector: `openssl x509 -fingerprint -sha256` of this certificate prints KNOWN_COLON.
KNOWN_PEM = b"""-----BEGIN CERTIFICATE-----
MIIBkzCCATmgAwIBAgIUGQHeyHd5YxLQo6EkK4V3BjqpSkIwCgYIKoZIzj0EAwIw
HzEdMBsGA1UEAwwUcGlubmluZy1rbm93bi12ZWN0b3IwHhcNMjYxMDE3MjAzODM2
WhcNMzYxMDE0MjAzODM2WjAfMR0wGwYDVQQDDBRwaW5uaW5nLWtub3duLXZlY3Rv
cjBZMBMGByqGSM49AgEGCCqGSM49AwEHA0IABC50yubl6cYZE2RJBF07K/UFUE5p
xbwRRIRP7OsGO6OmyKA8j/WhbRYczGCzkzIgLzBjZGCKs6bUV/2op58FfRijUzBR
MB0GA1UdDgQWBBRA+l0JMBWmXWDT4wP1rHRD0Y57aDAfBgNVHSMEGDAWgBRA+l0J
MBWmXWDT4wP1rHRD0Y57aDAPBgNVHRMBAf8EBTADAQH/MAoGCCqGSM49BAMCA0gA
MEUCIQDP4Mrr/1pOKpk1U/S+At3XVq80n7p6Lhd1Q2CD6H1FBAIgTQr9h5Nshlce
G0NgESKqNwT13HPqtMtytxOEiROGpQM=
-----END CERTIFICATE-----
"""
KNOWN_HEX = "5edfceea626a752dbf4ae5d269fcfce67c638570fb6d8c50770cf2bc44a23f0d"
KNOWN_COLON = "5E:DF:CE:EA:62:6A:75:2D:BF:4A:E5:D2:69:FC:FC:E6:7C:63:85:70:FB:6D:8C:50:77:0C:F2:BC:44:A2:3F:0D"
KNOWN_B64 = "Xt/O6mJqdS2/SuXSafz85nxjhXD7bYxQdwzyvESiPw0="


@pytest.fixture
def known_der():
    cert = x509.load_pem_x509_certificate(KNOWN_PEM)
    return cert.public_bytes(serialization.Encoding.DER)


@pytest.fixture
def known_cert():
    return x509.load_pem_x509_certificate(KNOWN_PEM)


@pytest.fixture
def server_cert(tmp_path):
    """Self-signed localhost certificate on disk: (cert_path, key_path, fingerprint)."""
    cert_p = os.path.join(tmp_path, "cert.pem")
    key_p = os.path.join(tmp_path, "key.pem")
    fp = write_self_signed_cert(cert_p, key_p)
    return cert_p, key_p, fp
