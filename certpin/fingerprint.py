"""Certificate fingerprints and pin configurations.

A fingerprint is the digest of the raw DER bytes of one certificate, exactly
as the secure channel presented them. Hex and base64 are formatting views
over the same digest; comparisons always run on the raw bytes.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Union

from cryptography import x509

from .errors import InvalidCertificateData, UnsupportedAlgorithm


class HashAlgorithm(str, Enum):
    SHA256 = "sha-256"

    @classmethod
    def parse(cls, name: Union[str, "HashAlgorithm"]) -> "HashAlgorithm":
        """Resolve an algorithm identifier such as ``"sha-256"``."""
        if isinstance(name, cls):
            return name
        if isinstance(name, str):
            try:
                return cls(name.strip().lower())
            except ValueError:
                pass
        raise UnsupportedAlgorithm(name)

    @property
    def digest_size(self) -> int:
        return _HASHES[self]().digest_size


_HASHES = {
    HashAlgorithm.SHA256: hashlib.sha256,
}


@dataclass(frozen=True)
class Fingerprint:
    algorithm: HashAlgorithm
    digest: bytes

    def __post_init__(self):
        object.__setattr__(self, "algorithm", HashAlgorithm.parse(self.algorithm))
        if isinstance(self.digest, (bytearray, memoryview)):
            object.__setattr__(self, "digest", bytes(self.digest))
        if not isinstance(self.digest, bytes):
            raise TypeError("fingerprint digest must be bytes")
        if len(self.digest) != self.algorithm.digest_size:
            raise ValueError(
                f"{self.algorithm.value} fingerprint must be {self.algorithm.digest_size} bytes, "
                f"got {len(self.digest)}"
            )

    @classmethod
    def from_hex(cls, text: str, algorithm: Union[str, HashAlgorithm] = HashAlgorithm.SHA256) -> "Fingerprint":
        """Parse a hex fingerprint; colons, whitespace and letter case are ignored."""
        cleaned = "".join(text.replace(":", "").split())
        return cls(HashAlgorithm.parse(algorithm), bytes.fromhex(cleaned))

    @classmethod
    def from_base64(cls, text: str, algorithm: Union[str, HashAlgorithm] = HashAlgorithm.SHA256) -> "Fingerprint":
        try:
            digest = base64.b64decode(text.strip(), validate=True)
        except binascii.Error as exc:
            raise ValueError(f"invalid base64 fingerprint: {exc}") from exc
        return cls(HashAlgorithm.parse(algorithm), digest)

    def hex(self) -> str:
        return self.digest.hex()

    def colon_hex(self) -> str:
        # Same layout as `openssl x509 -fingerprint`.
        return ":".join(f"{b:02X}" for b in self.digest)

    def base64(self) -> str:
        return base64.b64encode(self.digest).decode("ascii")

    def to_pin(self) -> dict:
        return {"algorithm": self.algorithm.value, "value": self.base64()}

    def __str__(self) -> str:
        return self.hex()


def fingerprint(
    certificate_bytes: Union[bytes, bytearray, memoryview],
    algorithm: Union[str, HashAlgorithm] = HashAlgorithm.SHA256,
) -> Fingerprint:
    """Return the fingerprint of one DER-encoded certificate.

    The digest is taken over ``certificate_bytes`` as given. The bytes are
    only parsed to make sure they hold exactly one certificate; nothing is
    re-encoded before hashing.

    :raises InvalidCertificateData: input is empty, not bytes, or not DER.
    :raises UnsupportedAlgorithm: ``algorithm`` is not a known identifier.
    """
    algorithm = HashAlgorithm.parse(algorithm)

    if not isinstance(certificate_bytes, (bytes, bytearray, memoryview)):
        raise InvalidCertificateData(
            f"certificate must be DER bytes, got {type(certificate_bytes).__name__}"
        )
    der = bytes(certificate_bytes)
    if not der:
        raise InvalidCertificateData("certificate data is empty")

    try:
        x509.load_der_x509_certificate(der)
    except ValueError as exc:
        if der.lstrip().startswith(b"-----BEGIN"):
            raise InvalidCertificateData(
                "certificate is PEM encoded; convert it to DER before fingerprinting"
            ) from exc
        raise InvalidCertificateData(f"malformed DER certificate: {exc}") from exc

    return Fingerprint(algorithm, _HASHES[algorithm](der).digest())


def _pin_pair(entry):
    """``(algorithm, value)`` from an embedding-format entry or a plain pair."""
    if isinstance(entry, Mapping):
        try:
            return entry["algorithm"], entry["value"]
        except KeyError as exc:
            raise ValueError(f"pin entry is missing {exc.args[0]!r}") from exc
    return entry


class PinConfiguration(Mapping):
    """Expected fingerprints for one connection attempt, keyed by algorithm.

    Takes a mapping of algorithm to value, ``(algorithm, value)`` pairs, or
    embedding-format entries ``{"algorithm": ..., "value": ...}``. Values may
    be given as :class:`Fingerprint`, raw digest bytes, or base64 text. Unknown algorithms are refused here, so
    a bad configuration never reaches the network.
    """

    def __init__(self, pins):
        items = pins.items() if isinstance(pins, Mapping) else (_pin_pair(entry) for entry in pins)
        parsed = {}
        for name, expected in items:
            algorithm = HashAlgorithm.parse(name)
            if isinstance(expected, str):
                expected = Fingerprint.from_base64(expected, algorithm)
            elif isinstance(expected, (bytes, bytearray)):
                expected = Fingerprint(algorithm, bytes(expected))
            elif not isinstance(expected, Fingerprint):
                raise TypeError(f"cannot use {type(expected).__name__} as a pinned fingerprint")
            if expected.algorithm is not algorithm:
                raise ValueError(
                    f"fingerprint for {expected.algorithm.value} listed under {algorithm.value}"
                )
            parsed[algorithm] = expected

        if not parsed:
            raise ValueError("pin configuration needs at least one fingerprint")
        self._pins = MappingProxyType(parsed)

    @classmethod
    def sha256(cls, expected: Union[Fingerprint, bytes]) -> "PinConfiguration":
        return cls({HashAlgorithm.SHA256: expected})

    @classmethod
    def from_hashes(cls, hashes: Iterable[Mapping]) -> "PinConfiguration":
        """Build from ``[{"algorithm": "sha-256", "value": "<base64>"}]``."""
        return cls([_pin_pair(entry) for entry in hashes])

    def to_hashes(self) -> list:
        return [fp.to_pin() for fp in self._pins.values()]

    def matches(self, actual: Fingerprint) -> bool:
        expected = self._pins.get(actual.algorithm)
        if expected is None:
            return False
        return hmac.compare_digest(expected.digest, actual.digest)

    def __getitem__(self, key):
        try:
            return self._pins[HashAlgorithm.parse(key)]
        except UnsupportedAlgorithm:
            raise KeyError(key) from None

    def __iter__(self):
        return iter(self._pins)

    def __len__(self):
        return len(self._pins)

    def __repr__(self):
        inner = ", ".join(f"{alg.value}={fp.hex()}" for alg, fp in self._pins.items())
        return f"PinConfiguration({inner})"
