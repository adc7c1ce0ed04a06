"""Connection targets: ``host:port`` pairs or URLs of stream-multiplexed transports."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

DEFAULT_PORT = 4433
DEFAULT_URL_PORT = 443


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int = DEFAULT_PORT
    path: Optional[str] = None

    @classmethod
    def parse(cls, value: str, default_port: int = DEFAULT_PORT) -> "Endpoint":
        """Parse ``host``, ``host:port``, ``[v6]:port`` or ``https://host[:port]/path``."""
        value = value.strip()
        if not value:
            raise ValueError("endpoint is empty")

        if "://" in value:
            parts = urlsplit(value)
            if not parts.hostname:
                raise ValueError(f"endpoint URL has no host: {value}")
            return cls(parts.hostname, parts.port or DEFAULT_URL_PORT, parts.path or "/")

        parts = urlsplit(f"//{value}")
        if not parts.hostname:
            raise ValueError(f"invalid endpoint: {value}")
        return cls(parts.hostname, parts.port or default_port)

    @property
    def key(self) -> str:
        """Normalized ``host:port`` used to index pins."""
        host = self.host.lower()
        if ":" in host:
            host = f"[{host}]"
        return f"{host}:{self.port}"

    def url(self) -> str:
        return f"https://{self.key}{self.path or '/'}"

    def __str__(self) -> str:
        if self.path is not None:
            return self.url()
        return self.key
