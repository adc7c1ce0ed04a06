"""Simple JSON-backed store of pinned fingerprints, keyed by endpoint.

Pins are written to a JSON file with 0600 permissions. Each record keeps the
pin in its embedding format (algorithm + base64 value) so it can be handed
straight to a connector or a browser snippet.
"""
from __future__ import annotations

import json
import logging
import os
import threading
import time
from typing import Dict, Optional, Union

from .endpoint import Endpoint
from .fingerprint import Fingerprint, PinConfiguration

logger = logging.getLogger(__name__)


class PinStoreError(Exception):
    pass


def normalize_endpoint(endpoint: Union[str, Endpoint]) -> str:
    """Return the ``host:port`` key used for ``endpoint``."""
    if isinstance(endpoint, str):
        endpoint = Endpoint.parse(endpoint)
    return endpoint.key


class PinStore:
    def __init__(self, path: Optional[str] = None):
        self.path = path or os.environ.get("PINS_FILE") or os.path.join(os.getcwd(), "pins", "pins.json")
        self._lock = threading.Lock()
        self._data: Dict[str, Dict] = {}
        self._ensure_file()
        self._load()

    def _ensure_file(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        if not os.path.exists(self.path):
            with open(self.path, "w") as f:
                json.dump({}, f)
            os.chmod(self.path, 0o600)

    def _load(self) -> None:
        with self._lock:
            try:
                with open(self.path, "r") as f:
                    self._data = json.load(f)
            except json.JSONDecodeError as exc:
                raise PinStoreError(f"pin store {self.path} is not valid JSON: {exc}") from exc

    def _save(self) -> None:
        with self._lock:
            tmp = self.path + ".tmp"
            try:
                with open(tmp, "w") as f:
                    json.dump(self._data, f, indent=2)
                os.chmod(tmp, 0o600)
                os.replace(tmp, self.path)
            except OSError:
                if os.path.exists(tmp):
                    os.remove(tmp)
                raise

    def list_pins(self) -> Dict[str, Dict]:
        return dict(self._data)

    def get_record(self, endpoint) -> Optional[Dict]:
        return self._data.get(normalize_endpoint(endpoint))

    def get_pin(self, endpoint) -> Optional[PinConfiguration]:
        rec = self.get_record(endpoint)
        if rec is None:
            return None
        return PinConfiguration.from_hashes(rec["hashes"])

    def add_pin(self, endpoint, fp: Fingerprint, note: Optional[str] = None) -> str:
        """Pin ``fp`` for ``endpoint``, replacing any previous pin. Returns the endpoint key."""
        key = normalize_endpoint(endpoint)
        self._data[key] = {
            "endpoint": key,
            "hashes": [fp.to_pin()],
            "hex": fp.hex(),
            "added_at": int(time.time()),
            "note": note,
        }
        self._save()
        logger.info(f"Pinned {key} to {fp.algorithm.value} {fp.hex()}")
        return key

    def remove_pin(self, endpoint) -> None:
        key = normalize_endpoint(endpoint)
        if key not in self._data:
            raise PinStoreError(f"no pin stored for {key}")
        del self._data[key]
        self._save()
