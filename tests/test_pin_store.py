import json
import os
import stat

import pytest

from certpin.fingerprint import Fingerprint, fingerprint
from certpin.store import PinStore, PinStoreError, normalize_endpoint

from conftest import KNOWN_B64, KNOWN_HEX


def test_store_add_and_lookup(tmp_path, monkeypatch, known_der):
    pins_file = tmp_path / "pins.json"
    monkeypatch.setenv("PINS_FILE", str(pins_file))

    store = PinStore()
    key = store.add_pin("LOCALHOST:4433", fingerprint(known_der), note="dev")
    assert key == "localhost:4433"

    rec = store.get_record("localhost:4433")
    assert rec["hex"] == KNOWN_HEX
    assert rec["hashes"] == [{"algorithm": "sha-256", "value": KNOWN_B64}]
    assert rec["note"] == "dev"

    pins = store.get_pin("localhost:4433")
    assert pins.matches(fingerprint(known_der))
    assert store.get_pin("otherhost:4433") is None

    # persisted with owner-only permissions
    assert json.loads(pins_file.read_text())["localhost:4433"]["hex"] == KNOWN_HEX
    assert stat.S_IMODE(os.stat(pins_file).st_mode) == 0o600

    # a fresh instance sees the same data
    assert PinStore(str(pins_file)).list_pins().keys() == {"localhost:4433"}


def test_add_replaces_previous_pin(tmp_path, known_der):
    store = PinStore(str(tmp_path / "pins.json"))
    store.add_pin("127.0.0.1:4433", Fingerprint.from_hex("00" * 32))
    store.add_pin("127.0.0.1:4433", fingerprint(known_der))
    assert len(store.list_pins()) == 1
    assert store.get_record("127.0.0.1:4433")["hex"] == KNOWN_HEX


def test_remove_pin(tmp_path, known_der):
    store = PinStore(str(tmp_path / "pins.json"))
    store.add_pin("127.0.0.1:4433", fingerprint(known_der))
    store.remove_pin("127.0.0.1")
    assert store.list_pins() == {}
    with pytest.raises(PinStoreError):
        store.remove_pin("127.0.0.1:4433")


def test_corrupt_store_is_reported(tmp_path):
    pins_file = tmp_path / "pins.json"
    pins_file.write_text("{not json")
    with pytest.raises(PinStoreError):
        PinStore(str(pins_file))


def test_normalize_endpoint():
    assert normalize_endpoint("https://Example.org/wt") == "example.org:443"
    assert normalize_endpoint("[::1]:4433") == "[::1]:4433"
