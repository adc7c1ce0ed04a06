from argparse import Namespace

from certpin.endpoint import Endpoint
from certpin.fingerprint import Fingerprint
from certpin.store import PinStore
from connect import resolve_pins

from conftest import KNOWN_B64, KNOWN_COLON, KNOWN_HEX

OTHER = Fingerprint.from_hex("22" * 32)


def _args(**kw):
    base = {"pin": None, "pin_hex": None, "use_store": False}
    base.update(kw)
    return Namespace(**base)


def test_explicit_pin_wins():
    env = {"pin_sha256": OTHER.base64(), "pins_file": None}
    ep = Endpoint.parse("127.0.0.1:4433")
    assert resolve_pins(_args(pin_hex=KNOWN_COLON), env, ep)["sha-256"].hex() == KNOWN_HEX
    assert resolve_pins(_args(pin=KNOWN_B64), env, ep)["sha-256"].hex() == KNOWN_HEX


def test_store_then_env_fallback(tmp_path):
    pins_file = str(tmp_path / "pins.json")
    PinStore(pins_file).add_pin("127.0.0.1:4433", Fingerprint.from_hex(KNOWN_HEX))
    env = {"pin_sha256": OTHER.base64(), "pins_file": pins_file}

    stored = resolve_pins(_args(use_store=True), env, Endpoint.parse("127.0.0.1:4433"))
    assert stored["sha-256"].hex() == KNOWN_HEX

    # endpoint missing from the store falls back to PIN_SHA256
    fallback = resolve_pins(_args(use_store=True), env, Endpoint.parse("10.0.0.9:4433"))
    assert fallback["sha-256"] == OTHER


def test_no_pin_configured():
    env = {"pin_sha256": None, "pins_file": None}
    assert resolve_pins(_args(), env, Endpoint.parse("127.0.0.1")) is None
