import pytest

import api_bridge
from certpin.errors import FingerprintMismatch
from certpin.fingerprint import Fingerprint

from conftest import KNOWN_B64, KNOWN_COLON, KNOWN_HEX, KNOWN_PEM


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PINS_FILE", str(tmp_path / "pins.json"))
    monkeypatch.setenv("CERTI", str(tmp_path / "missing.pem"))
    api_bridge.app.config["TESTING"] = True
    with api_bridge.app.test_client() as c:
        yield c


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "healthy"}


def test_fingerprint_from_pem(client):
    resp = client.post("/fingerprint", json={"cert_pem": KNOWN_PEM.decode()})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["hex"] == KNOWN_HEX
    assert body["colon"] == KNOWN_COLON
    assert body["base64"] == KNOWN_B64
    assert body["pin"] == {"algorithm": "sha-256", "value": KNOWN_B64}


def test_fingerprint_rejects_garbage(client):
    resp = client.post("/fingerprint", json={"cert_der_b64": "AAAA"})
    assert resp.status_code == 400
    assert resp.get_json()["status"] == "error"
    assert client.post("/fingerprint", json={}).status_code == 400


def test_pki_info_without_cert(client):
    assert client.get("/pki/info").get_json() == {"has_cert": False}


def test_pin_lifecycle(client):
    resp = client.post("/pins", json={"endpoint": "LocalHost:4433", "fingerprint": KNOWN_B64, "note": "dev"})
    assert resp.status_code == 200
    assert resp.get_json()["endpoint"] == "localhost:4433"

    pins = client.get("/pins").get_json()["pins"]
    assert pins["localhost:4433"]["hex"] == KNOWN_HEX

    resp = client.post("/pins/remove", json={"endpoint": "localhost:4433"})
    assert resp.status_code == 200
    assert client.get("/pins").get_json()["pins"] == {}

    resp = client.post("/pins/remove", json={"endpoint": "localhost:4433"})
    assert resp.status_code == 404


def test_add_pin_requires_endpoint_and_value(client):
    assert client.post("/pins", json={"fingerprint": KNOWN_B64}).status_code == 400
    assert client.post("/pins", json={"endpoint": "localhost"}).status_code == 400


def test_check_unknown_endpoint(client):
    resp = client.post("/pins/check", json={"endpoint": "127.0.0.1:4433"})
    assert resp.status_code == 404


def test_check_reports_pinning_failure(client, monkeypatch):
    client.post("/pins", json={"endpoint": "127.0.0.1:4433", "fingerprint_hex": KNOWN_HEX})
    seen = {}

    async def fake_pinned_connect(endpoint, pins, options):
        seen["options"] = options
        raise FingerprintMismatch(pins, Fingerprint.from_hex("00" * 32))

    monkeypatch.setattr(api_bridge, "pinned_connect", fake_pinned_connect)

    resp = client.post("/pins/check", json={"endpoint": "127.0.0.1:4433", "transport": "tls", "timeout": 3})
    assert resp.status_code == 502
    body = resp.get_json()
    assert body["error"] == "FingerprintMismatch"
    assert seen["options"].transport == "tls"
    assert seen["options"].timeout == 3.0


def test_check_success(client, monkeypatch):
    client.post("/pins", json={"endpoint": "127.0.0.1:4433", "fingerprint": KNOWN_B64})

    class DummySession:
        fingerprint = Fingerprint.from_hex(KNOWN_HEX)
        closed = False

        async def close(self):
            DummySession.closed = True

    async def fake_pinned_connect(endpoint, pins, options):
        assert pins.to_hashes() == [{"algorithm": "sha-256", "value": KNOWN_B64}]
        return DummySession()

    monkeypatch.setattr(api_bridge, "pinned_connect", fake_pinned_connect)

    resp = client.post("/pins/check", json={"endpoint": "127.0.0.1:4433"})
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "success", "state": "established", "fingerprint": KNOWN_HEX}
    assert DummySession.closed


def test_snippet(client):
    resp = client.post("/snippet", json={"url": "https://127.0.0.1:4433/", "fingerprint": KNOWN_B64})
    assert resp.status_code == 200
    assert KNOWN_B64 in resp.get_json()["snippet"]
    assert client.post("/snippet", json={"url": "https://x/", "fingerprint": "AAAA"}).status_code == 400


@pytest.mark.parametrize("timeout", [None, [1], "soon"])
def test_check_rejects_bad_timeout(client, timeout):
    client.post("/pins", json={"endpoint": "127.0.0.1:4433", "fingerprint": KNOWN_B64})
    resp = client.post("/pins/check", json={"endpoint": "127.0.0.1:4433", "timeout": timeout})
    assert resp.status_code == 400
    assert resp.get_json()["status"] == "error"
