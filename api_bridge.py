import asyncio
import base64
import binascii
import os

from flask import Flask, request, jsonify
from flask_cors import CORS

from startsetup import load_env_vars
from certpin.errors import PinningError
from certpin.fingerprint import Fingerprint, fingerprint
from certpin.store import PinStore, PinStoreError
from certpin.utils import cert_pem_to_der, fingerprint_file
from pinned_api_functions import HandshakeOptions, pinned_connect
from snippets import render_webtransport_snippet


app = Flask(__name__)

CORS(app, resources={r"/*": {"origins": "*"}})


def _pin_store():
    env = load_env_vars()
    return PinStore(env.get("pins_file"))


def _describe(fp: Fingerprint) -> dict:
    return {
        "algorithm": fp.algorithm.value,
        "hex": fp.hex(),
        "colon": fp.colon_hex(),
        "base64": fp.base64(),
        "pin": fp.to_pin(),
    }


def _fingerprint_from_request(data: dict) -> Fingerprint:
    """Accept an uploaded certificate, PEM text, base64 DER, or a ready fingerprint."""
    if "certificate" in request.files:
        raw = request.files["certificate"].read()
        if b"-----BEGIN CERTIFICATE-----" in raw:
            raw = cert_pem_to_der(raw)
        return fingerprint(raw)
    if data.get("cert_pem"):
        return fingerprint(cert_pem_to_der(data["cert_pem"]))
    if data.get("cert_der_b64"):
        try:
            der = base64.b64decode(data["cert_der_b64"], validate=True)
        except binascii.Error as e:
            raise ValueError(f"cert_der_b64 is not valid base64: {e}")
        return fingerprint(der)
    if data.get("fingerprint"):
        return Fingerprint.from_base64(data["fingerprint"])
    if data.get("fingerprint_hex"):
        return Fingerprint.from_hex(data["fingerprint_hex"])
    raise ValueError("provide certificate, cert_pem, cert_der_b64, fingerprint or fingerprint_hex")


@app.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint"""
    return jsonify({"status": "healthy"}), 200


@app.route("/fingerprint", methods=["POST"])
def compute_fingerprint():
    """Fingerprint a certificate; returns hex, colon-hex, base64 and the pin entry."""
    try:
        data = request.get_json(silent=True) or {}
        fp = _fingerprint_from_request(data)
        return jsonify({"status": "success", **_describe(fp)}), 200
    except (ValueError, PinningError) as e:
        return jsonify({"status": "error", "message": str(e)}), 400


@app.route("/pki/info", methods=["GET"])
def pki_info():
    """Pin of this node's own server certificate (CERTI in .env)."""
    env = load_env_vars()
    cert_path = env.get("certi")
    if cert_path and os.path.exists(cert_path):
        return {"has_cert": True, **_describe(fingerprint_file(cert_path))}, 200
    return {"has_cert": False}, 200


@app.route('/pins', methods=['GET'])
def list_pins():
    """List pinned endpoints."""
    try:
        return jsonify({"status": "success", "pins": _pin_store().list_pins()}), 200
    except PinStoreError as e:
        return jsonify({"status": "error", "message": str(e)}), 500


@app.route('/pins', methods=['POST'])
def add_pin():
    """
    JSON body:
    {
      "endpoint": "127.0.0.1:4433",
      "fingerprint": "<base64>",   # or fingerprint_hex / cert_pem / cert_der_b64
      "note": "dev server"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        endpoint = data.get("endpoint")
        if not endpoint:
            return jsonify({'status': 'error', 'message': 'endpoint required'}), 400
        fp = _fingerprint_from_request(data)
        key = _pin_store().add_pin(endpoint, fp, note=data.get("note"))
        return jsonify({'status': 'success', 'endpoint': key, **_describe(fp)}), 200
    except (ValueError, PinningError) as e:
        return jsonify({'status': 'error', 'message': str(e)}), 400


@app.route('/pins/remove', methods=['POST'])
def remove_pin():
    try:
        data = request.get_json(silent=True) or {}
        endpoint = data.get('endpoint')
        if not endpoint:
            return jsonify({'status': 'error', 'message': 'endpoint required'}), 400
        _pin_store().remove_pin(endpoint)
        return jsonify({'status': 'success', 'endpoint': endpoint}), 200
    except PinStoreError as e:
        return jsonify({'status': 'error', 'message': str(e)}), 404
    except ValueError as e:
        return jsonify({'status': 'error', 'message': str(e)}), 400


@app.route('/pins/check', methods=['POST'])
def check_pin():
    """
    Open a pinned session to a stored endpoint and close it again.

    JSON body: {"endpoint": "127.0.0.1:4433", "transport": "quic", "timeout": 5}
    """
    data = request.get_json(silent=True) or {}
    endpoint = data.get('endpoint')
    if not endpoint:
        return jsonify({'status': 'error', 'message': 'endpoint required'}), 400

    try:
        env = load_env_vars()
        pins = PinStore(env.get("pins_file")).get_pin(endpoint)
        if pins is None:
            return jsonify({'status': 'error', 'message': f'no pin stored for {endpoint}'}), 404
        options = HandshakeOptions(
            timeout=float(data.get("timeout", env["handshake_timeout"])),
            alpn_protocols=[data.get("alpn", env["alpn"])],
            transport=data.get("transport", env["transport"]),
        )
    except (TypeError, ValueError) as e:
        return jsonify({'status': 'error', 'message': str(e)}), 400

    async def _check_session():
        session = await pinned_connect(endpoint, pins, options)
        try:
            return session.fingerprint
        finally:
            await session.close()

    try:
        fp = asyncio.run(_check_session())
    except PinningError as e:
        return jsonify({
            'status': 'error',
            'error': type(e).__name__,
            'message': str(e),
            'state': e.session.state.value if e.session else None,
        }), 502

    return jsonify({'status': 'success', 'state': 'established', 'fingerprint': fp.hex()}), 200


@app.route('/snippet', methods=['POST'])
def snippet():
    """Render the browser WebTransport snippet for {"url": ..., "fingerprint": "<base64>"}."""
    data = request.get_json(silent=True) or {}
    url = data.get("url")
    value = data.get("fingerprint")
    if not url or not value:
        return jsonify({'status': 'error', 'message': 'url and fingerprint required'}), 400
    try:
        return jsonify({'status': 'success', 'snippet': render_webtransport_snippet(url, value)}), 200
    except ValueError as e:
        return jsonify({'status': 'error', 'message': str(e)}), 400


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000)
