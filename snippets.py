"""Render client-side snippets that embed a certificate pin.

Only the base64 form of the fingerprint goes in; the rendered code hands it
to the browser's WebTransport API as ``serverCertificateHashes``.
"""
import base64
import binascii

from jinja2 import Environment

SHA256_DIGEST_SIZE = 32

# Plain JavaScript output; values go through the tojson filter, not HTML escaping.
_env = Environment(autoescape=False, keep_trailing_newline=True)

WEBTRANSPORT_TEMPLATE = _env.from_string("""\
(async () => {
    try {
        const url = {{ url|tojson }};
        const options = {
            serverCertificateHashes: [
                {
                    algorithm: 'sha-256',
                    value: Uint8Array.from(atob({{ value|tojson }}), c => c.charCodeAt(0))
                }
            ]
        };

        const transport = new WebTransport(url, options);

        transport.closed
            .then(() => {
                console.log('WebTransport connection closed gracefully.');
            })
            .catch(error => {
                console.error('WebTransport connection closed with error:', error);
            });

        await transport.ready;
        console.log('WebTransport connection established.');

        const stream = await transport.createBidirectionalStream();
        console.log('Bidirectional stream created:', stream);

    } catch (error) {
        console.error('Failed to establish WebTransport connection:', error);
    }
})();
""")


def render_webtransport_snippet(url: str, fingerprint_b64: str) -> str:
    """Return a JavaScript snippet connecting to `url` with a pinned sha-256 hash."""
    try:
        digest = base64.b64decode(fingerprint_b64, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"fingerprint is not valid base64: {exc}") from exc
    if len(digest) != SHA256_DIGEST_SIZE:
        raise ValueError(f"sha-256 fingerprint must decode to {SHA256_DIGEST_SIZE} bytes, got {len(digest)}")

    return WEBTRANSPORT_TEMPLATE.render(url=url, value=fingerprint_b64)
