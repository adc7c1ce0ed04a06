import asyncio
import os
import socket
import tempfile
import unittest

from certpin.errors import FingerprintMismatch
from certpin.fingerprint import Fingerprint, PinConfiguration
from certpin.utils import write_self_signed_cert
from pinned_api_functions import HandshakeOptions, PinnedConnector, SessionState
from server_api_functions import start_server, stop_server


def _free_udp_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _has_ipv6() -> bool:
    # aioquic clients bind a dual-stack "::" socket
    try:
        with socket.socket(socket.AF_INET6, socket.SOCK_DGRAM) as s:
            s.bind(("::", 0))
    except OSError:
        return False
    return True


@unittest.skipUnless(_has_ipv6(), "IPv6 sockets unavailable")
class TestQuicLoopback(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        cert_p = os.path.join(self.tmp.name, "cert.pem")
        key_p = os.path.join(self.tmp.name, "key.pem")
        self.fp = write_self_signed_cert(cert_p, key_p)

        self.port = _free_udp_port()
        self.server = await start_server("127.0.0.1", self.port, certificate=cert_p, private_key=key_p)
        self.endpoint = f"127.0.0.1:{self.port}"

    async def asyncTearDown(self):
        await stop_server(self.server)
        self.tmp.cleanup()

    async def test_pinned_session_echoes_on_stream(self):
        connector = PinnedConnector(self.endpoint, PinConfiguration.sha256(self.fp), HandshakeOptions(timeout=5))
        session = await connector.connect()
        self.assertEqual(session.state, SessionState.ESTABLISHED)
        self.assertEqual(session.fingerprint, self.fp)

        reader, writer = await session.open_bidirectional_stream()
        writer.write(b"over quic")
        writer.write_eof()
        data = await asyncio.wait_for(reader.read(), 5)
        self.assertEqual(data, b"over quic")

        await session.close()
        self.assertEqual(await session.wait_closed(), SessionState.CLOSED)

    async def test_wrong_pin_is_rejected(self):
        wrong = PinConfiguration.sha256(Fingerprint.from_hex("11" * 32))
        connector = PinnedConnector(self.endpoint, wrong, HandshakeOptions(timeout=5))
        with self.assertRaises(FingerprintMismatch) as ctx:
            await connector.connect()
        self.assertEqual(ctx.exception.actual, self.fp)
        self.assertEqual(connector.session.state, SessionState.REJECTED)


if __name__ == "__main__":
    unittest.main()
