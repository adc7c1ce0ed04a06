#!/usr/bin/env python3
"""
Server-side API for endpoints that are reached through a pinned certificate.

The server presents a (usually self-signed) certificate; clients trust it by
fingerprint. Each incoming stream is handed to a handler, which by default
echoes everything it reads back to the peer:

    server = await start_server(certificate="cert.pem", private_key="key.pem")
    ...
    await stop_server(server)

`start_tls_server` offers the same over TLS/TCP, where the whole connection is
a single stream.
"""

import asyncio
import inspect
import logging
import ssl
from typing import Callable, Optional

from aioquic.asyncio import serve
from aioquic.quic.configuration import QuicConfiguration

from pinned_api_functions import DEFAULT_ALPN

logger = logging.getLogger(__name__)

# Type for the stream handler:
#   def on_stream(reader, writer) -> None | Awaitable[None]
OnStreamCallback = Callable[[asyncio.StreamReader, asyncio.StreamWriter], object]


# -----------------------------
# Internal helpers
# -----------------------------

async def echo_stream(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    """Write back everything read from the stream, then end it."""
    while True:
        chunk = await reader.read(65536)
        if not chunk:
            break
        writer.write(chunk)
        await writer.drain()
    if writer.can_write_eof():
        writer.write_eof()


async def _handle_stream(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    on_stream: OnStreamCallback,
) -> None:
    try:
        result = on_stream(reader, writer)
        if inspect.isawaitable(result):
            await result
    except (ConnectionError, asyncio.IncompleteReadError) as exc:
        # Peer went away mid-stream; the connection itself reports this.
        logger.debug(f"Stream ended early: {exc!r}")
    except Exception:
        logger.exception("Stream handler failed")


# -----------------------------
# Public API
# -----------------------------

async def start_server(
    host: str = "0.0.0.0",
    port: int = 4433,
    *,
    certificate: str,
    private_key: str,
    alpn_protocol: str = DEFAULT_ALPN,
    on_stream: Optional[OnStreamCallback] = None,
):
    """
    Start a QUIC server presenting `certificate`.

    :param host: Local host/IP to bind to.
    :param port: UDP port to listen on.
    :param certificate: Path to TLS certificate (PEM).
    :param private_key: Path to TLS private key (PEM).
    :param alpn_protocol: ALPN string; must match the client's.
    :param on_stream: Handler for each incoming stream; defaults to echo.

    :return: The aioquic server object.
    """
    config = QuicConfiguration(
        is_client=False,
        alpn_protocols=[alpn_protocol],
    )
    config.load_cert_chain(certificate, private_key)
    handler = on_stream or echo_stream

    def stream_handler(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        # Spawn the coroutine to actually handle the stream
        asyncio.create_task(_handle_stream(reader, writer, handler))

    server = await serve(
        host=host,
        port=port,
        configuration=config,
        stream_handler=stream_handler,
    )
    logger.info(f"QUIC server listening on {host}:{port} (alpn={alpn_protocol})")
    return server


async def start_tls_server(
    host: str = "0.0.0.0",
    port: int = 4433,
    *,
    certificate: str,
    private_key: str,
    alpn_protocol: str = DEFAULT_ALPN,
    on_stream: Optional[OnStreamCallback] = None,
) -> asyncio.AbstractServer:
    """
    Start a TLS-over-TCP server presenting `certificate`. Each accepted
    connection is one stream.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(certificate, private_key)
    if alpn_protocol:
        context.set_alpn_protocols([alpn_protocol])
    handler = on_stream or echo_stream

    async def client_connected(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            await _handle_stream(reader, writer, handler)
        finally:
            writer.close()

    server = await asyncio.start_server(client_connected, host, port, ssl=context)
    logger.info(f"TLS server listening on {host}:{port}")
    return server


async def stop_server(server) -> None:
    """
    Stop a server returned by `start_server` or `start_tls_server`.
    """
    server.close()
    # Some aioquic versions provide `wait_closed()`, others do not.
    wait_closed = getattr(server, "wait_closed", None)
    if wait_closed is not None:
        await wait_closed()
