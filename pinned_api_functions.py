#!/usr/bin/env python3
"""
Client-side connection API with certificate pinning.

Two connection modes are provided, and they are deliberately separate:

    quic_connect(...)      CA-validated QUIC connection. Chain verification is
                           mandatory and cannot be switched off.
    PinnedConnector(...)   Trusts the peer only through a pre-shared digest of
                           its certificate. Chain verification is disabled
                           here and nowhere else.

Usage:

    pins = PinConfiguration.from_hashes([{"algorithm": "sha-256", "value": "<base64>"}])
    session = await pinned_connect("127.0.0.1:4433", pins)
    reader, writer = await session.open_bidirectional_stream()
    ...
    await session.close()

A pinned connect either returns an ESTABLISHED session or raises one of the
errors from ``certpin.errors``; the refused session is available on the
exception (``err.session``) and on ``connector.session``.
"""

import asyncio
import enum
import logging
import ssl
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from aioquic.asyncio import connect as _quic_connect
from aioquic.asyncio.protocol import QuicConnectionProtocol
from aioquic.quic.configuration import QuicConfiguration
from aioquic.quic.events import ConnectionTerminated

from certpin.endpoint import Endpoint
from certpin.errors import (
    FingerprintMismatch,
    HandshakeTimeout,
    NoPeerCertificate,
    PinningError,
    SessionNotEstablished,
    TransportError,
)
from certpin.fingerprint import Fingerprint, PinConfiguration, fingerprint
from certpin.utils import get_peer_cert_der_from_protocol, get_peer_cert_der_from_ssl

logger = logging.getLogger(__name__)

DEFAULT_ALPN = "certpin"
TRANSPORTS = ("quic", "tls")


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    VERIFYING = "verifying"
    ESTABLISHED = "established"
    REJECTED = "rejected"
    FAILED = "failed"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.REJECTED, SessionState.FAILED, SessionState.CLOSED)


@dataclass
class HandshakeOptions:
    """
    :param timeout: Overall deadline in seconds for handshake plus verification.
    :param alpn_protocols: ALPN protocols offered to the peer.
    :param server_name: SNI; defaults to the endpoint host.
    :param transport: "quic" (stream-multiplexed) or "tls" (TLS over TCP).
    :param idle_timeout: QUIC idle timeout in seconds.
    """
    timeout: Optional[float] = 10.0
    alpn_protocols: List[str] = field(default_factory=lambda: [DEFAULT_ALPN])
    server_name: Optional[str] = None
    transport: str = "quic"
    idle_timeout: float = 60.0

    def __post_init__(self):
        if self.transport not in TRANSPORTS:
            raise ValueError(f"transport must be one of {TRANSPORTS}, got {self.transport!r}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")


# -----------------------------
# Channels
# -----------------------------

class PinnedQuicProtocol(QuicConnectionProtocol):
    """QuicConnectionProtocol that reports connection termination to its session."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.on_terminated = None

    def quic_event_received(self, event) -> None:
        super().quic_event_received(event)
        if isinstance(event, ConnectionTerminated) and self.on_terminated is not None:
            self.on_terminated(event.error_code, event.reason_phrase)


class _QuicChannel:
    def __init__(self, cm, protocol):
        self._cm = cm
        self.protocol = protocol

    def peer_certificate(self) -> Optional[bytes]:
        return get_peer_cert_der_from_protocol(self.protocol)

    async def open_stream(self, unidirectional: bool):
        reader, writer = await self.protocol.create_stream(is_unidirectional=unidirectional)
        if unidirectional:
            return writer
        return reader, writer

    async def close(self) -> None:
        # Same as leaving `async with connect(...)`: CONNECTION_CLOSE, then release the socket.
        await self._cm.__aexit__(None, None, None)


class _TlsChannel:
    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self._stream_taken = False

    def peer_certificate(self) -> Optional[bytes]:
        return get_peer_cert_der_from_ssl(self.writer.get_extra_info("ssl_object"))

    async def open_stream(self, unidirectional: bool):
        if unidirectional:
            raise TransportError("unidirectional streams need a stream-multiplexed (QUIC) transport")
        if self._stream_taken:
            raise TransportError("a TLS session carries a single bidirectional stream")
        self._stream_taken = True
        return self.reader, self.writer

    async def close(self) -> None:
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, ssl.SSLError) as exc:
            logger.debug(f"TLS channel already broken while closing: {exc!r}")


async def _open_quic_channel(endpoint: Endpoint, configuration: QuicConfiguration, session: "Session") -> _QuicChannel:
    cm = _quic_connect(
        host=endpoint.host,
        port=endpoint.port,
        configuration=configuration,
        create_protocol=PinnedQuicProtocol,
        wait_connected=True,
    )
    try:
        protocol = await cm.__aenter__()
    except OSError as exc:
        raise TransportError(f"QUIC handshake with {endpoint} failed: {exc!r}") from exc

    protocol.on_terminated = session._on_transport_terminated
    return _QuicChannel(cm, protocol)


def _discard_result(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()


async def _run_with_deadline(session: "Session", coro, timeout: Optional[float]):
    """Await ``coro`` for at most ``timeout`` seconds.

    On expiry the work is cancelled but not awaited: aioquic drains a
    half-open connection while it unwinds, which must not stretch the
    deadline. The unwinding task is kept on ``session._release_task``.

    :raises asyncio.TimeoutError: if ``timeout`` elapses first.
    """
    task = asyncio.ensure_future(coro)
    try:
        await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        task.add_done_callback(_discard_result)
        raise
    if not task.done():
        task.cancel()
        task.add_done_callback(_discard_result)
        session._release_task = task
        raise asyncio.TimeoutError()
    return task.result()


# -----------------------------
# Sessions
# -----------------------------

class Session:
    """
    A secure channel owned by the caller that opened it.

    Callers may poll ``state`` or block on ``wait_ready()`` / ``wait_closed()``;
    ``closed`` is a future that resolves with the terminal state.
    """

    def __init__(self, endpoint: Endpoint, transport: str = "quic"):
        self.endpoint = endpoint
        self.transport = transport
        self.error: Optional[PinningError] = None
        self._state = SessionState.CONNECTING
        self._channel = None
        self._release_task: Optional[asyncio.Task] = None
        self._ready = asyncio.Event()
        self.closed: asyncio.Future = asyncio.get_running_loop().create_future()

    def __repr__(self):
        return f"<{type(self).__name__} {self.endpoint} {self._state.value}>"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_established(self) -> bool:
        return self._state is SessionState.ESTABLISHED

    def _set_state(self, state: SessionState) -> None:
        if self._state.is_terminal:
            return
        logger.debug(f"{self.endpoint}: {self._state.value} -> {state.value}")
        self._state = state
        if state is SessionState.ESTABLISHED or state.is_terminal:
            self._ready.set()
        if state.is_terminal and not self.closed.done():
            self.closed.set_result(state)

    async def _release_channel(self) -> None:
        channel, self._channel = self._channel, None
        if channel is not None:
            await channel.close()

    async def _abort(self, state: SessionState, error: Optional[PinningError]) -> None:
        # State first: nothing may open a stream while the channel is torn down.
        self.error = error
        self._set_state(state)
        await self._release_channel()

    def _on_transport_terminated(self, error_code: int, reason: str) -> None:
        if self._state is not SessionState.ESTABLISHED:
            return
        logger.warning(f"{self.endpoint}: connection terminated (code={error_code}, reason={reason!r})")
        self.error = TransportError(
            f"connection to {self.endpoint} terminated: {reason or error_code}", session=self
        )
        self._set_state(SessionState.CLOSED)
        self._release_task = asyncio.get_running_loop().create_task(self._release_channel())

    def _require_established(self) -> None:
        if self._state is not SessionState.ESTABLISHED:
            raise SessionNotEstablished(self._state, session=self)

    async def open_bidirectional_stream(self) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        self._require_established()
        return await self._channel.open_stream(unidirectional=False)

    async def open_unidirectional_stream(self) -> asyncio.StreamWriter:
        self._require_established()
        return await self._channel.open_stream(unidirectional=True)

    async def wait_ready(self) -> SessionState:
        """Block until the session is established or has ended; return the state."""
        await self._ready.wait()
        return self._state

    async def wait_closed(self, timeout: Optional[float] = None) -> SessionState:
        """Block until the session reaches a terminal state.

        :raises asyncio.TimeoutError: if ``timeout`` elapses first.
        """
        return await asyncio.wait_for(asyncio.shield(self.closed), timeout)

    async def close(self) -> None:
        """Close the session. Closing an ended or never-established session is a no-op."""
        self._set_state(SessionState.CLOSED)
        await self._release_channel()


class PinnedSession(Session):
    """Session whose peer was accepted only because its certificate matched a pin."""

    def __init__(self, endpoint: Endpoint, pin_configuration: PinConfiguration, transport: str = "quic"):
        super().__init__(endpoint, transport)
        self.pin_configuration = pin_configuration
        self.fingerprint: Optional[Fingerprint] = None


# -----------------------------
# Pinned connection mode
# -----------------------------

class PinnedConnector:
    """
    Connect to a peer whose only trust anchor is a pinned certificate fingerprint.

    Certificate-authority validation is switched off for this connection mode
    only; the session is handed out solely when the live certificate digest
    equals the pinned one. The pin configuration is validated here, before
    any network activity.
    """

    def __init__(
        self,
        endpoint: Union[str, Endpoint],
        pin_configuration: Union[PinConfiguration, dict, list],
        options: Optional[HandshakeOptions] = None,
    ):
        self.endpoint = endpoint if isinstance(endpoint, Endpoint) else Endpoint.parse(endpoint)
        if not isinstance(pin_configuration, PinConfiguration):
            pin_configuration = PinConfiguration(pin_configuration)
        self.pin_configuration = pin_configuration
        self.options = options or HandshakeOptions()
        self.session: Optional[PinnedSession] = None

    async def connect(self) -> PinnedSession:
        session = PinnedSession(self.endpoint, self.pin_configuration, self.options.transport)
        self.session = session
        logger.info(f"Connecting to {self.endpoint} over {self.options.transport} with pinned certificate")

        try:
            await _run_with_deadline(session, self._establish(session), self.options.timeout)
        except asyncio.TimeoutError:
            err = HandshakeTimeout(
                f"handshake with {self.endpoint} did not complete within {self.options.timeout}s",
                session=session,
            )
            logger.error(str(err))
            await session._abort(SessionState.FAILED, err)
            raise err from None
        except PinningError as err:
            err.session = session
            if session.state is SessionState.VERIFYING:
                logger.warning(f"Rejected {self.endpoint}: {err}")
                await session._abort(SessionState.REJECTED, err)
            else:
                logger.error(f"Connection to {self.endpoint} failed: {err}")
                await session._abort(SessionState.FAILED, err)
            raise
        except asyncio.CancelledError:
            await session._abort(SessionState.FAILED, None)
            raise

        logger.info(f"Established pinned session with {self.endpoint} ({session.fingerprint})")
        return session

    async def _establish(self, session: PinnedSession) -> None:
        session._channel = await self._open_channel(session)
        session._set_state(SessionState.VERIFYING)

        der = session._channel.peer_certificate()
        if not der:
            raise NoPeerCertificate(f"{self.endpoint} completed the handshake without presenting a certificate")

        for algorithm in self.pin_configuration:
            actual = fingerprint(der, algorithm)
            session.fingerprint = actual
            if self.pin_configuration.matches(actual):
                session._set_state(SessionState.ESTABLISHED)
                return

        raise FingerprintMismatch(self.pin_configuration, session.fingerprint)

    async def _open_channel(self, session: PinnedSession):
        server_name = self.options.server_name or self.endpoint.host

        if self.options.transport == "tls":
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            # Trust is decided by the pinned fingerprint, not by a CA chain.
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            if self.options.alpn_protocols:
                context.set_alpn_protocols(list(self.options.alpn_protocols))
            try:
                reader, writer = await asyncio.open_connection(
                    self.endpoint.host, self.endpoint.port, ssl=context, server_hostname=server_name
                )
            except OSError as exc:
                raise TransportError(f"TLS handshake with {self.endpoint} failed: {exc!r}") from exc
            return _TlsChannel(reader, writer)

        config = QuicConfiguration(
            is_client=True,
            alpn_protocols=list(self.options.alpn_protocols),
            server_name=server_name,
            idle_timeout=self.options.idle_timeout,
        )
        # Trust is decided by the pinned fingerprint, not by a CA chain.
        config.verify_mode = ssl.CERT_NONE
        return await _open_quic_channel(self.endpoint, config, session)


async def pinned_connect(
    endpoint: Union[str, Endpoint],
    pin_configuration: Union[PinConfiguration, dict, list],
    options: Optional[HandshakeOptions] = None,
) -> PinnedSession:
    """Shortcut for ``await PinnedConnector(endpoint, pin_configuration, options).connect()``."""
    return await PinnedConnector(endpoint, pin_configuration, options).connect()


# -----------------------------
# CA-validated connection mode
# -----------------------------

async def quic_connect(
    host: str,
    port: int = 4433,
    *,
    insecure: bool = False,
    server_name: Optional[str] = None,
    alpn_protocol: str = DEFAULT_ALPN,
    ca_cert: Optional[str] = None,
    timeout: Optional[float] = 10.0,
) -> Session:
    """
    Establish a QUIC connection whose server certificate is verified against a CA.

    :param host: Server hostname or IP.
    :param port: Server UDP port.
    :param insecure: Refused. Use PinnedConnector to trust a self-signed peer.
    :param server_name: SNI / TLS server name; defaults to `host` if None.
    :param alpn_protocol: ALPN protocol string used by QUIC.
    :param ca_cert: Path to CA certificate for server verification.
    :param timeout: Handshake deadline in seconds.

    :raises ValueError: If insecure=True or no ca_cert is given.
    """
    # SECURITY: disabling verification is only reachable through PinnedConnector
    if insecure:
        raise ValueError(
            "insecure=True is not allowed. Server certificate verification is mandatory. "
            "Provide ca_cert, or pin the server certificate with PinnedConnector."
        )
    if not ca_cert:
        raise ValueError("ca_cert is required to verify the server certificate")

    config = QuicConfiguration(
        is_client=True,
        alpn_protocols=[alpn_protocol],
        server_name=server_name or host,
    )
    config.load_verify_locations(cafile=ca_cert)
    config.verify_mode = ssl.CERT_REQUIRED

    endpoint = Endpoint(host, port)
    session = Session(endpoint, "quic")
    try:
        session._channel = await _run_with_deadline(session, _open_quic_channel(endpoint, config, session), timeout)
    except asyncio.TimeoutError:
        err = HandshakeTimeout(f"handshake with {endpoint} did not complete within {timeout}s", session=session)
        await session._abort(SessionState.FAILED, err)
        raise err from None
    except TransportError as err:
        err.session = session
        await session._abort(SessionState.FAILED, err)
        raise
    except asyncio.CancelledError:
        await session._abort(SessionState.FAILED, None)
        raise

    session._set_state(SessionState.ESTABLISHED)
    return session
