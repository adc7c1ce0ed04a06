#!/usr/bin/env python3
import argparse
import asyncio
import logging
import sys

from startsetup import load_env_vars
from certpin.endpoint import Endpoint
from certpin.errors import PinningError
from certpin.fingerprint import Fingerprint, PinConfiguration
from certpin.store import PinStore
from pinned_api_functions import HandshakeOptions, PinnedConnector


async def interactive_loop(session) -> None:
    """
    Keep the pinned session open and send each typed line on the
    bidirectional stream, printing what the peer answers.
    """
    print("[client] Interactive mode: type a line to send, or 'quit' to exit.")
    reader, writer = await session.open_bidirectional_stream()

    while True:
        user_input = await asyncio.to_thread(input, "send> ")
        raw = user_input.strip()

        if not raw:
            continue

        if raw.lower() in ("quit", "exit"):
            print("[client] Quitting interactive mode; session will be closed.")
            break

        if not session.is_established:
            print(f"[client] Session is {session.state.value}: {session.error}")
            break

        writer.write(raw.encode("utf-8") + b"\n")
        await writer.drain()
        reply = await reader.readline()
        print(f"[client] peer> {reply.decode('utf-8', 'replace').rstrip()}")


def resolve_pins(args, env, endpoint):
    if args.pin_hex:
        return PinConfiguration.sha256(Fingerprint.from_hex(args.pin_hex))
    if args.pin:
        return PinConfiguration.sha256(Fingerprint.from_base64(args.pin))
    if args.use_store:
        pins = PinStore(env.get("pins_file")).get_pin(endpoint)
        if pins is not None:
            return pins
    if env.get("pin_sha256"):
        return PinConfiguration.sha256(Fingerprint.from_base64(env["pin_sha256"]))
    return None


async def main() -> None:
    env = load_env_vars()

    parser = argparse.ArgumentParser(description="Connect to a peer trusted by certificate fingerprint")
    parser.add_argument("endpoint", nargs="?", help="host:port or https:// URL (default: PIN_HOST:PORT)")
    parser.add_argument("--pin", help="base64 sha-256 fingerprint (default: PIN_SHA256)")
    parser.add_argument("--pin-hex", help="hex sha-256 fingerprint, colons allowed")
    parser.add_argument("--use-store", action="store_true", help="look the pin up in the pin store")
    parser.add_argument("--transport", choices=["quic", "tls"], default=env["transport"])
    parser.add_argument("--timeout", type=float, default=env["handshake_timeout"])
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    endpoint = args.endpoint or f"{env['pin_host']}:{env['port']}"

    try:
        options = HandshakeOptions(
            timeout=args.timeout,
            alpn_protocols=[env["alpn"]],
            server_name=env["server_name"],
            transport=args.transport,
        )
        endpoint = Endpoint.parse(endpoint)
        pins = resolve_pins(args, env, endpoint)
        if pins is None:
            print("[client] ERROR: no pin given; use --pin, --pin-hex, --use-store or PIN_SHA256 in .env")
            sys.exit(1)
        connector = PinnedConnector(endpoint, pins, options)
    except (ValueError, PinningError) as exc:
        print(f"[client] ERROR: invalid configuration: {exc}")
        sys.exit(1)

    print(f"[client] Connecting to {connector.endpoint} ({options.transport})")
    print(f"          pinned: {pins!r}")

    try:
        session = await connector.connect()
    except PinningError as exc:
        state = exc.session.state.value if exc.session else "n/a"
        print(f"[client] {type(exc).__name__}: {exc} (session {state})")
        sys.exit(2)

    print(f"[client] Established; peer fingerprint {session.fingerprint}")

    try:
        await interactive_loop(session)
    finally:
        await session.close()
        print("[client] Session closed (program exiting).")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n[client] KeyboardInterrupt, exiting.")
