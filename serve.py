#!/usr/bin/env python3
import argparse
import asyncio
import logging
import os
import sys

from startsetup import load_env_vars, write_env
from certpin.utils import fingerprint_file
from server_api_functions import start_server, start_tls_server, stop_server
from snippets import render_webtransport_snippet


async def main() -> None:
    env = load_env_vars()

    parser = argparse.ArgumentParser(description="Serve an echo endpoint that clients trust by fingerprint")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=env["port"])
    parser.add_argument("--transport", choices=["quic", "tls"], default=env["transport"])
    parser.add_argument("--setup", action="store_true", help="generate cert.pem/key.pem and write the pin to .env")
    parser.add_argument("--snippet", action="store_true", help="print a browser WebTransport snippet for the pin")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    if args.setup:
        write_env()
        env = load_env_vars()

    cert_path = env["certi"]
    key_path = env["key"]

    # Basic checks
    if not os.path.isfile(cert_path):
        print(f"[server] ERROR: certificate file not found: {cert_path} (run with --setup)")
        sys.exit(1)

    if not os.path.isfile(key_path):
        print(f"[server] ERROR: key file not found: {key_path}")
        sys.exit(1)

    fp = fingerprint_file(cert_path)

    print(f"[server] Loaded from env:")
    print(f"          CERTI={cert_path}")
    print(f"          KEY={key_path}")
    print(f"          PORT={args.port}")
    print(f"          TRANSPORT={args.transport}")
    print(f"[server] sha-256 fingerprint: {fp.colon_hex()}")
    print(f"[server] pin (base64):        {fp.base64()}")

    if args.snippet:
        print(render_webtransport_snippet(f"https://127.0.0.1:{args.port}/", fp.base64()))

    if args.transport == "tls":
        server = await start_tls_server(
            host=args.host,
            port=args.port,
            certificate=cert_path,
            private_key=key_path,
            alpn_protocol=env["alpn"],
        )
    else:
        server = await start_server(
            host=args.host,
            port=args.port,
            certificate=cert_path,
            private_key=key_path,
            alpn_protocol=env["alpn"],
        )

    print(f"[server] Listening on {args.host}:{args.port}")
    print("[server] Press Ctrl+C to stop.")

    try:
        await asyncio.Future()  # run forever
    finally:
        await stop_server(server)
        print("[server] Server stopped.")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n[server] KeyboardInterrupt, exiting.")
