#!/usr/bin/env python3
"""Print the pin for a PEM or DER certificate file.

Usage:
    python scripts/cert_fingerprint.py localhost+2.pem
    python scripts/cert_fingerprint.py cert.pem --format json
    python scripts/cert_fingerprint.py cert.pem --snippet https://127.0.0.1:4433/
    python scripts/cert_fingerprint.py cert.pem --store 127.0.0.1:4433
"""
import argparse
import json
import os
import sys

# Ensure project root is on sys.path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from certpin.errors import PinningError
from certpin.store import PinStore
from certpin.utils import fingerprint_file
from snippets import render_webtransport_snippet


def main():
    parser = argparse.ArgumentParser(description="Compute the sha-256 pin of a certificate file")
    parser.add_argument("certificate", help="PEM or DER certificate file")
    parser.add_argument("--format", choices=["all", "hex", "colon", "base64", "json"], default="all")
    parser.add_argument("--snippet", metavar="URL", help="also print a WebTransport client snippet for URL")
    parser.add_argument("--store", metavar="ENDPOINT", help="save the pin for ENDPOINT in the pin store")
    args = parser.parse_args()

    if not os.path.isfile(args.certificate):
        print(f"Certificate file {args.certificate} not found!")
        sys.exit(1)

    try:
        fp = fingerprint_file(args.certificate)
    except PinningError as exc:
        print(f"[-] {exc}")
        sys.exit(1)

    if args.format == "hex":
        print(fp.hex())
    elif args.format == "colon":
        print(fp.colon_hex())
    elif args.format == "base64":
        print(fp.base64())
    elif args.format == "json":
        print(json.dumps(fp.to_pin()))
    else:
        print(f"sha-256 (hex):    {fp.hex()}")
        print(f"sha-256 (colon):  {fp.colon_hex()}")
        print(f"sha-256 (base64): {fp.base64()}")

    if args.store:
        key = PinStore().add_pin(args.store, fp, note=os.path.basename(args.certificate))
        print(f"[+] Pinned {key}")

    if args.snippet:
        print(render_webtransport_snippet(args.snippet, fp.base64()))


if __name__ == "__main__":
    main()
