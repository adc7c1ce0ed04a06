#!/usr/bin/env python3
import argparse
import os
import sys

# Ensure project root is on sys.path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from certpin.utils import write_self_signed_cert


def main():
    parser = argparse.ArgumentParser(description="Generate a self-signed ECDSA certificate to pin")
    parser.add_argument("--cert", default="cert.pem")
    parser.add_argument("--key", default="key.pem")
    parser.add_argument("--cn", default="localhost", help="subject common name")
    parser.add_argument("--host", action="append", dest="hosts",
                        help="subjectAltName entry (repeatable; default localhost, 127.0.0.1, ::1)")
    parser.add_argument("--days", type=int, default=14, help="validity; browsers accept at most 14")
    parser.add_argument("--force", action="store_true", help="overwrite existing files")
    args = parser.parse_args()

    if not args.force and (os.path.exists(args.cert) or os.path.exists(args.key)):
        raise RuntimeError("Certificate or key already exists. Refusing to overwrite (use --force).")

    kwargs = {"common_name": args.cn, "days": args.days}
    if args.hosts:
        kwargs["hosts"] = args.hosts
    fp = write_self_signed_cert(args.cert, args.key, **kwargs)

    print(f"[+] Certificate written to {args.cert}, key to {args.key}")
    print(f"[+] sha-256 fingerprint: {fp.colon_hex()}")
    print(f"[+] pin (base64):        {fp.base64()}")


if __name__ == "__main__":
    main()
