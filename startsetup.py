import os

from dotenv import load_dotenv, set_key

from certpin.utils import fingerprint_file, write_self_signed_cert


pwd = os.getcwd()
env_file = ".env"

pin_host = "127.0.0.1"
port = 4433
server_name = ""
alpn = "certpin"
transport = "quic"
pin_sha256 = ""
certi = os.path.join(pwd, "cert.pem")
key = os.path.join(pwd, "key.pem")
handshake_timeout = 10.0
pins_file = ""


def load_env_vars(path: str = None):
    """Load settings from the .env file (and the process environment) into a dict"""
    global pin_host, port, server_name, alpn, transport, pin_sha256, certi, key, handshake_timeout, pins_file

    load_dotenv(path or env_file)

    pin_host = os.getenv("PIN_HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "4433"))
    server_name = os.getenv("SERVER_NAME", "")
    alpn = os.getenv("ALPN", "certpin")
    transport = os.getenv("TRANSPORT", "quic").lower()
    pin_sha256 = os.getenv("PIN_SHA256", "")
    certi = os.getenv("CERTI", os.path.join(pwd, "cert.pem"))
    key = os.getenv("KEY", os.path.join(pwd, "key.pem"))
    handshake_timeout = float(os.getenv("HANDSHAKE_TIMEOUT", "10"))
    pins_file = os.getenv("PINS_FILE", "")

    return {
        "pin_host": pin_host,
        "port": port,
        "server_name": server_name or None,
        "alpn": alpn,
        "transport": transport,
        "pin_sha256": pin_sha256 or None,
        "certi": certi,
        "key": key,
        "handshake_timeout": handshake_timeout,
        "pins_file": pins_file or None,
    }


def write_env(path: str = None, regenerate: bool = False):
    """Make sure a server certificate exists and record it, with its pin, in .env

    Returns the certificate fingerprint.
    """
    global pin_sha256

    target = path or env_file
    load_env_vars(target)

    if regenerate or not (os.path.isfile(certi) and os.path.isfile(key)):
        print(f"[+] Generating self-signed certificate {certi}")
        fp = write_self_signed_cert(certi, key)
    else:
        fp = fingerprint_file(certi)
    pin_sha256 = fp.base64()

    env_vars = {
        "PIN_HOST": pin_host,
        "PORT": port,
        "ALPN": alpn,
        "TRANSPORT": transport,
        "CERTI": certi,
        "KEY": key,
        "PIN_SHA256": pin_sha256,
        "HANDSHAKE_TIMEOUT": handshake_timeout,
    }

    if not os.path.exists(target):
        open(target, "a").close()

    for name, value in env_vars.items():
        set_key(target, name, str(value))
        # Keep this process in line with the file just written.
        os.environ[name] = str(value)

    print(f"[+] Environment variables updated in {target}")
    print(f"[+] sha-256 pin: {pin_sha256}")
    return fp


if __name__ == "__main__":
    write_env()
