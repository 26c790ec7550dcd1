"""Client configuration from the command line and environment."""
import argparse
import os
from dataclasses import dataclass
from typing import Optional, Sequence

from relaychat.common.crypto import MIN_RSA_BITS
from .trust import INTEGRITY_MODE, MODES

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5050


@dataclass(frozen=True)
class ClientConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    mode: str = INTEGRITY_MODE
    key_bits: int = MIN_RSA_BITS
    username: Optional[str] = None   # prompt when not given
    log_level: str = "WARNING"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise SystemExit(f"{name} must be an integer, got {raw!r}")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Secure chat client for an untrusted relay")
    ap.add_argument("--host", default=os.environ.get("RELAYCHAT_HOST", DEFAULT_HOST),
                    help="Relay host address")
    ap.add_argument("--port", type=int, default=_env_int("RELAYCHAT_PORT", DEFAULT_PORT),
                    help="Relay port")
    ap.add_argument("--mode", choices=MODES, default=os.environ.get("RELAYCHAT_MODE", INTEGRITY_MODE),
                    help="Security property applied to outgoing messages")
    ap.add_argument("--key-bits", type=int, default=MIN_RSA_BITS,
                    help=f"RSA key size (at least {MIN_RSA_BITS})")
    ap.add_argument("--username", default=None, help="Username to register (prompted if omitted)")
    ap.add_argument("--log-level", default=os.environ.get("RELAYCHAT_LOG_LEVEL", "WARNING"),
                    help="Logging level (DEBUG, INFO, WARNING, ...)")
    return ap


def parse_config(argv: Optional[Sequence[str]] = None) -> ClientConfig:
    args = build_parser().parse_args(argv)
    if args.mode not in MODES:
        raise SystemExit(f"unknown mode {args.mode!r}, expected one of: {', '.join(MODES)}")
    if args.key_bits < MIN_RSA_BITS:
        raise SystemExit(f"--key-bits must be at least {MIN_RSA_BITS}")
    return ClientConfig(
        host=args.host,
        port=args.port,
        mode=args.mode,
        key_bits=args.key_bits,
        username=args.username,
        log_level=args.log_level.upper(),
    )
