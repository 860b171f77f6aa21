#!/usr/bin/env python3


"""
matched_data_cli.py
Format: matched data v3

Command line tool for firewall payload logging:
generate X25519 key pairs and decrypt encrypted matched data.

Environment:
    MATCHED_DATA_LOG_LEVEL   log level for stderr diagnostics (default WARNING)

Python 3.11+

Linter: ruff check matched_data_cli.py --extend-select F,B,UP
"""

from __future__ import annotations
import argparse
import base64
import binascii
import json
import logging
import os
import sys
import matched_data
from matched_data import (
    AuthenticationFailure,
    DecapsulationError,
    InvalidPrivateKey,
    MalformedEnvelope,
    UnsupportedFormat,
)


__version__ = "0.1.0"

LOG_LEVEL_ENV = "MATCHED_DATA_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"

logger = logging.getLogger(__name__)


class CLIError(Exception):
    """User-facing failure; the message is printed as is."""


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def configure_logging(verbose: bool = False) -> None:
    """Send diagnostics to stderr; stdout is reserved for output data."""
    if verbose:
        level = logging.DEBUG
    else:
        level = os.environ.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper()
        if not isinstance(logging.getLevelName(level), int):
            level = DEFAULT_LOG_LEVEL

    logging.basicConfig(
        stream=sys.stderr,
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# CLI Helpers
# ---------------------------------------------------------------------------

def b64decode(value: str) -> bytes:
    """Strict standard base64 decode."""
    return base64.b64decode(value.strip(), validate=True)


def read_private_key(args: argparse.Namespace) -> str:
    """Read base64 private key from argument or one line of stdin."""
    if args.private_key_stdin:
        return sys.stdin.readline()

    return args.private_key


def write_output(data: bytes, args: argparse.Namespace) -> None:
    """Write plaintext in the requested format."""
    try:
        if args.output_format == "raw":
            sys.stdout.buffer.write(data)
            sys.stdout.buffer.flush()
        else:
            text = data.decode("utf-8", errors="replace") + "\n"
            sys.stdout.buffer.write(text.encode("utf-8"))
            sys.stdout.buffer.flush()
    except OSError:
        raise CLIError("Failed to output matched data") from None


# ---------------------------------------------------------------------------
# CLI Commands
# ---------------------------------------------------------------------------

def cmd_generate_key_pair(args: argparse.Namespace) -> None:
    key_pair = matched_data.generate_key_pair()
    logger.debug("generated key pair")

    if args.output_format == "json":
        print(json.dumps(key_pair.to_dict(), indent=2))


def cmd_decrypt(args: argparse.Namespace) -> None:
    try:
        private_key_bytes = b64decode(read_private_key(args))
    except (binascii.Error, ValueError):
        raise CLIError("Provided private key is not base64 encoded") from None

    try:
        blob = b64decode(args.matched_data)
    except (binascii.Error, ValueError):
        raise CLIError("Provided matched data is not base64 encoded") from None

    # version byte is checked before the key
    if blob:
        try:
            matched_data.get_suite(blob[0])
        except UnsupportedFormat as exc:
            raise CLIError(str(exc)) from None

    try:
        private_key = matched_data.load_private_key(private_key_bytes)
    except InvalidPrivateKey:
        raise CLIError("Provided private key is invalid") from None

    try:
        envelope = matched_data.parse_envelope(blob)
    except UnsupportedFormat as exc:
        raise CLIError(str(exc)) from None
    except MalformedEnvelope as exc:
        logger.debug("rejected envelope: %s", exc)
        raise CLIError("Provided matched data is invalid") from None

    try:
        plaintext = matched_data.open_envelope(private_key, envelope)
    except (DecapsulationError, AuthenticationFailure):
        raise CLIError("Failed to decrypt matched data") from None

    write_output(plaintext, args)


# ---------------------------------------------------------------------------
# CLI Definition
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="matched-data-cli",
        description="Generate key pairs and decrypt encrypted matched data",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging to stderr")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("generate-key-pair", help="generate a public-private key pair")
    p.add_argument(
        "-o", "--output-format",
        choices=["json"],
        default="json",
        metavar="format",
        help="output format of key pair (default: json)",
    )
    p.set_defaults(func=cmd_generate_key_pair)

    p = sub.add_parser("decrypt", help="decrypt matched data")
    p.add_argument(
        "-d", "--matched-data",
        required=True,
        help="base64 encoded encrypted matched data",
    )
    key = p.add_mutually_exclusive_group(required=True)
    key.add_argument("-k", "--private-key", help="base64 encoded private key")
    key.add_argument(
        "--private-key-stdin",
        action="store_true",
        help="read the private key from stdin",
    )
    p.add_argument(
        "-o", "--output-format",
        choices=["raw", "utf8-lossy"],
        default="utf8-lossy",
        metavar="format",
        help="output format of matched data: raw, utf8-lossy (default: utf8-lossy)",
    )
    p.set_defaults(func=cmd_decrypt)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        args.func(args)
    except CLIError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

# end of script
