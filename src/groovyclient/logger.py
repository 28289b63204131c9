"""
Provides logging utilities. All output of this module goes to stderr,
as stdout exclusively carries the output of the server.
"""

import argparse
import os
import sys
from typing import Any, cast

from groovyclient import globals as G

def col(color_code: str) -> str:
    """Returns the given argument only if color is enabled."""
    if not isinstance(cast(Any, G.args), argparse.Namespace):
        use_color = os.getenv("NO_COLOR") is None
    else:
        use_color = not G.args.no_color

    return color_code if use_color else ""

def is_debug() -> bool:
    """Returns True if debugging output should be generated."""
    return G.args is not None and bool(getattr(G.args, "debug", False))

def debug(msg: str) -> None:
    """Prints the given message only in debug mode."""
    if not is_debug():
        return

    print(f"   {col('[1;34m')}DEBUG{col('[m')}: {msg}", file=sys.stderr, flush=True)

def debug_args(msg: str, args: dict[str, Any]) -> None:
    """Prints all given arguments when in debug mode."""
    if not is_debug():
        return

    str_args = ""
    args = {k: v for k,v in args.items() if k != "self"}
    if len(args) > 0:
        str_args = " " + ", ".join(f"{k}={v}" for k,v in args.items())

    print(f"   {col('[1;34m')}DEBUG{col('[m')}: {msg}{str_args}", file=sys.stderr, flush=True)

def decode_escape(data: bytes, encoding: str = 'utf-8') -> str:
    """
    Tries to decode the given data with the given encoding, but replaces all non-decodeable
    and non-printable characters with backslash escape sequences. Used to show raw
    protocol lines in debug messages.

    Example:

        >>> decode_escape(b'Size: 3\\r\\n\\xff')
        'Size: 3\\\\r\\\\n\\\\xff'

    Parameters
    ----------
    data
        The content that should be decoded and escaped.
    encoding
        The encoding that should be tried.

    Returns
    -------
    str
        The decoded and escaped string.
    """
    def escape_char(c: str) -> str:
        special = {'\x00': '\\0', '\n': '\\n', '\r': '\\r', '\t': '\\t'}
        if c in special:
            return special[c]

        num = ord(c)
        if not c.isprintable() and num <= 0xff:
            return f"\\x{num:02x}"
        return c
    return ''.join([escape_char(c) for c in data.decode(encoding, 'backslashreplace')])


def server_starting(host: str, port: int, attempt: int) -> None:
    """Signals that no server was listening and that it will be started now."""
    suffix = f" {col('[37m')}(attempt {attempt}){col('[m')}" if attempt > 1 else ""
    print(f"{col('[1;33m')}starting server..{col('[m')} {host}:{port}{suffix}", file=sys.stderr, flush=True)

def server_launched(command: list[str], log_file: str) -> None:
    """Prints the command that was used to launch the server in debug mode."""
    debug(f"launched {' '.join(command)} {col('[37m')}(log: {log_file}){col('[m')}")

def connection_established(host: str, port: int) -> None:
    """Signals that the connection has been successfully established."""
    debug(f"connected to {host}:{port} " + col("[1;32m") + "OK" + col("[m"))
