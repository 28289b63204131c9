"""
Builds the messages the client sends to the server: the initial request
describing the invocation, and the chunks that carry standard input.
"""

import os
from typing import Optional, Sequence

from groovyclient import logger
from groovyclient.protocol import KEY_ARG, KEY_CP, KEY_CWD, KEY_SIZE, FormatError, Header, encode_headers

DEFAULT_MAX_REQUEST_SIZE = 512
"""The default upper bound for the size of the encoded initial request in bytes."""

DEFAULT_STDIN_BLOCK_SIZE = 512
"""The default maximum number of stdin bytes forwarded in a single chunk."""

class RequestTooLargeError(FormatError):
    """Raised when the encoded initial request exceeds the configured size bound."""
    def __init__(self, msg: str, size: int, max_size: int):
        super().__init__(msg)
        self.size = size
        self.max_size = max_size

def build_request(cwd: str, args: Sequence[str], classpath: Optional[str]) -> list[Header]:
    """
    Builds the headers of the initial request. The working directory comes first,
    followed by one header per argument in invocation order. The classpath is only
    included if it is set and not empty.

    Parameters
    ----------
    cwd
        The absolute working directory of the invocation.
    args
        The arguments to forward, excluding the program name.
    classpath
        The value of the CLASSPATH variable, if any.

    Returns
    -------
    list[Header]
        The request headers in wire order.
    """
    headers = [Header(KEY_CWD, cwd)]
    headers.extend(Header(KEY_ARG, arg) for arg in args)
    if classpath:
        headers.append(Header(KEY_CP, classpath))
    return headers

def encode_request(cwd: str,
                   args: Sequence[str],
                   classpath: Optional[str],
                   max_size: int = DEFAULT_MAX_REQUEST_SIZE) -> bytes:
    """
    Builds and encodes the initial request.

    Parameters
    ----------
    cwd
        The absolute working directory of the invocation.
    args
        The arguments to forward.
    classpath
        The value of the CLASSPATH variable, if any.
    max_size
        The maximum size of the encoded request in bytes. 0 disables the check.

    Returns
    -------
    bytes
        The encoded request.

    Raises
    ------
    RequestTooLargeError
        The encoded request is larger than max_size.
    HeaderSizeError
        A single header exceeds its maximum length.
    """
    data = encode_headers(build_request(cwd, args, classpath))
    if max_size > 0 and len(data) > max_size:
        raise RequestTooLargeError(f"header size too big ({len(data)} > {max_size} bytes)", len(data), max_size)
    logger.debug(f"request has {len(args)} argument(s), {len(data)} bytes")
    return data

def encode_stdin_chunk(data: bytes) -> bytes:
    """
    Encodes a chunk of standard input. An empty chunk tells the server
    that standard input has been closed.
    """
    return f"{KEY_SIZE}: {len(data)}\n\n".encode("ascii") + data

def read_stdin_chunk(fd: int, block_size: int = DEFAULT_STDIN_BLOCK_SIZE) -> bytes:
    """Performs a single read of at most block_size bytes from the given descriptor."""
    return os.read(fd, block_size)
