"""
Provides the text header codec and the frame reader used to talk to a groovyserver.

A message consists of a block of `Key: value` lines terminated by a blank line.
Response blocks may be followed by a raw payload, whose length is given
by the `Size` header.
"""

from __future__ import annotations

from typing import NamedTuple, Optional, Protocol, Sequence

from groovyclient import logger

# Request headers
KEY_CWD = "Cwd"
KEY_ARG = "Arg"
KEY_CP = "Cp"

# Response headers
KEY_CHANNEL = "Channel"
KEY_SIZE = "Size"
KEY_STATUS = "Status"

MAX_KEY_LEN = 30
"""The maximum length of a header key."""
MAX_VALUE_LEN = 512
"""The maximum length of a header value."""
MAX_HEADERS = 10
"""The maximum number of headers in a single response block."""

class ProtocolError(IOError):
    """An exception type for violations of the wire protocol by the server."""

class FormatError(ProtocolError):
    """An exception type for malformed header lines or frames."""

class HeaderSizeError(FormatError):
    """Raised when a header key or value exceeds its maximum length."""

class ByteSource(Protocol):
    """Anything that frames can be read from, such as a socket reader or a binary file."""

    def readline(self) -> bytes:
        """Reads up to and including the next newline, or returns b'' on end-of-stream."""

    def read(self, count: int) -> bytes:
        """Reads at most count bytes, or returns b'' on end-of-stream."""

class Header(NamedTuple):
    """A single `Key: value` header."""
    key: str
    value: str

# Header codec
# ----------------------------------------------------------------

def _check_header(key: str, value: str) -> None:
    """Raises a FormatError if the given header cannot be represented on the wire."""
    if len(key) > MAX_KEY_LEN:
        raise HeaderSizeError(f"key {key} too long ({len(key)} > {MAX_KEY_LEN} characters)")
    if len(value) > MAX_VALUE_LEN:
        raise HeaderSizeError(f"value of {key} too long ({len(value)} > {MAX_VALUE_LEN} characters)")
    if key == "" or ":" in key or "\n" in key or "\r" in key:
        raise FormatError(f"invalid header key '{key}'")
    if "\n" in value or "\r" in value:
        raise FormatError(f"value of {key} must not contain line breaks")

def encode_headers(headers: Sequence[Header]) -> bytes:
    """
    Encodes the given headers as `Key: value` lines followed by a terminating blank line.

    Parameters
    ----------
    headers
        The headers to encode, in wire order.

    Returns
    -------
    bytes
        The encoded header block.

    Raises
    ------
    HeaderSizeError
        A key or value exceeds its maximum length.
    FormatError
        A key or value contains characters that would break the framing.
    """
    lines = []
    for key, value in headers:
        _check_header(key, value)
        lines.append(f"{key}: {value}\n")
    lines.append("\n")
    return "".join(lines).encode("utf-8")

def _strip_terminator(line: bytes) -> bytes:
    """Removes a trailing `\\n` and an optional `\\r` before it."""
    if line.endswith(b"\n"):
        line = line[:-1]
    if line.endswith(b"\r"):
        line = line[:-1]
    return line

def decode_header(line: bytes) -> Header:
    """
    Decodes a single header line. Only leading whitespace is removed from the value.

    Parameters
    ----------
    line
        The raw line, optionally including its terminator.

    Returns
    -------
    Header
        The decoded header.

    Raises
    ------
    FormatError
        The line is malformed.
    """
    text = _strip_terminator(line).decode("utf-8", "replace")
    key, sep, value = text.partition(":")
    if sep == "":
        raise FormatError(f"format error: missing ':' in header line '{logger.decode_escape(line)}'")
    if len(key) > MAX_KEY_LEN:
        raise HeaderSizeError(f"key {key} too long")

    value = value.lstrip()
    if value == "":
        raise FormatError(f"format error: empty value for header {key}")
    if len(value) > MAX_VALUE_LEN:
        raise HeaderSizeError(f"value of {key} too long")

    return Header(key, value)

def decode_headers(stream: ByteSource, max_headers: Optional[int] = MAX_HEADERS) -> list[Header]:
    """
    Reads header lines from the stream until a blank line is encountered.
    If the stream ends before the first header line, an empty list is returned,
    which signals that the peer has closed the session.

    Parameters
    ----------
    stream
        The stream to read from.
    max_headers
        The maximum number of headers allowed in this block, or None for no limit.

    Returns
    -------
    list[Header]
        The decoded headers in the order they were received.

    Raises
    ------
    FormatError
        A line is malformed, there are too many headers or the stream ended inside the block.
    """
    headers: list[Header] = []
    while True:
        line = stream.readline()
        if line == b"":
            if len(headers) == 0:
                return headers
            raise FormatError("unexpected end of stream inside header block")

        if _strip_terminator(line) == b"":
            return headers

        logger.debug(f"header {logger.decode_escape(line)}")
        headers.append(decode_header(line))
        if max_headers is not None and len(headers) > max_headers:
            raise FormatError("too many headers")

def find_header(headers: Sequence[Header], key: str) -> Optional[str]:
    """Returns the value of the first header with exactly the given key, or None."""
    for header in headers:
        if header.key == key:
            return header.value
    return None

# Frames
# ----------------------------------------------------------------

def parse_int(key: str, value: str, minimum: Optional[int] = None) -> int:
    """Parses the integer value of the given header and raises a FormatError if it is invalid."""
    try:
        n = int(value.strip())
    except ValueError:
        raise FormatError(f"invalid value '{value}' for header {key}: must be an integer") # pylint: disable=raise-missing-from
    if minimum is not None and n < minimum:
        raise FormatError(f"invalid value '{value}' for header {key}: must be at least {minimum}")
    return n

def read_exactly(stream: ByteSource, count: int) -> bytes:
    """
    Reads exactly count bytes from the stream.

    Raises
    ------
    FormatError
        The stream ended early.
    """
    chunks = []
    remaining = count
    while remaining > 0:
        data = stream.read(remaining)
        if not data:
            raise FormatError(f"unexpected end of stream: expected {count} bytes of payload, got {count - remaining}")
        chunks.append(data)
        remaining -= len(data)
    return b"".join(chunks)

class Frame(NamedTuple):
    """One message from the server: a header block and its payload, if any."""
    headers: list[Header]
    payload: Optional[bytes] = None

    def get(self, key: str) -> Optional[str]:
        """Returns the value of the first header with the given key, or None."""
        return find_header(self.headers, key)

    @property
    def status(self) -> Optional[int]:
        """The exit status carried by a terminal frame, or None."""
        value = self.get(KEY_STATUS)
        return None if value is None else parse_int(KEY_STATUS, value)

    @property
    def channel(self) -> Optional[str]:
        """The output channel identifier of this frame, or None."""
        return self.get(KEY_CHANNEL)

    @property
    def size(self) -> Optional[int]:
        """The payload size announced by this frame, or None."""
        value = self.get(KEY_SIZE)
        return None if value is None else parse_int(KEY_SIZE, value, minimum=0)

def read_frame(stream: ByteSource) -> Optional[Frame]:
    """
    Reads the next frame from the stream. A frame with a `Status` header is terminal
    and carries no payload. Otherwise, if a `Size` header is present, exactly
    that many payload bytes are read.

    Parameters
    ----------
    stream
        The stream to read from.

    Returns
    -------
    Optional[Frame]
        The frame, or None if the stream ended before a new frame started.

    Raises
    ------
    FormatError
        The frame is malformed or incomplete.
    """
    headers = decode_headers(stream)
    if len(headers) == 0:
        return None

    frame = Frame(headers)
    if frame.status is not None:
        return frame

    size = frame.size
    if size is None:
        return frame
    return Frame(headers, read_exactly(stream, size))
