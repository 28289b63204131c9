"""
Provides the connection to the server. Opening a connection starts the
server on demand when nothing is listening on the server port yet.
"""

from __future__ import annotations

import socket
import time
from types import TracebackType
from typing import Callable, Optional, Type

from groovyclient import logger
from groovyclient.bootstrap import Bootstrapper
from groovyclient.protocol import MAX_KEY_LEN, MAX_VALUE_LEN, FormatError
from groovyclient.settings import ClientSettings
from groovyclient.utils import FatalError

class ServerNotRunning(Exception):
    """Raised when the server refused the connection, which means it is not listening (yet)."""

class ServerStartError(FatalError):
    """Raised when the server could still not be reached after the maximum number of start attempts."""

def connect(host: str, port: int) -> socket.socket:
    """
    Opens a TCP connection to the server.

    Parameters
    ----------
    host
        The host name of the server.
    port
        The port of the server.

    Returns
    -------
    socket.socket
        The connected socket.

    Raises
    ------
    ServerNotRunning
        The connection was refused.
    OSError
        Any other failure, such as an unresolvable host name.
    """
    try:
        return socket.create_connection((host, port))
    except ConnectionRefusedError:
        raise ServerNotRunning(f"connection to {host}:{port} refused") # pylint: disable=raise-missing-from

class SocketReader:
    """
    A buffered reader on top of a socket. In contrast to a file object returned by
    socket.makefile(), it can tell how many bytes are already buffered, so callers
    never wait for the socket to become readable while data is still pending.
    """

    max_line = MAX_KEY_LEN + MAX_VALUE_LEN + 4
    """The number of bytes after which a line without a newline is rejected."""

    def __init__(self, sock: socket.socket, bufsize: int = 8192):
        self.sock = sock
        self.bufsize = bufsize
        self.buffer = bytearray()
        self.eof = False

    def pending(self) -> int:
        """Returns the number of bytes that can be read without touching the socket."""
        return len(self.buffer)

    def _fill(self) -> bool:
        """Receives more data into the buffer. Returns False on end-of-stream."""
        if self.eof:
            return False
        try:
            data = self.sock.recv(self.bufsize)
        except ConnectionResetError:
            data = b""
        if not data:
            self.eof = True
            return False
        self.buffer += data
        return True

    def _take(self, count: int) -> bytes:
        data = bytes(self.buffer[:count])
        del self.buffer[:count]
        return data

    def readline(self) -> bytes:
        """
        Reads up to and including the next newline. Returns the remaining data on end-of-stream.

        Raises
        ------
        FormatError
            More than `max_line` bytes arrived without a newline.
        """
        while True:
            pos = self.buffer.find(b"\n")
            if pos >= 0:
                return self._take(pos + 1)
            if len(self.buffer) > self.max_line:
                raise FormatError(f"header line too long (no newline within {self.max_line} bytes)")
            if not self._fill():
                return self._take(len(self.buffer))

    def read(self, count: int) -> bytes:
        """Reads at most count bytes, receiving from the socket only if nothing is buffered."""
        if len(self.buffer) == 0 and not self._fill():
            return b""
        return self._take(count)

class Connection:
    """
    The connection class represents the single connection to the server.
    It is a context manager that opens the connection when it is entered
    and closes it when it is exited. Closing happens at most once.
    """

    def __init__(self, settings: ClientSettings, bootstrap: Optional[Callable[[], None]] = None):
        self.settings = settings
        self.bootstrap: Callable[[], None] = bootstrap if bootstrap is not None else Bootstrapper(settings)
        self.sock: Optional[socket.socket] = None
        self.reader: Optional[SocketReader] = None
        self.bootstrap_count = 0
        self.closed = False

    def __enter__(self) -> Connection:
        self.open()
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]], exc: Optional[BaseException], traceback: Optional[TracebackType]) -> None:
        _ = (exc_type, exc, traceback)
        self.close()

    def open(self) -> None:
        """
        Connects to the server. Whenever the connection is refused, the server is
        started and the connection is retried after the configured interval.

        Raises
        ------
        ServerStartError
            The maximum number of start attempts was exceeded.
        FatalError
            The server could not be started.
        OSError
            The connection failed for any reason other than a refused connection.
        """
        host, port = self.settings.host, self.settings.port
        while self.sock is None:
            try:
                self.sock = connect(host, port)
            except ServerNotRunning:
                max_retries = self.settings.max_retries
                if max_retries > 0 and self.bootstrap_count >= max_retries:
                    raise ServerStartError(f"server failed to start: {host}:{port} still refuses connections after {self.bootstrap_count} attempt(s)") # pylint: disable=raise-missing-from

                self.bootstrap_count += 1
                logger.server_starting(host, port, self.bootstrap_count)
                self.bootstrap()
                time.sleep(self.settings.retry_interval)

        self.reader = SocketReader(self.sock)
        logger.connection_established(host, port)

    def fileno(self) -> int:
        """Returns the descriptor of the socket, so the connection can be watched for readiness."""
        if self.sock is None:
            raise RuntimeError("connection is not open")
        return self.sock.fileno()

    def sendall(self, data: bytes) -> bool:
        """
        Sends all of the given data. Returns False if the server has already
        closed the connection, in which case the data is dropped.
        """
        if self.sock is None or self.closed:
            raise RuntimeError("connection is not open")
        try:
            self.sock.sendall(data)
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"server closed the connection while sending: {str(e)}")
            return False
        return True

    def close(self) -> None:
        """Closes the socket. Further calls have no effect."""
        if self.closed:
            return
        self.closed = True
        if self.sock is not None:
            self.sock.close()
            logger.debug("connection closed")
