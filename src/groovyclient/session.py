"""
Provides the session that forwards standard input to the server and
dispatches the server's output frames until the server reports an exit status.
"""

from __future__ import annotations

import selectors
import signal
import sys
import threading
from types import FrameType, TracebackType
from typing import IO, Any, Optional, Type

from groovyclient import logger
from groovyclient.connection import Connection, SocketReader
from groovyclient.protocol import KEY_CHANNEL, KEY_SIZE, ProtocolError, read_frame
from groovyclient.request import DEFAULT_STDIN_BLOCK_SIZE, encode_stdin_chunk, read_stdin_chunk

CHANNEL_STDOUT = "o"
CHANNEL_STDERR = "e"

class OutputDemultiplexer:
    """Writes output chunks to the local stream that belongs to their channel."""

    def __init__(self, stdout: IO[bytes], stderr: IO[bytes]):
        self.streams = {CHANNEL_STDOUT: stdout, CHANNEL_STDERR: stderr}

    def dispatch(self, channel: str, payload: bytes) -> None:
        """
        Writes the payload unmodified to the stream of the given channel.

        Parameters
        ----------
        channel
            The channel identifier, `o` for stdout or `e` for stderr.
        payload
            The bytes to write.

        Raises
        ------
        ProtocolError
            The channel identifier is unknown.
        """
        stream = self.streams.get(channel)
        if stream is None:
            raise ProtocolError(f"unrecognizable stream identifier: {channel}")
        stream.write(payload)
        stream.flush()

class Session:
    """
    A session multiplexes standard input and the server connection. It owns the
    connection: leaving the session context closes it, no matter whether the
    session ended regularly, because of an error or because of an interrupt.
    While the session is active, SIGINT ends it immediately with status 0 after
    telling the server that no more input will follow.
    """

    def __init__(self,
                 connection: Connection,
                 stdin_fd: int = 0,
                 stdout: Optional[IO[bytes]] = None,
                 stderr: Optional[IO[bytes]] = None,
                 stdin_block_size: int = DEFAULT_STDIN_BLOCK_SIZE):
        self.connection = connection
        self.stdin_fd = stdin_fd
        self.stdin_block_size = stdin_block_size
        self.output = OutputDemultiplexer(stdout if stdout is not None else sys.stdout.buffer,
                                          stderr if stderr is not None else sys.stderr.buffer)
        self.stdin_closed = False
        self.stdin_is_file = False
        self.stdin_unavailable = False
        self.exit_status: Optional[int] = None
        self.request_sent = False
        self.selector: Optional[selectors.BaseSelector] = None
        self._previous_sigint: Any = None
        self._sigint_installed = False

    def __enter__(self) -> Session:
        if threading.current_thread() is threading.main_thread():
            self._previous_sigint = signal.signal(signal.SIGINT, self.interrupt)
            self._sigint_installed = True

        try:
            self.selector = selectors.DefaultSelector()
            self.selector.register(self.connection.fileno(), selectors.EVENT_READ, "socket")
        except BaseException:
            self._release()
            raise

        try:
            self.selector.register(self.stdin_fd, selectors.EVENT_READ, "stdin")
        except PermissionError:
            # Regular files cannot be polled, but reading them never blocks.
            self.stdin_is_file = True
        except (ValueError, OSError) as e:
            logger.debug(f"stdin cannot be watched ({str(e)}), treating it as closed")
            self.stdin_unavailable = True
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]], exc: Optional[BaseException], traceback: Optional[TracebackType]) -> None:
        _ = (exc_type, exc, traceback)
        try:
            if not self.connection.closed:
                self.close_stdin()
        finally:
            self._release()
            self.connection.close()

    def _release(self) -> None:
        """Restores the previous SIGINT handler and closes the selector."""
        if self._sigint_installed:
            signal.signal(signal.SIGINT, self._previous_sigint if self._previous_sigint is not None else signal.SIG_DFL)
            self._sigint_installed = False
        if self.selector is not None:
            self.selector.close()
            self.selector = None

    @property
    def reader(self) -> SocketReader:
        """The reader of the connection."""
        if self.connection.reader is None:
            raise RuntimeError("connection is not open")
        return self.connection.reader

    def send_request(self, request: bytes) -> None:
        """Sends the encoded initial request. This may only happen once per session."""
        if self.request_sent:
            raise RuntimeError("the request has already been sent")
        self.request_sent = True
        self.connection.sendall(request)

    def close_stdin(self) -> None:
        """Tells the server that standard input has ended, unless that has already happened."""
        if self.stdin_closed:
            return
        self.stdin_closed = True
        if self.selector is not None and self.stdin_fd in self.selector.get_map():
            self.selector.unregister(self.stdin_fd)
        logger.debug("stdin closed")
        self.connection.sendall(encode_stdin_chunk(b""))

    def forward_stdin(self) -> None:
        """Reads one chunk from standard input and forwards it. An empty read closes stdin."""
        data = read_stdin_chunk(self.stdin_fd, self.stdin_block_size)
        if len(data) == 0:
            self.close_stdin()
            return
        self.connection.sendall(encode_stdin_chunk(data))

    def handle_frame(self) -> Optional[int]:
        """
        Reads and handles the next frame from the server.

        Returns
        -------
        Optional[int]
            The exit status if the session has ended, otherwise None.

        Raises
        ------
        ProtocolError
            The frame is malformed or lacks a required header.
        """
        frame = read_frame(self.reader)
        if frame is None:
            logger.debug("server closed the connection")
            return 0

        status = frame.status
        if status is not None:
            logger.debug(f"server reported status {status}")
            return status

        channel = frame.channel
        if channel is None:
            raise ProtocolError(f"required header {KEY_CHANNEL} not found")
        if frame.size is None or frame.payload is None:
            raise ProtocolError(f"required header {KEY_SIZE} not found")

        self.output.dispatch(channel, frame.payload)
        return None

    def wait(self) -> tuple[bool, bool]:
        """
        Blocks until standard input or the server connection is readable.
        Data that is already buffered counts as readable, and so does
        standard input if it is a regular file.

        Returns
        -------
        tuple[bool, bool]
            Whether standard input and whether the connection is ready.
        """
        if self.selector is None:
            raise RuntimeError("session has not been entered")

        stdin_file_ready = self.stdin_is_file and not self.stdin_closed
        timeout = 0 if stdin_file_ready or self.reader.pending() > 0 else None

        stdin_ready = stdin_file_ready
        socket_ready = self.reader.pending() > 0
        for key, _ in self.selector.select(timeout):
            if key.data == "stdin":
                stdin_ready = True
            elif key.data == "socket":
                socket_ready = True
        return stdin_ready, socket_ready

    def run(self) -> int:
        """
        Runs the session until the server reports an exit status or closes the connection.

        Returns
        -------
        int
            The exit status of the invocation.
        """
        if self.stdin_unavailable:
            self.close_stdin()
        while self.exit_status is None:
            stdin_ready, socket_ready = self.wait()
            if stdin_ready and not self.stdin_closed:
                self.forward_stdin()
            if socket_ready:
                self.exit_status = self.handle_frame()
        return self.exit_status

    def interrupt(self, signum: int, frame: Optional[FrameType]) -> None:
        """Signal handler that abandons the session and exits with status 0."""
        _ = (frame)
        logger.debug(f"received signal {signum}, abandoning session")
        if not self.connection.closed:
            self.close_stdin()
        self.connection.close()
        sys.exit(0)
