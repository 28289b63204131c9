import socket
import pytest

import groovyclient.connection
from groovyclient.connection import Connection, ServerNotRunning, ServerStartError, SocketReader, connect
from groovyclient.protocol import FormatError
from groovyclient.settings import ClientSettings

def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]

class FakeConnect:
    """Refuses the given number of connection attempts, then hands out one end of a socket pair."""

    def __init__(self, refusals: int):
        self.refusals = refusals
        self.attempts = 0
        self.peer = None

    def __call__(self, host, port):
        self.attempts += 1
        if self.attempts <= self.refusals:
            raise ServerNotRunning(f"connection to {host}:{port} refused")
        client, self.peer = socket.socketpair()
        return client

def test_connect_refused():
    with pytest.raises(ServerNotRunning):
        connect("127.0.0.1", unused_port())

def test_connect():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        sock = connect("127.0.0.1", server.getsockname()[1])
        sock.close()

def test_connect_unresolvable_host():
    with pytest.raises(OSError):
        connect("host.invalid", 1961)

def test_open_starts_server_until_connected(monkeypatch):
    fake = FakeConnect(refusals=2)
    monkeypatch.setattr(groovyclient.connection, "connect", fake)
    bootstraps = []

    with Connection(ClientSettings(retry_interval=0), bootstrap=lambda: bootstraps.append(1)) as connection:
        assert len(bootstraps) == 2
        assert connection.bootstrap_count == 2
        assert fake.attempts == 3
        assert connection.reader is not None
    assert connection.closed
    fake.peer.close()

def test_open_without_refusal_does_not_start_server(monkeypatch):
    fake = FakeConnect(refusals=0)
    monkeypatch.setattr(groovyclient.connection, "connect", fake)
    bootstraps = []

    with Connection(ClientSettings(retry_interval=0), bootstrap=lambda: bootstraps.append(1)):
        assert len(bootstraps) == 0
    fake.peer.close()

def test_open_gives_up_after_max_retries(monkeypatch):
    fake = FakeConnect(refusals=1000)
    monkeypatch.setattr(groovyclient.connection, "connect", fake)
    bootstraps = []

    connection = Connection(ClientSettings(retry_interval=0, max_retries=3), bootstrap=lambda: bootstraps.append(1))
    with pytest.raises(ServerStartError, match=r"server failed to start"):
        connection.open()
    assert len(bootstraps) == 3
    assert fake.attempts == 4
    assert connection.sock is None

def test_open_fatal_error_is_not_retried(monkeypatch):
    def failing_connect(host, port):
        raise socket.gaierror(-2, "Name or service not known")
    monkeypatch.setattr(groovyclient.connection, "connect", failing_connect)
    bootstraps = []

    with pytest.raises(OSError, match=r"Name or service not known"):
        Connection(ClientSettings(retry_interval=0), bootstrap=lambda: bootstraps.append(1)).open()
    assert len(bootstraps) == 0

def test_close_only_once(monkeypatch):
    class CountingSocket:
        closes = 0
        def close(self):
            CountingSocket.closes += 1

    connection = Connection(ClientSettings(), bootstrap=lambda: None)
    connection.sock = CountingSocket()
    connection.close()
    connection.close()
    assert CountingSocket.closes == 1

def test_sendall_after_peer_closed():
    client, server = socket.socketpair()
    server.close()
    connection = Connection(ClientSettings(), bootstrap=lambda: None)
    connection.sock = client
    try:
        # The first send may still succeed, the second one must notice the closed peer.
        connection.sendall(b"Size: 0\n\n")
        assert connection.sendall(b"Size: 0\n\n") is False
    finally:
        connection.close()

def test_socket_reader():
    client, server = socket.socketpair()
    try:
        server.sendall(b"Channel: o\r\nSize: 4\n\nabcdrest")
        server.close()
        reader = SocketReader(client, bufsize=3)
        assert reader.readline() == b"Channel: o\r\n"
        assert reader.readline() == b"Size: 4\n"
        assert reader.readline() == b"\n"
        assert reader.pending() <= 3
        data = b""
        while len(data) < 4:
            data += reader.read(4 - len(data))
        assert data == b"abcd"
        assert reader.readline() == b"rest"
        assert reader.readline() == b""
        assert reader.read(10) == b""
    finally:
        client.close()

def test_socket_reader_pending():
    client, server = socket.socketpair()
    try:
        server.sendall(b"Status: 0\n\nStatus: 1\n\n")
        reader = SocketReader(client)
        assert reader.pending() == 0
        assert reader.readline() == b"Status: 0\n"
        assert reader.pending() > 0
    finally:
        client.close()
        server.close()

def test_socket_reader_rejects_endless_line():
    client, server = socket.socketpair()
    try:
        longest = b"Arg: " + b"v" * 512 + b"\n"
        server.sendall(longest + b"x" * 4096)
        reader = SocketReader(client, bufsize=256)
        assert reader.readline() == longest
        with pytest.raises(FormatError, match=r"header line too long"):
            reader.readline()
        assert reader.pending() <= reader.max_line + 256
    finally:
        client.close()
        server.close()
