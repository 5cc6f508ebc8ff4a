from __future__ import annotations

import socket
import threading
import time
from collections.abc import Callable, Iterator

import pytest

from tplinkctl.core import cipher
from tplinkctl.core.errors import (
    TransportConnectError,
    TransportIncompleteError,
    TransportTimeoutError,
)
from tplinkctl.core.model import Endpoint
from tplinkctl.transports.tcp import TcpTransport

REPLY = b'{"system":{"get_sysinfo":{"alias":"Lamp","err_code":0}}}'


class ScriptedServer:
    """Accepts one connection, records the request and runs ``script`` on it."""

    def __init__(self, script: Callable[[socket.socket], None]) -> None:
        self.received = b""
        self._script = script
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen()
        self.endpoint = Endpoint("127.0.0.1", self._sock.getsockname()[1])
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        conn, _ = self._sock.accept()
        with conn:
            conn.settimeout(2)
            header = conn.recv(4)
            length = cipher.declared_length(header)
            body = b""
            while len(body) < length:
                body += conn.recv(length - len(body))
            self.received = header + body
            self._script(conn)

    def close(self) -> None:
        self._thread.join(timeout=3)
        self._sock.close()


@pytest.fixture
def serve() -> Iterator[Callable[[Callable[[socket.socket], None]], ScriptedServer]]:
    servers: list[ScriptedServer] = []

    def _serve(script: Callable[[socket.socket], None]) -> ScriptedServer:
        server = ScriptedServer(script)
        servers.append(server)
        return server

    yield _serve
    for server in servers:
        server.close()


def _send_in_chunks(frame: bytes, sizes: list[int]) -> Callable[[socket.socket], None]:
    def script(conn: socket.socket) -> None:
        offset = 0
        for size in sizes:
            conn.sendall(frame[offset:offset + size])
            offset += size
            time.sleep(0.02)
        conn.sendall(frame[offset:])

    return script


@pytest.mark.parametrize("sizes", [[], [1], [2, 1, 1], [3, 5, 7, 11], [4, 1, 1, 1, 1]])
def test_segmented_reply_is_reassembled(serve, sizes: list[int]) -> None:
    server = serve(_send_in_chunks(cipher.encode(REPLY), sizes))

    reply = TcpTransport().send(server.endpoint, b'{"system":{"get_sysinfo":null}}', timeout_s=2)

    assert reply == REPLY
    assert server.received == cipher.encode(b'{"system":{"get_sysinfo":null}}')


def test_reply_waits_for_declared_length_even_if_peer_stays_open(serve) -> None:
    frame = cipher.encode(REPLY)

    def script(conn: socket.socket) -> None:
        conn.sendall(frame)
        time.sleep(0.5)

    server = serve(script)
    started = time.monotonic()
    assert TcpTransport().send(server.endpoint, b"{}", timeout_s=2) == REPLY
    assert time.monotonic() - started < 0.5


def test_close_before_declared_length_is_incomplete(serve) -> None:
    frame = cipher.encode(REPLY)
    server = serve(lambda conn: conn.sendall(frame[:-5]))

    with pytest.raises(TransportIncompleteError):
        TcpTransport().send(server.endpoint, b"{}", timeout_s=2)


def test_close_before_prefix_is_incomplete(serve) -> None:
    server = serve(lambda conn: conn.sendall(b"\x00\x00"))

    with pytest.raises(TransportIncompleteError):
        TcpTransport().send(server.endpoint, b"{}", timeout_s=2)


def test_no_progress_times_out(serve) -> None:
    server = serve(lambda conn: time.sleep(1))

    with pytest.raises(TransportTimeoutError):
        TcpTransport().send(server.endpoint, b"{}", timeout_s=0.2)


def test_connection_refused_is_connect_error() -> None:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()

    with pytest.raises(TransportConnectError):
        TcpTransport().send(Endpoint("127.0.0.1", port), b"{}", timeout_s=1)
