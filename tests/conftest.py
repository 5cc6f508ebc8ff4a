from __future__ import annotations

import json
import socket
import struct
import threading
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from tplinkctl.core import cipher
from tplinkctl.core.model import BroadcastInterface

HS110_SYSINFO: dict[str, Any] = {
    "sw_ver": "1.2.5 Build 171213 Rel.095335",
    "hw_ver": "1.0",
    "type": "IOT.SMARTPLUGSWITCH",
    "model": "HS110(UK)",
    "mac": "00:00:00:00:00:00",
    "deviceId": "8006F1D2D7F0A2E0DDE2C1F2E4A9C7B1000000AA",
    "hwId": "00000000000000000000000000000000",
    "oemId": "90AEEA7AECBF1A879FCA3C104C58C4D8",
    "alias": "Switch One",
    "dev_name": "Wi-Fi Smart Plug With Energy Monitoring",
    "relay_state": 1,
    "on_time": 12521,
    "latitude": 51.5,
    "longitude": -0.12,
    "err_code": 0,
}

LOOPBACK = BroadcastInterface(name="lo", address="127.0.0.1", broadcast="127.0.0.1")


def _recv_exact(conn: socket.socket, size: int) -> bytes:
    data = b""
    while len(data) < size:
        chunk = conn.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


class FakeDevice:
    """Loopback device answering framed TCP commands and UDP discovery queries.

    ``sections`` maps service -> operation -> payload. Requested services that
    are not in ``sections`` are left out of the reply; unknown operations of a
    known service answer ``{"err_code": 0}``.
    """

    def __init__(self, sections: dict[str, dict[str, Any]]) -> None:
        self.sections = sections
        self.requests: list[dict[str, Any]] = []
        self._stop = threading.Event()

        self.tcp = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.tcp.bind(("127.0.0.1", 0))
        self.tcp.listen()
        self.tcp.settimeout(0.1)
        self.tcp_port = self.tcp.getsockname()[1]

        self.udp = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.udp.bind(("127.0.0.1", 0))
        self.udp.settimeout(0.1)
        self.udp_port = self.udp.getsockname()[1]

        self._threads = [
            threading.Thread(target=self._serve_tcp, daemon=True),
            threading.Thread(target=self._serve_udp, daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    def respond(self, request: dict[str, Any]) -> dict[str, Any]:
        response: dict[str, Any] = {}
        for service, operations in request.items():
            if service == "context" or service not in self.sections:
                continue
            response[service] = {
                operation: self.sections[service].get(operation, {"err_code": 0}) for operation in operations
            }
        return response

    def _serve_tcp(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self.tcp.accept()
            except (TimeoutError, OSError):
                continue
            with conn:
                header = _recv_exact(conn, 4)
                if len(header) < 4:
                    continue
                (length,) = struct.unpack(">I", header)
                request = json.loads(cipher.decode(_recv_exact(conn, length)))
                self.requests.append(request)
                conn.sendall(cipher.encode(json.dumps(self.respond(request)).encode()))

    def _serve_udp(self) -> None:
        while not self._stop.is_set():
            try:
                data, sender = self.udp.recvfrom(65535)
            except (TimeoutError, OSError):
                continue
            request = json.loads(cipher.decode(data))
            self.udp.sendto(cipher.encrypt(json.dumps(self.respond(request)).encode()), sender)

    def close(self) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout=2)
        self.tcp.close()
        self.udp.close()


@pytest.fixture
def fake_device() -> Iterator[FakeDevice]:
    device = FakeDevice({"system": {"get_sysinfo": dict(HS110_SYSINFO)}})
    try:
        yield device
    finally:
        device.close()


class ScriptedResponder:
    """UDP peer that answers the first query it sees with fixed datagrams."""

    def __init__(self, datagrams: list[bytes]) -> None:
        self.datagrams = datagrams
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.settimeout(2)
        self.port = self.sock.getsockname()[1]
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        try:
            _, sender = self.sock.recvfrom(65535)
        except OSError:
            return
        for datagram in self.datagrams:
            self.sock.sendto(datagram, sender)

    def close(self) -> None:
        self._thread.join(timeout=3)
        self.sock.close()


@pytest.fixture
def responder() -> Iterator[Callable[..., ScriptedResponder]]:
    responders: list[ScriptedResponder] = []

    def _responder(*datagrams: bytes) -> ScriptedResponder:
        peer = ScriptedResponder(list(datagrams))
        responders.append(peer)
        return peer

    yield _responder
    for peer in responders:
        peer.close()
