"""UDP broadcast discovery across every local IPv4 interface.

Broadcasts do not cross interface boundaries, so one independent task runs per
interface with its own socket. Results are merged only after every task has
finished; a device seen from several interfaces keeps the last reply merged.
Discovery is best-effort: interface errors and foreign or undecodable replies
are logged at debug level and dropped.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
import time
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor

import psutil

from tplinkctl.core import cipher
from tplinkctl.core.capabilities import (
    COMMON_EMETER_SERVICE,
    DIMMER_SERVICE,
    EMETER_SERVICE,
    LIGHT_SERVICE,
    SYSTEM_SERVICE,
)
from tplinkctl.core.envelope import encode_command, parse_document
from tplinkctl.core.errors import DecodeError
from tplinkctl.core.model import DEFAULT_PORT, BroadcastInterface, Command, Endpoint, RawDocument

DEFAULT_DISCOVERY_TIMEOUT_S = 3.0
DISCOVERY_SENDS = 3
_MAX_DATAGRAM = 65535
LOGGER = logging.getLogger(__name__)

DISCOVERY_QUERY: Command = {
    SYSTEM_SERVICE: {"get_sysinfo": None},
    EMETER_SERVICE: {"get_realtime": None},
    DIMMER_SERVICE: {"get_dimmer_parameters": None},
    COMMON_EMETER_SERVICE: {"get_realtime": None},
    LIGHT_SERVICE: {"get_light_state": None},
}


def list_broadcast_interfaces() -> list[BroadcastInterface]:
    """Return non-loopback IPv4 interfaces that expose a broadcast address."""
    interfaces: list[BroadcastInterface] = []
    for name, addrs in psutil.net_if_addrs().items():
        for addr in addrs:
            if addr.family != socket.AF_INET or not addr.broadcast:
                continue
            if ipaddress.IPv4Address(addr.address).is_loopback:
                continue
            interfaces.append(BroadcastInterface(name=name, address=addr.address, broadcast=addr.broadcast))
    return interfaces


def discovery_request() -> bytes:
    """Cipher bytes of the discovery query; datagrams carry no length prefix."""
    return cipher.encrypt(encode_command(DISCOVERY_QUERY))


def decode_reply(data: bytes, sender: tuple[str, int]) -> RawDocument | None:
    try:
        return parse_document(cipher.decode(data))
    except DecodeError as exc:
        LOGGER.debug("Dropping reply from %s:%s: %s", sender[0], sender[1], exc)
        return None


def merge_results(results: Iterable[Mapping[Endpoint, RawDocument]]) -> dict[Endpoint, RawDocument]:
    merged: dict[Endpoint, RawDocument] = {}
    for result in results:
        merged.update(result)
    return merged


def _send_query(sock: socket.socket, request: bytes, target: tuple[str, int]) -> None:
    for _ in range(DISCOVERY_SENDS):
        try:
            sock.sendto(request, target)
        except OSError as exc:
            LOGGER.debug("Discovery send to %s:%s failed: %s", target[0], target[1], exc)


def discover_on_interface(
    interface: BroadcastInterface,
    request: bytes,
    *,
    timeout_s: float,
    port: int = DEFAULT_PORT,
) -> dict[Endpoint, RawDocument]:
    devices: dict[Endpoint, RawDocument] = {}
    deadline = time.monotonic() + timeout_s
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.bind((interface.address, 0))
        _send_query(sock, request, (interface.broadcast, port))
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            sock.settimeout(remaining)
            try:
                data, sender = sock.recvfrom(_MAX_DATAGRAM)
            except TimeoutError:
                break
            except OSError as exc:
                LOGGER.debug("Receive on %s (%s) failed: %s", interface.name, interface.address, exc)
                break
            document = decode_reply(data, sender)
            if document is not None:
                devices[Endpoint(host=sender[0], port=sender[1])] = document
    LOGGER.debug("Interface %s (%s) saw %d devices", interface.name, interface.address, len(devices))
    return devices


def _interfaces_or_default(interfaces: Sequence[BroadcastInterface] | None) -> list[BroadcastInterface]:
    if interfaces is not None:
        return list(interfaces)
    try:
        return list_broadcast_interfaces()
    except OSError as exc:
        LOGGER.debug("Could not enumerate network interfaces: %s", exc)
        return []


def discover(
    timeout_s: float = DEFAULT_DISCOVERY_TIMEOUT_S,
    *,
    port: int = DEFAULT_PORT,
    interfaces: Sequence[BroadcastInterface] | None = None,
) -> dict[Endpoint, RawDocument]:
    """Broadcast the discovery query from one thread per interface."""
    targets = _interfaces_or_default(interfaces)
    if not targets:
        LOGGER.debug("No broadcast-capable interfaces found")
        return {}

    request = discovery_request()
    with ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix="tplinkctl-discovery") as pool:
        futures = [
            pool.submit(discover_on_interface, interface, request, timeout_s=timeout_s, port=port)
            for interface in targets
        ]

    results: list[dict[Endpoint, RawDocument]] = []
    for interface, future in zip(targets, futures):
        try:
            results.append(future.result())
        except OSError as exc:
            LOGGER.debug("Discovery on %s (%s) failed: %s", interface.name, interface.address, exc)
    return merge_results(results)


class _DiscoveryProtocol(asyncio.DatagramProtocol):
    def __init__(self, interface: BroadcastInterface) -> None:
        self.interface = interface
        self.devices: dict[Endpoint, RawDocument] = {}

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        document = decode_reply(data, addr)
        if document is not None:
            self.devices[Endpoint(host=addr[0], port=addr[1])] = document

    def error_received(self, exc: Exception) -> None:
        LOGGER.debug("Discovery socket on %s reported: %s", self.interface.name, exc)


async def discover_on_interface_async(
    interface: BroadcastInterface,
    request: bytes,
    *,
    timeout_s: float,
    port: int = DEFAULT_PORT,
) -> dict[Endpoint, RawDocument]:
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(
        lambda: _DiscoveryProtocol(interface),
        local_addr=(interface.address, 0),
        allow_broadcast=True,
    )
    try:
        for _ in range(DISCOVERY_SENDS):
            transport.sendto(request, (interface.broadcast, port))
        await asyncio.sleep(timeout_s)
    finally:
        transport.close()
    return protocol.devices


async def discover_async(
    timeout_s: float = DEFAULT_DISCOVERY_TIMEOUT_S,
    *,
    port: int = DEFAULT_PORT,
    interfaces: Sequence[BroadcastInterface] | None = None,
) -> dict[Endpoint, RawDocument]:
    """Same contract as :func:`discover`, with one asyncio task per interface."""
    targets = _interfaces_or_default(interfaces)
    if not targets:
        LOGGER.debug("No broadcast-capable interfaces found")
        return {}

    request = discovery_request()
    outcomes = await asyncio.gather(
        *(discover_on_interface_async(interface, request, timeout_s=timeout_s, port=port) for interface in targets),
        return_exceptions=True,
    )

    results: list[dict[Endpoint, RawDocument]] = []
    for interface, outcome in zip(targets, outcomes):
        if isinstance(outcome, OSError):
            LOGGER.debug("Discovery on %s (%s) failed: %s", interface.name, interface.address, outcome)
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            results.append(outcome)
    return merge_results(results)
