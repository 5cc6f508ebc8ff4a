"""Length-framed TCP transport implementation using Python sockets."""

from __future__ import annotations

import logging
import socket

from tplinkctl.core import cipher
from tplinkctl.core.errors import (
    TransportConnectError,
    TransportIncompleteError,
    TransportIOError,
    TransportTimeoutError,
)
from tplinkctl.core.model import Endpoint

_RECV_SIZE = 4096
LOGGER = logging.getLogger(__name__)


class TcpTransport:
    """One connection per request; no pooling or keep-alive.

    ``timeout_s`` bounds the connect and every individual read.
    """

    def send(
        self,
        endpoint: Endpoint,
        payload: bytes,
        *,
        timeout_s: float,
    ) -> bytes:
        try:
            sock = socket.create_connection(endpoint.address(), timeout=timeout_s)
        except TimeoutError as exc:
            raise TransportTimeoutError(f"TCP connect to {endpoint} timed out") from exc
        except OSError as exc:
            raise TransportConnectError(f"TCP connect to {endpoint} failed: {exc}") from exc

        try:
            try:
                sock.sendall(cipher.encode(payload))
            except TimeoutError as exc:
                raise TransportTimeoutError(f"TCP send to {endpoint} timed out") from exc
            except OSError as exc:
                raise TransportIOError(f"TCP send to {endpoint} failed: {exc}") from exc

            frame = read_frame(sock, endpoint)
        finally:
            sock.close()

        return cipher.decode(frame)


def read_frame(sock: socket.socket, endpoint: Endpoint) -> bytes:
    """Read one length-prefixed frame and return the cipher bytes past the prefix."""
    buffer = bytearray()
    expected: int | None = None
    while expected is None or len(buffer) < expected:
        try:
            chunk = sock.recv(_RECV_SIZE)
        except TimeoutError as exc:
            raise TransportTimeoutError(f"TCP receive from {endpoint} timed out") from exc
        except OSError as exc:
            raise TransportIOError(f"TCP receive from {endpoint} failed: {exc}") from exc
        if not chunk:
            break
        buffer.extend(chunk)
        if expected is None and len(buffer) >= cipher.PREFIX_SIZE:
            expected = cipher.declared_length(buffer) + cipher.PREFIX_SIZE

    if expected is None or len(buffer) < expected:
        raise TransportIncompleteError(
            f"Connection to {endpoint} closed after {len(buffer)} of "
            f"{expected if expected is not None else 'unknown'} bytes"
        )
    if len(buffer) > expected:
        LOGGER.debug("Ignoring %d trailing bytes from %s", len(buffer) - expected, endpoint)
    return bytes(buffer[cipher.PREFIX_SIZE:expected])
