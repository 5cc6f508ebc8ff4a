"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol

from tplinkctl.core.model import Endpoint


class Transport(Protocol):
    def send(
        self,
        endpoint: Endpoint,
        payload: bytes,
        *,
        timeout_s: float,
    ) -> bytes:
        """Send a plaintext request to a device and return the plaintext reply."""
