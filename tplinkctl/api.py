"""Stable public API for building tooling on top of tplinkctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from typing import Any, Mapping

from tplinkctl.core.capabilities import BUNDLES, UNKNOWN, Capability, CapabilitySet
from tplinkctl.core.cipher import decode, encode
from tplinkctl.core.device import DeviceHandle
from tplinkctl.core.discovery import (
    DEFAULT_DISCOVERY_TIMEOUT_S,
    DISCOVERY_QUERY,
    discover,
    discover_async,
    list_broadcast_interfaces,
)
from tplinkctl.core.envelope import CommandEnvelope, SectionOutcome, build, extract, section_outcome
from tplinkctl.core.errors import (
    DecodeError,
    MissingSectionError,
    ModelTableError,
    ModelTableLoadError,
    ModelTableValidationError,
    ProtocolError,
    SectionError,
    TplinkctlError,
    TransportConnectError,
    TransportError,
    TransportIncompleteError,
    TransportIOError,
    TransportTimeoutError,
    UnsupportedOperationError,
    UsageError,
)
from tplinkctl.core.model import (
    DEFAULT_PORT,
    BroadcastInterface,
    EmeterRealtime,
    Endpoint,
    LightState,
    ModelRule,
    OutletInfo,
    SysInfo,
)
from tplinkctl.core.service import DEFAULT_TIMEOUT_S, DiscoveredDevice, TplinkService
from tplinkctl.transports.base import Transport
from tplinkctl.transports.tcp import TcpTransport

__all__ = [
    "TplinkctlError",
    "ModelTableError",
    "ModelTableLoadError",
    "ModelTableValidationError",
    "UsageError",
    "UnsupportedOperationError",
    "TransportError",
    "TransportConnectError",
    "TransportTimeoutError",
    "TransportIncompleteError",
    "TransportIOError",
    "ProtocolError",
    "MissingSectionError",
    "SectionError",
    "DecodeError",
    "DEFAULT_PORT",
    "DEFAULT_TIMEOUT_S",
    "DEFAULT_DISCOVERY_TIMEOUT_S",
    "DISCOVERY_QUERY",
    "BUNDLES",
    "UNKNOWN",
    "Capability",
    "CapabilitySet",
    "BroadcastInterface",
    "EmeterRealtime",
    "Endpoint",
    "LightState",
    "ModelRule",
    "OutletInfo",
    "SysInfo",
    "SectionOutcome",
    "CommandEnvelope",
    "DeviceHandle",
    "DiscoveredDevice",
    "Transport",
    "TcpTransport",
    "build",
    "extract",
    "section_outcome",
    "encode",
    "decode",
    "discover",
    "discover_async",
    "list_broadcast_interfaces",
    "Client",
]


class Client:
    """Public client for interacting with tplinkctl core capabilities.

    A `Client` instance wraps model table loading, discovery, identification
    and direct device construction behind a stable API intended for third-party
    tools (GUI/TUI/services/scripts).
    """

    def __init__(
        self,
        *,
        transport: Transport | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        port: int = DEFAULT_PORT,
        discovery_port: int = DEFAULT_PORT,
    ) -> None:
        self._service = TplinkService(
            transport=transport,
            timeout_s=timeout_s,
            port=port,
            discovery_port=discovery_port,
        )

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_models(self) -> list[ModelRule]:
        return self._service.list_models()

    def identify(self, sysinfo: Mapping[str, Any] | SysInfo) -> CapabilitySet:
        return self._service.identify(sysinfo)

    def discover(
        self,
        timeout_s: float = DEFAULT_DISCOVERY_TIMEOUT_S,
        *,
        interfaces: list[BroadcastInterface] | None = None,
        use_async: bool = False,
    ) -> list[DiscoveredDevice]:
        return self._service.discover(timeout_s, interfaces=interfaces, use_async=use_async)

    def connect(self, host: str, *, device_class: str | None = None) -> DeviceHandle:
        """Return a handle for ``host[:port]``.

        Without ``device_class`` the device is probed once for its sysinfo and
        identified from its model string.
        """
        endpoint = self._service.endpoint(host)
        if device_class is None:
            return self._service.probe(endpoint)
        return self._service.handle(endpoint, device_class)
