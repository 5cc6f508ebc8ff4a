"""Service layer used by CLI and future UI frontends."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from tplinkctl.core.capabilities import BUNDLES, SYSTEM_SERVICE, UNKNOWN, CapabilitySet
from tplinkctl.core.device import DeviceHandle
from tplinkctl.core.device_match import identify
from tplinkctl.core.discovery import DEFAULT_DISCOVERY_TIMEOUT_S, discover, discover_async
from tplinkctl.core.envelope import CommandEnvelope, build, section_outcome
from tplinkctl.core.errors import DecodeError, UsageError
from tplinkctl.core.model import DEFAULT_PORT, BroadcastInterface, Endpoint, ModelRule, RawDocument, SysInfo
from tplinkctl.core.model_loader import load_models
from tplinkctl.transports.base import Transport
from tplinkctl.transports.tcp import TcpTransport

DEFAULT_TIMEOUT_S = 5.0
LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveredDevice:
    endpoint: Endpoint
    document: RawDocument
    handle: DeviceHandle
    sysinfo: SysInfo | None


class TplinkService:
    def __init__(
        self,
        *,
        transport: Transport | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        port: int = DEFAULT_PORT,
        discovery_port: int = DEFAULT_PORT,
    ) -> None:
        loaded = load_models()
        self.rules = loaded.rules
        self.load_warnings = loaded.warnings
        self.transport = transport or TcpTransport()
        self.timeout_s = timeout_s
        self.port = port
        self.discovery_port = discovery_port

    def list_models(self) -> list[ModelRule]:
        return list(self.rules)

    def identify(self, sysinfo: Mapping[str, Any] | SysInfo) -> CapabilitySet:
        return identify(sysinfo, self.rules)

    def endpoint(self, host: str) -> Endpoint:
        return Endpoint.parse(host, default_port=self.port)

    def handle(
        self,
        endpoint: Endpoint,
        device_class: str,
        *,
        sysinfo: SysInfo | None = None,
    ) -> DeviceHandle:
        """Build a handle for an endpoint whose device class the caller already knows."""
        capabilities = BUNDLES.get(device_class)
        if capabilities is None:
            known = ", ".join(sorted(BUNDLES))
            raise UsageError(f"Unknown device class '{device_class}'. Known: {known}")
        return DeviceHandle(endpoint, capabilities, self.transport, timeout_s=self.timeout_s, sysinfo=sysinfo)

    def probe(self, endpoint: Endpoint) -> DeviceHandle:
        """Identify a device by fetching its sysinfo once; the capability set is fixed from then on."""
        envelope = CommandEnvelope(endpoint, self.transport, timeout_s=self.timeout_s)
        sysinfo = envelope.send(build(SYSTEM_SERVICE, "get_sysinfo"), SysInfo.from_dict)
        capabilities = self.identify(sysinfo)
        LOGGER.debug("Identified %s model %s as %s", endpoint, sysinfo.model, capabilities.name)
        return DeviceHandle(endpoint, capabilities, self.transport, timeout_s=self.timeout_s, sysinfo=sysinfo)

    def discover(
        self,
        timeout_s: float = DEFAULT_DISCOVERY_TIMEOUT_S,
        *,
        interfaces: list[BroadcastInterface] | None = None,
        use_async: bool = False,
    ) -> list[DiscoveredDevice]:
        if use_async:
            results = asyncio.run(discover_async(timeout_s, port=self.discovery_port, interfaces=interfaces))
        else:
            results = discover(timeout_s, port=self.discovery_port, interfaces=interfaces)
        devices = [self._from_document(sender, document) for sender, document in results.items()]
        return sorted(devices, key=lambda d: (d.endpoint.host, d.endpoint.port))

    def _from_document(self, sender: Endpoint, document: RawDocument) -> DiscoveredDevice:
        capabilities = UNKNOWN
        sysinfo: SysInfo | None = None
        try:
            outcome = section_outcome(document, SYSTEM_SERVICE, "get_sysinfo")
        except DecodeError as exc:
            LOGGER.debug("Malformed sysinfo from %s: %s", sender, exc)
            outcome = None
        if outcome is not None and outcome.ok:
            raw = outcome.unwrap()
            capabilities = self.identify(raw)
            try:
                sysinfo = SysInfo.from_dict(raw)
            except (KeyError, TypeError, ValueError) as exc:
                LOGGER.debug("Incomplete sysinfo from %s: %r", sender, exc)
        # The reply source port is not the command port.
        endpoint = Endpoint(host=sender.host, port=self.port)
        handle = DeviceHandle(endpoint, capabilities, self.transport, timeout_s=self.timeout_s, sysinfo=sysinfo)
        return DiscoveredDevice(endpoint=sender, document=document, handle=handle, sysinfo=sysinfo)
