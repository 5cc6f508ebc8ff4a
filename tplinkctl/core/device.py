"""Device handles: an endpoint bound to a fixed capability set."""

from __future__ import annotations

from typing import Any

from tplinkctl.core.capabilities import CapabilitySet, get_sysinfo
from tplinkctl.core.envelope import CommandEnvelope
from tplinkctl.core.errors import UnsupportedOperationError
from tplinkctl.core.model import Command, Endpoint, RawDocument, SysInfo
from tplinkctl.transports.base import Transport


class DeviceHandle:
    """The unit callers hold and invoke operations on.

    ``capabilities`` is fixed at construction. ``sysinfo`` is an optional snapshot
    from discovery or the identification probe; it is only consulted for static
    identity (device id, outlet count), never for live state.
    """

    def __init__(
        self,
        endpoint: Endpoint,
        capabilities: CapabilitySet,
        transport: Transport,
        *,
        timeout_s: float,
        sysinfo: SysInfo | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.capabilities = capabilities
        self.transport = transport
        self.envelope = CommandEnvelope(endpoint, transport, timeout_s=timeout_s)
        self._sysinfo = sysinfo

    @property
    def device_class(self) -> str:
        return self.capabilities.name

    @property
    def timeout_s(self) -> float:
        return self.envelope.timeout_s

    def supports(self, operation: str) -> bool:
        return operation in self.capabilities.operations

    def operations(self) -> tuple[str, ...]:
        return tuple(sorted(self.capabilities.operations))

    def invoke(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        func = self.capabilities.operations.get(operation)
        if func is None:
            raise UnsupportedOperationError(
                f"Operation '{operation}' is not supported by device class '{self.capabilities.name}'"
            )
        return func(self, *args, **kwargs)

    def send_raw(self, command: Command) -> RawDocument:
        """Send any command and return the whole response document unchecked."""
        return self.envelope.send_raw(command)

    def identity(self) -> SysInfo:
        if self._sysinfo is None:
            self._sysinfo = get_sysinfo(self)
        return self._sysinfo

    def __repr__(self) -> str:
        return f"DeviceHandle({self.endpoint}, {self.capabilities.name})"
