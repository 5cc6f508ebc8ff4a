"""Typer CLI entrypoint."""

from __future__ import annotations

import json
import logging

import typer

from tplinkctl.core.capabilities import Capability
from tplinkctl.core.device import DeviceHandle
from tplinkctl.core.discovery import DEFAULT_DISCOVERY_TIMEOUT_S
from tplinkctl.core.errors import TplinkctlError, UsageError
from tplinkctl.core.service import DEFAULT_TIMEOUT_S, TplinkService

app = typer.Typer(help="Discover and control TP-Link smart plugs and bulbs on the local network")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")


def _build_service(timeout_s: float = DEFAULT_TIMEOUT_S) -> TplinkService:
    service = TplinkService(timeout_s=timeout_s)
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _connect(host: str, timeout_s: float) -> DeviceHandle:
    service = _build_service(timeout_s=timeout_s)
    return service.probe(service.endpoint(host))


def _outlet_args(handle: DeviceHandle, outlet: int | None) -> tuple[int, ...]:
    multi = Capability.MULTI_SWITCH in handle.capabilities
    if multi and outlet is None:
        raise UsageError(f"{handle.endpoint} has multiple outlets; pass --outlet")
    if not multi and outlet is not None:
        raise UsageError(f"{handle.endpoint} has a single outlet; drop --outlet")
    return () if outlet is None else (outlet,)


@app.command("models")
def list_models() -> None:
    """List the model table in match order."""
    try:
        service = _build_service()
        for rule in service.list_models():
            typer.echo(f"{rule.pattern}: {rule.device_class}")
    except TplinkctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("discover")
def discover_devices(
    timeout: float = typer.Option(DEFAULT_DISCOVERY_TIMEOUT_S, "--timeout", help="Seconds to wait for replies"),
    as_json: bool = typer.Option(False, "--json", help="Print raw discovery documents as JSON"),
) -> None:
    """Broadcast a discovery query on every interface and list the replies."""
    try:
        service = _build_service()
        devices = service.discover(timeout)
        if as_json:
            typer.echo(json.dumps({str(d.endpoint): d.document for d in devices}, indent=2, sort_keys=True))
            return
        if not devices:
            typer.echo("No devices found")
            return
        for device in devices:
            alias = device.sysinfo.alias if device.sysinfo else "<unknown>"
            model = device.sysinfo.model if device.sysinfo else "<unknown>"
            typer.echo(f"{device.endpoint.host}\t{alias}\t{model}\t{device.handle.device_class}")
    except TplinkctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("info")
def info(
    host: str,
    timeout: float = typer.Option(DEFAULT_TIMEOUT_S, "--timeout", help="Seconds per request"),
) -> None:
    """Identify a device and print its sysinfo summary."""
    try:
        handle = _connect(host, timeout)
        sysinfo = handle.identity()
        typer.echo(f"Host: {handle.endpoint}")
        typer.echo(f"Alias: {sysinfo.alias}")
        typer.echo(f"Model: {sysinfo.model}")
        typer.echo(f"Class: {handle.device_class}")
        typer.echo(f"Firmware: {sysinfo.sw_ver}")
        typer.echo(f"Operations: {', '.join(handle.operations())}")
    except TplinkctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def _switch(host: str, operation: str, outlet: int | None, timeout: float) -> None:
    try:
        handle = _connect(host, timeout)
        result = handle.invoke(operation, *_outlet_args(handle, outlet))
        if operation == "toggle":
            typer.echo("on" if result else "off")
    except TplinkctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("on")
def switch_on(
    host: str,
    outlet: int | None = typer.Option(None, "--outlet", help="Outlet index for power strips"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT_S, "--timeout", help="Seconds per request"),
) -> None:
    """Switch a device (or one outlet) on."""
    _switch(host, "switch_on", outlet, timeout)


@app.command("off")
def switch_off(
    host: str,
    outlet: int | None = typer.Option(None, "--outlet", help="Outlet index for power strips"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT_S, "--timeout", help="Seconds per request"),
) -> None:
    """Switch a device (or one outlet) off."""
    _switch(host, "switch_off", outlet, timeout)


@app.command("toggle")
def toggle(
    host: str,
    outlet: int | None = typer.Option(None, "--outlet", help="Outlet index for power strips"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT_S, "--timeout", help="Seconds per request"),
) -> None:
    """Flip the on state and print the new state."""
    _switch(host, "toggle", outlet, timeout)


@app.command("brightness")
def brightness(
    host: str,
    value: int | None = typer.Argument(None),
    timeout: float = typer.Option(DEFAULT_TIMEOUT_S, "--timeout", help="Seconds per request"),
) -> None:
    """Print the brightness, or set it when VALUE is given."""
    try:
        handle = _connect(host, timeout)
        if value is None:
            typer.echo(str(handle.invoke("brightness")))
            return
        handle.invoke("set_brightness", value)
    except TplinkctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("emeter")
def emeter(
    host: str,
    timeout: float = typer.Option(DEFAULT_TIMEOUT_S, "--timeout", help="Seconds per request"),
) -> None:
    """Print the realtime energy reading."""
    try:
        handle = _connect(host, timeout)
        reading = handle.invoke("emeter_realtime")
        typer.echo(
            f"power={reading.power:.3f}W voltage={reading.voltage:.3f}V "
            f"current={reading.current:.3f}A total={reading.total:.3f}kWh"
        )
    except TplinkctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
