"""Capability bundles: shared operation functions and per-class substitution tables.

Each device class maps to one immutable :class:`CapabilitySet` whose operation
table is assembled from the default tables below. Classes that speak a different
wire encoding for an operation replace that entry wholesale (bulbs switch through
the lighting service, and report energy through the common emeter service).

Operation functions take the :class:`~tplinkctl.core.device.DeviceHandle` as their
first argument. Shared operations that depend on other operations (``toggle``,
``is_off``) go back through ``device.invoke`` so substitutions apply to them too.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import partial
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping

from tplinkctl.core.envelope import build
from tplinkctl.core.errors import DecodeError, UsageError
from tplinkctl.core.model import EmeterRealtime, LightState, OutletInfo, SysInfo

if TYPE_CHECKING:
    from tplinkctl.core.device import DeviceHandle

SYSTEM_SERVICE = "system"
EMETER_SERVICE = "emeter"
COMMON_EMETER_SERVICE = "smartlife.iot.common.emeter"
DIMMER_SERVICE = "smartlife.iot.dimmer"
LIGHT_SERVICE = "smartlife.iot.smartbulb.lightingservice"

LIGHT_STATE_FIELDS = frozenset({"on_off", "mode", "hue", "saturation", "color_temp", "brightness", "transition_period"})
COLOR_TEMP_RANGE = (2500, 9000)

Operation = Callable[..., Any]


class Capability(str, Enum):
    SYSTEM = "system"
    SWITCH = "switch"
    MULTI_SWITCH = "multi_switch"
    LIGHT = "light"
    DIMMER = "dimmer"
    COLOR = "color"
    COLOR_TEMP = "color_temp"
    EMETER = "emeter"


@dataclass(frozen=True)
class CapabilitySet:
    name: str
    capabilities: frozenset[Capability]
    operations: Mapping[str, Operation]

    def __contains__(self, capability: object) -> bool:
        return capability in self.capabilities


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or not low <= value <= high:
        raise UsageError(f"{name} must be between {low} and {high}, got {value!r}")


# system

def get_sysinfo(device: DeviceHandle) -> SysInfo:
    return device.envelope.send(build(SYSTEM_SERVICE, "get_sysinfo"), SysInfo.from_dict)


def get_alias(device: DeviceHandle) -> str:
    return get_sysinfo(device).alias


def set_alias(device: DeviceHandle, alias: str) -> None:
    device.envelope.send(build(SYSTEM_SERVICE, "set_dev_alias", {"alias": alias}))


def get_location(device: DeviceHandle) -> tuple[float, float]:
    sysinfo = get_sysinfo(device)
    if sysinfo.latitude is None or sysinfo.longitude is None:
        raise DecodeError("Complete coordinates not found in sysinfo")
    return sysinfo.latitude, sysinfo.longitude


def reboot(device: DeviceHandle, delay_s: int = 1) -> None:
    _check_range("Reboot delay", delay_s, 0, 3600)
    device.envelope.send(build(SYSTEM_SERVICE, "reboot", {"delay": delay_s}))


# switch (relay)

def relay_is_on(device: DeviceHandle) -> bool:
    relay_state = get_sysinfo(device).relay_state
    if relay_state is None:
        raise DecodeError("No relay state in sysinfo")
    return relay_state > 0


def relay_switch_on(device: DeviceHandle) -> None:
    device.envelope.send(build(SYSTEM_SERVICE, "set_relay_state", {"state": 1}))


def relay_switch_off(device: DeviceHandle) -> None:
    device.envelope.send(build(SYSTEM_SERVICE, "set_relay_state", {"state": 0}))


def is_off(device: DeviceHandle) -> bool:
    return not device.invoke("is_on")


def toggle(device: DeviceHandle) -> bool:
    """Flip the on state and return the new state."""
    if device.invoke("is_on"):
        device.invoke("switch_off")
        return False
    device.invoke("switch_on")
    return True


# multi switch (power strips)

def outlets(device: DeviceHandle) -> tuple[OutletInfo, ...]:
    children = get_sysinfo(device).children
    if not children:
        raise DecodeError("No outlets in sysinfo")
    return children


def _check_outlet(index: int, count: int | None = None) -> None:
    if not isinstance(index, int) or isinstance(index, bool) or index < 0:
        raise UsageError(f"Outlet index must be a non-negative integer, got {index!r}")
    if count is not None and index >= count:
        raise UsageError(f"Outlet index {index} out of range; device has {count} outlets")


def outlet_child_id(device_id: str, index: int) -> str:
    return f"{device_id}{index:02d}"


def outlet_is_on(device: DeviceHandle, index: int) -> bool:
    _check_outlet(index)
    children = outlets(device)
    _check_outlet(index, len(children))
    return children[index].is_on


def outlet_is_off(device: DeviceHandle, index: int) -> bool:
    return not device.invoke("is_on", index)


def outlet_switch(device: DeviceHandle, index: int, on: bool) -> None:
    _check_outlet(index)
    identity = device.identity()
    _check_outlet(index, len(identity.children) or None)
    device.envelope.send(
        build(
            SYSTEM_SERVICE,
            "set_relay_state",
            {"state": 1 if on else 0},
            child_ids=[outlet_child_id(identity.device_id, index)],
        )
    )


def outlet_switch_on(device: DeviceHandle, index: int) -> None:
    device.invoke("switch", index, True)


def outlet_switch_off(device: DeviceHandle, index: int) -> None:
    device.invoke("switch", index, False)


def outlet_toggle(device: DeviceHandle, index: int) -> bool:
    if device.invoke("is_on", index):
        device.invoke("switch_off", index)
        return False
    device.invoke("switch_on", index)
    return True


# light

def get_light_state(device: DeviceHandle) -> LightState:
    return device.envelope.send(build(LIGHT_SERVICE, "get_light_state"), LightState.from_dict)


def set_light_state(device: DeviceHandle, **fields: int | str | None) -> LightState:
    """Low-level transition with no range validation; prefer the typed setters."""
    unknown = set(fields) - LIGHT_STATE_FIELDS
    if unknown:
        raise UsageError(f"Unknown light state fields: {', '.join(sorted(unknown))}")
    args = {key: value for key, value in fields.items() if value is not None}
    return device.envelope.send(build(LIGHT_SERVICE, "transition_light_state", args), LightState.from_dict)


def light_is_on(device: DeviceHandle) -> bool:
    return get_light_state(device).is_on


def light_switch_on(device: DeviceHandle) -> None:
    set_light_state(device, on_off=1)


def light_switch_off(device: DeviceHandle) -> None:
    set_light_state(device, on_off=0)


# dimmer

def get_brightness(device: DeviceHandle) -> int:
    return get_light_state(device).brightness


def set_brightness(device: DeviceHandle, brightness: int) -> None:
    _check_range("Brightness", brightness, 0, 100)
    set_light_state(device, brightness=brightness)


# colour

def get_hsv(device: DeviceHandle) -> tuple[int, int, int]:
    state = get_light_state(device)
    return state.hue, state.saturation, state.brightness


def set_hsv(device: DeviceHandle, hue: int, saturation: int, brightness: int) -> None:
    _check_range("Hue", hue, 0, 360)
    _check_range("Saturation", saturation, 0, 100)
    _check_range("Brightness", brightness, 0, 100)
    set_light_state(device, hue=hue, saturation=saturation, brightness=brightness)


def get_color_temp(device: DeviceHandle) -> int:
    return get_light_state(device).color_temp


def set_color_temp(device: DeviceHandle, kelvin: int) -> None:
    _check_range("Colour temperature", kelvin, *COLOR_TEMP_RANGE)
    set_light_state(device, color_temp=kelvin)


# emeter

def emeter_realtime(device: DeviceHandle, *, service: str = EMETER_SERVICE) -> EmeterRealtime:
    return device.envelope.send(build(service, "get_realtime"), EmeterRealtime.from_dict)


def emeter_daily(device: DeviceHandle, year: int, month: int, *, service: str = EMETER_SERVICE) -> list[dict[str, Any]]:
    _check_range("Month", month, 1, 12)
    return device.envelope.send(
        build(service, "get_daystat", {"month": month, "year": year}),
        lambda payload: list(payload["day_list"]),
    )


def emeter_monthly(device: DeviceHandle, year: int, *, service: str = EMETER_SERVICE) -> list[dict[str, Any]]:
    return device.envelope.send(
        build(service, "get_monthstat", {"year": year}),
        lambda payload: list(payload["month_list"]),
    )


SYSTEM_OPS: dict[str, Operation] = {
    "sysinfo": get_sysinfo,
    "alias": get_alias,
    "set_alias": set_alias,
    "location": get_location,
    "reboot": reboot,
}

SWITCH_OPS: dict[str, Operation] = {
    "is_on": relay_is_on,
    "is_off": is_off,
    "switch_on": relay_switch_on,
    "switch_off": relay_switch_off,
    "toggle": toggle,
}

MULTI_SWITCH_OPS: dict[str, Operation] = {
    "outlets": outlets,
    "is_on": outlet_is_on,
    "is_off": outlet_is_off,
    "switch": outlet_switch,
    "switch_on": outlet_switch_on,
    "switch_off": outlet_switch_off,
    "toggle": outlet_toggle,
}

LIGHT_OPS: dict[str, Operation] = {
    "light_state": get_light_state,
    "set_light_state": set_light_state,
}

DIMMER_OPS: dict[str, Operation] = {
    "brightness": get_brightness,
    "set_brightness": set_brightness,
}

COLOR_OPS: dict[str, Operation] = {
    "hsv": get_hsv,
    "set_hsv": set_hsv,
}

COLOR_TEMP_OPS: dict[str, Operation] = {
    "color_temp": get_color_temp,
    "set_color_temp": set_color_temp,
}

EMETER_OPS: dict[str, Operation] = {
    "emeter_realtime": emeter_realtime,
    "emeter_daily": emeter_daily,
    "emeter_monthly": emeter_monthly,
}

DEFAULT_OPS: dict[Capability, dict[str, Operation]] = {
    Capability.SYSTEM: SYSTEM_OPS,
    Capability.SWITCH: SWITCH_OPS,
    Capability.MULTI_SWITCH: MULTI_SWITCH_OPS,
    Capability.LIGHT: LIGHT_OPS,
    Capability.DIMMER: DIMMER_OPS,
    Capability.COLOR: COLOR_OPS,
    Capability.COLOR_TEMP: COLOR_TEMP_OPS,
    Capability.EMETER: EMETER_OPS,
}

BULB_SWITCH_OVERRIDES: dict[str, Operation] = {
    "is_on": light_is_on,
    "switch_on": light_switch_on,
    "switch_off": light_switch_off,
}

COMMON_EMETER_OVERRIDES: dict[str, Operation] = {
    name: partial(operation, service=COMMON_EMETER_SERVICE) for name, operation in EMETER_OPS.items()
}


def bundle(
    name: str,
    capabilities: tuple[Capability, ...],
    overrides: tuple[Mapping[str, Operation], ...] = (),
) -> CapabilitySet:
    operations: dict[str, Operation] = {}
    for capability in capabilities:
        operations.update(DEFAULT_OPS[capability])
    for substitution in overrides:
        missing = set(substitution) - set(operations)
        if missing:
            raise ValueError(f"Bundle '{name}' overrides operations it does not have: {sorted(missing)}")
        operations.update(substitution)
    return CapabilitySet(name=name, capabilities=frozenset(capabilities), operations=MappingProxyType(operations))


UNKNOWN = CapabilitySet(name="unknown", capabilities=frozenset(), operations=MappingProxyType({}))

_PLUG = (Capability.SYSTEM, Capability.SWITCH)
_STRIP = (Capability.SYSTEM, Capability.MULTI_SWITCH)
_BULB = (Capability.SYSTEM, Capability.SWITCH, Capability.LIGHT, Capability.DIMMER, Capability.EMETER)
_BULB_OVERRIDES = (BULB_SWITCH_OVERRIDES, COMMON_EMETER_OVERRIDES)

BUNDLES: Mapping[str, CapabilitySet] = MappingProxyType(
    {
        "plug": bundle("plug", _PLUG),
        "plug_emeter": bundle("plug_emeter", _PLUG + (Capability.EMETER,)),
        "strip": bundle("strip", _STRIP),
        "strip_emeter": bundle("strip_emeter", _STRIP + (Capability.EMETER,)),
        "bulb_dimmable": bundle("bulb_dimmable", _BULB, _BULB_OVERRIDES),
        "bulb_tunable": bundle("bulb_tunable", _BULB + (Capability.COLOR_TEMP,), _BULB_OVERRIDES),
        "bulb_color": bundle("bulb_color", _BULB + (Capability.COLOR, Capability.COLOR_TEMP), _BULB_OVERRIDES),
        "unknown": UNKNOWN,
    }
)
