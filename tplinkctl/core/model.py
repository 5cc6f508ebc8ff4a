"""Core data models used across transport, envelope, dispatch, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

DEFAULT_PORT = 9999

RawDocument = dict[str, Any]
Command = dict[str, Any]


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int = DEFAULT_PORT

    @classmethod
    def parse(cls, value: str, *, default_port: int = DEFAULT_PORT) -> Endpoint:
        host, sep, port = value.rpartition(":")
        if not sep:
            return cls(host=value, port=default_port)
        if not host:
            raise ValueError(f"Invalid endpoint '{value}'")
        return cls(host=host, port=int(port))

    def address(self) -> tuple[str, int]:
        return (self.host, self.port)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ModelRule:
    pattern: str
    device_class: str


@dataclass(frozen=True)
class BroadcastInterface:
    name: str
    address: str
    broadcast: str


@dataclass(frozen=True)
class OutletInfo:
    id: str
    alias: str
    state: int

    @property
    def is_on(self) -> bool:
        return self.state > 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OutletInfo:
        return cls(id=_str(data, "id"), alias=str(data.get("alias", "")), state=int(data["state"]))


@dataclass(frozen=True)
class LightState:
    """Light state as reported by bulbs.

    While the bulb is off the colour fields live under ``dft_on_state``; while it
    is on they sit beside ``on_off``.
    """

    on_off: int
    mode: str
    hue: int
    saturation: int
    color_temp: int
    brightness: int

    @property
    def is_on(self) -> bool:
        return self.on_off == 1

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LightState:
        values = data.get("dft_on_state") or data
        return cls(
            on_off=int(data["on_off"]),
            mode=str(values.get("mode", "")),
            hue=int(values["hue"]),
            saturation=int(values["saturation"]),
            color_temp=int(values["color_temp"]),
            brightness=int(values["brightness"]),
        )


@dataclass(frozen=True)
class EmeterRealtime:
    """Realtime energy reading in A, V, W and kWh."""

    current: float
    voltage: float
    power: float
    total: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EmeterRealtime:
        # Newer firmware reports integer milli-units under suffixed keys.
        if "power_mw" in data:
            return cls(
                current=float(data.get("current_ma", 0)) / 1000,
                voltage=float(data.get("voltage_mv", 0)) / 1000,
                power=float(data["power_mw"]) / 1000,
                total=float(data.get("total_wh", 0)) / 1000,
            )
        return cls(
            current=float(data["current"]),
            voltage=float(data["voltage"]),
            power=float(data["power"]),
            total=float(data["total"]),
        )


@dataclass(frozen=True)
class SysInfo:
    model: str
    alias: str
    device_id: str
    hw_type: str = ""
    sw_ver: str = ""
    hw_ver: str = ""
    mac: str = ""
    dev_name: str | None = None
    relay_state: int | None = None
    children: tuple[OutletInfo, ...] = ()
    light_state: LightState | None = None
    latitude: float | None = None
    longitude: float | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SysInfo:
        light_state = data.get("light_state")
        relay_state = data.get("relay_state")
        latitude, longitude = _coordinates(data)
        return cls(
            model=_str(data, "model"),
            alias=_str(data, "alias"),
            device_id=_str(data, "deviceId"),
            hw_type=str(data.get("type", data.get("mic_type", ""))),
            sw_ver=str(data.get("sw_ver", "")),
            hw_ver=str(data.get("hw_ver", "")),
            mac=str(data.get("mac", data.get("mic_mac", ""))),
            dev_name=data.get("dev_name", data.get("description")),
            relay_state=int(relay_state) if relay_state is not None else None,
            children=tuple(OutletInfo.from_dict(child) for child in data.get("children", ())),
            light_state=LightState.from_dict(light_state) if light_state else None,
            latitude=latitude,
            longitude=longitude,
            raw=dict(data),
        )


def _str(data: Mapping[str, Any], key: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise TypeError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


def _coordinates(data: Mapping[str, Any]) -> tuple[float | None, float | None]:
    if data.get("latitude") is not None and data.get("longitude") is not None:
        return float(data["latitude"]), float(data["longitude"])
    # Integer coordinates are scaled by 10^4.
    if data.get("latitude_i") is not None and data.get("longitude_i") is not None:
        return float(data["latitude_i"]) / 10000, float(data["longitude_i"]) / 10000
    return None, None
