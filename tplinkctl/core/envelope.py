"""Request documents, response navigation, and section error separation."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Mapping, TypeVar

from tplinkctl.core.errors import DecodeError, MissingSectionError, SectionError
from tplinkctl.core.model import Command, Endpoint, RawDocument
from tplinkctl.transports.base import Transport

T = TypeVar("T")

CONTEXT_KEY = "context"


@dataclass(frozen=True)
class SectionOutcome:
    payload: Mapping[str, Any] | None = None
    error: SectionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Mapping[str, Any]:
        if self.error is not None:
            raise self.error
        if self.payload is None:
            raise DecodeError("Section outcome carries neither a payload nor an error")
        return self.payload


def build(
    service: str,
    operation: str,
    args: Mapping[str, Any] | None = None,
    *,
    child_ids: list[str] | None = None,
) -> Command:
    command: Command = {}
    if child_ids:
        command[CONTEXT_KEY] = {"child_ids": list(child_ids)}
    command[service] = {operation: dict(args) if args is not None else None}
    return command


def target_of(command: Command) -> tuple[str, str]:
    """Return the single (service, operation) a command addresses."""
    services = [key for key in command if key != CONTEXT_KEY]
    if len(services) != 1 or not isinstance(command[services[0]], dict) or len(command[services[0]]) != 1:
        raise ValueError(f"Command must address exactly one operation: {command!r}")
    service = services[0]
    (operation,) = command[service]
    return service, operation


def encode_command(command: Command) -> bytes:
    return json.dumps(command, separators=(",", ":")).encode("utf-8")


def parse_document(payload: bytes) -> RawDocument:
    try:
        document = json.loads(payload.decode("utf-8", errors="replace"))
    except (ValueError, RecursionError) as exc:
        raise DecodeError(f"Response is not valid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise DecodeError(f"Response root must be an object, got {type(document).__name__}")
    return document


def _embedded_error(value: Any) -> SectionError | None:
    if not isinstance(value, Mapping) or value.get("err_code", 0) == 0:
        return None
    code = value["err_code"]
    if not isinstance(code, int) or isinstance(code, bool):
        raise DecodeError(f"err_code must be an integer, got {code!r}")
    return SectionError(code, str(value.get("err_msg", "")))


def section_outcome(document: Mapping[str, Any], service: str, operation: str) -> SectionOutcome | None:
    """Return the outcome of ``service.operation`` or None when it is absent."""
    section = document.get(service)
    if section is None:
        return None
    error = _embedded_error(section)
    if error is not None:
        return SectionOutcome(error=error)
    if not isinstance(section, Mapping):
        raise DecodeError(f"Section '{service}' must be an object")
    if operation not in section:
        return None
    payload = section[operation]
    error = _embedded_error(payload)
    if error is not None:
        return SectionOutcome(error=error)
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise DecodeError(f"Section '{service}.{operation}' must be an object")
    return SectionOutcome(payload=payload)


def extract(document: Mapping[str, Any], service: str, operation: str) -> Mapping[str, Any]:
    outcome = section_outcome(document, service, operation)
    if outcome is None:
        path = service if service not in document else f"{service}.{operation}"
        raise MissingSectionError(path)
    return outcome.unwrap()


class CommandEnvelope:
    def __init__(self, endpoint: Endpoint, transport: Transport, *, timeout_s: float) -> None:
        self.endpoint = endpoint
        self.transport = transport
        self.timeout_s = timeout_s

    def send_raw(self, command: Command) -> RawDocument:
        reply = self.transport.send(self.endpoint, encode_command(command), timeout_s=self.timeout_s)
        return parse_document(reply)

    def send(self, command: Command, decoder: Callable[[Mapping[str, Any]], T] | None = None) -> T | Mapping[str, Any]:
        service, operation = target_of(command)
        payload = extract(self.send_raw(command), service, operation)
        if decoder is None:
            return payload
        try:
            return decoder(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"Unexpected payload for '{service}.{operation}': {exc!r}") from exc
