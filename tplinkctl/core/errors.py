"""Domain-specific errors for tplinkctl."""


class TplinkctlError(Exception):
    """Base error for tplinkctl."""


class ModelTableError(TplinkctlError):
    """Base error for the model lookup table."""


class ModelTableValidationError(ModelTableError):
    """Raised when a model table does not conform to schema or semantics."""


class ModelTableLoadError(ModelTableError):
    """Raised when reading a model table source fails."""


class UsageError(TplinkctlError):
    """Raised when a caller-supplied argument is out of range; nothing is sent."""


class UnsupportedOperationError(UsageError):
    """Raised when an operation is not part of a device's capability set."""


class TransportError(TplinkctlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on TCP connect failures."""


class TransportTimeoutError(TransportError):
    """Raised when no progress is made within the timeout window."""


class TransportIncompleteError(TransportError):
    """Raised when the peer closes before the declared frame length arrived."""


class TransportIOError(TransportError):
    """Raised when writing or reading the socket fails."""


class ProtocolError(TplinkctlError):
    """Base error for well-framed responses that cannot satisfy a request."""


class MissingSectionError(ProtocolError):
    """Raised when the requested section is absent; the model lacks the feature."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Section '{path}' missing from response")
        self.path = path


class SectionError(ProtocolError):
    """Raised when a section carries an embedded error code."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"Section error ({code}) {message}")
        self.code = code
        self.message = message

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SectionError):
            return NotImplemented
        return (self.code, self.message) == (other.code, other.message)

    def __hash__(self) -> int:
        return hash((self.code, self.message))


class DecodeError(ProtocolError):
    """Raised when a payload cannot be parsed or does not have the expected shape."""
