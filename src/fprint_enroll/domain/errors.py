"""Error taxonomy for fingerprint operations."""

from enum import Enum


class ErrorKind(str, Enum):
    """User-meaningful error categories."""

    PERMISSION_DENIED = "permission-denied"
    ALREADY_IN_USE = "already-in-use"
    DEVICE_NOT_FOUND = "device-not-found"
    TIMEOUT = "timeout"
    CONNECT_DBUS = "connect-dbus"
    UNKNOWN = "unknown"


_FIXED_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.PERMISSION_DENIED: "Permission denied.",
    ErrorKind.ALREADY_IN_USE: "Device is already in use by another application.",
    ErrorKind.DEVICE_NOT_FOUND: "Fingerprint device not found.",
    ErrorKind.TIMEOUT: "Operation timed out.",
}


class OperationError(Exception):
    """A classified failure of a fingerprint operation."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str | None = None,
        context: str | None = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.context = context
        super().__init__(self.localized_message())

    def with_context(self, context: str | None) -> "OperationError":
        """Return a copy annotated with context; only unknown errors keep it."""
        if self.kind is not ErrorKind.UNKNOWN:
            return OperationError(self.kind, self.message)
        return OperationError(self.kind, self.message, context or self.context)

    def localized_message(self) -> str:
        """Return the user-facing message for this error."""
        fixed = _FIXED_MESSAGES.get(self.kind)
        if fixed is not None:
            return fixed
        if self.kind is ErrorKind.CONNECT_DBUS:
            return f"Failed to connect to DBus: {self.message or ''}"
        message = self.message or "Unknown error"
        if self.context:
            return f"{self.context}: {message}"
        return message

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OperationError):
            return NotImplemented
        return (self.kind, self.message, self.context) == (
            other.kind,
            other.message,
            other.context,
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.message, self.context))

    def __repr__(self) -> str:
        return (
            f"OperationError(kind={self.kind.name}, message={self.message!r}, "
            f"context={self.context!r})"
        )


class BusError(Exception):
    """Raw failure reported by the message bus, before classification."""

    def __init__(self, name: str | None, message: str) -> None:
        self.name = name
        self.message = message
        super().__init__(f"{name}: {message}" if name else message)
