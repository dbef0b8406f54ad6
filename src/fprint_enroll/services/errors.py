"""Classification of bus failures into user-meaningful error kinds."""

import re
from collections.abc import Awaitable
from typing import TypeVar

from fprint_enroll.domain.errors import BusError, ErrorKind, OperationError

T = TypeVar("T")

_FPRINT_ERROR = "net.reactivated.Fprint.Error."
_DBUS_ERROR = "org.freedesktop.DBus.Error."

_KINDS_BY_NAME: dict[str, ErrorKind] = {
    f"{_FPRINT_ERROR}PermissionDenied": ErrorKind.PERMISSION_DENIED,
    f"{_FPRINT_ERROR}AlreadyInUse": ErrorKind.ALREADY_IN_USE,
    f"{_FPRINT_ERROR}NoSuchDevice": ErrorKind.DEVICE_NOT_FOUND,
    f"{_DBUS_ERROR}AccessDenied": ErrorKind.PERMISSION_DENIED,
    f"{_DBUS_ERROR}AuthFailed": ErrorKind.PERMISSION_DENIED,
    f"{_DBUS_ERROR}NoReply": ErrorKind.TIMEOUT,
    f"{_DBUS_ERROR}Timeout": ErrorKind.TIMEOUT,
    f"{_DBUS_ERROR}TimedOut": ErrorKind.TIMEOUT,
    f"{_DBUS_ERROR}ServiceUnknown": ErrorKind.CONNECT_DBUS,
    f"{_DBUS_ERROR}NameHasNoOwner": ErrorKind.CONNECT_DBUS,
    f"{_DBUS_ERROR}NoServer": ErrorKind.CONNECT_DBUS,
    f"{_DBUS_ERROR}NoNetwork": ErrorKind.CONNECT_DBUS,
    f"{_DBUS_ERROR}Disconnected": ErrorKind.CONNECT_DBUS,
    f"{_DBUS_ERROR}FileNotFound": ErrorKind.CONNECT_DBUS,
}

_NO_ENROLLED_PRINTS = f"{_FPRINT_ERROR}NoEnrolledPrints"

# GLib formats remote errors as "GDBus.Error:<name>: <message>".
_GDBUS_ERROR = re.compile(r"GDBus\.Error:(?P<name>[\w.]+):\s*(?P<message>.*)", re.S)

_TIMEOUT_TEXT = "Timeout was reached"


def classify_error(exc: BaseException, context: str | None = None) -> OperationError:
    """Map a raw failure to an ``OperationError``.

    Known kinds carry a fixed message, so ``context`` is only kept for
    ``ErrorKind.UNKNOWN``.
    """
    if isinstance(exc, OperationError):
        return exc.with_context(context)

    name, message = _error_name_and_message(exc)
    kind = _kind_for(name, message, exc)
    if kind in {ErrorKind.CONNECT_DBUS, ErrorKind.UNKNOWN}:
        return OperationError(kind, message).with_context(context)
    return OperationError(kind)


def is_no_enrolled_prints(exc: BaseException) -> bool:
    """Return True when the service reports that nothing is enrolled."""
    name, _ = _error_name_and_message(exc)
    return name == _NO_ENROLLED_PRINTS


async def call_classified(awaitable: Awaitable[T], context: str | None = None) -> T:
    """Await a bus call, converting any failure into an ``OperationError``."""
    try:
        return await awaitable
    except OperationError as exc:
        raise exc.with_context(context) from exc
    except Exception as exc:
        raise classify_error(exc, context) from exc


def _error_name_and_message(exc: BaseException) -> tuple[str | None, str]:
    if isinstance(exc, BusError):
        return exc.name, exc.message
    text = str(getattr(exc, "message", None) or exc)
    match = _GDBUS_ERROR.match(text)
    if match:
        return match.group("name"), match.group("message")
    return None, text


def _kind_for(name: str | None, message: str, exc: BaseException) -> ErrorKind:
    if name is not None:
        kind = _KINDS_BY_NAME.get(name)
        if kind is not None:
            return kind
        if name.startswith(f"{_DBUS_ERROR}Spawn."):
            return ErrorKind.CONNECT_DBUS
    if isinstance(exc, TimeoutError) or _TIMEOUT_TEXT in message:
        return ErrorKind.TIMEOUT
    if isinstance(exc, PermissionError):
        return ErrorKind.PERMISSION_DENIED
    if isinstance(exc, ConnectionError):
        return ErrorKind.CONNECT_DBUS
    return ErrorKind.UNKNOWN
