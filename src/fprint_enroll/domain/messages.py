"""Messages exchanged between the controller and the presentation layer."""

from dataclasses import dataclass, field

from fprint_enroll.domain.devices import Device
from fprint_enroll.domain.errors import OperationError
from fprint_enroll.domain.fingers import Finger
from fprint_enroll.domain.users import UserIdentity


@dataclass(frozen=True)
class ConnectionReady:
    """The system bus connection is established."""

    connection: object


@dataclass(frozen=True)
class DeviceFound:
    """Result of the device lookup; ``None`` when no sensor is usable."""

    device: Device | None


@dataclass(frozen=True)
class UsersFound:
    users: list[UserIdentity]


@dataclass(frozen=True)
class EnrolledFingers:
    finger_ids: list[str]


@dataclass(frozen=True)
class EnrollStart:
    total_stages: int | None


@dataclass(frozen=True)
class EnrollStatus:
    """Enrollment status update; ``done`` marks the terminal one."""

    status: str
    done: bool
    current_stage: int = 0


@dataclass(frozen=True)
class EnrollStop:
    """User asked to cancel the running enrollment."""


@dataclass(frozen=True)
class DeleteComplete:
    finger: Finger


@dataclass(frozen=True)
class ClearComplete:
    error: OperationError | None = field(default=None)


@dataclass(frozen=True)
class OperationFailed:
    error: OperationError


@dataclass(frozen=True)
class SelectUser:
    username: str


@dataclass(frozen=True)
class SelectFinger:
    finger: Finger


@dataclass(frozen=True)
class Register:
    """Start enrolling the selected finger for the selected user."""


@dataclass(frozen=True)
class Delete:
    """Delete the selected finger (or all prints) for the selected user."""


@dataclass(frozen=True)
class ClearDevice:
    """Clear every known user's prints; needs a second request to confirm."""


@dataclass(frozen=True)
class CancelClear:
    pass


Message = (
    ConnectionReady
    | DeviceFound
    | UsersFound
    | EnrolledFingers
    | EnrollStart
    | EnrollStatus
    | EnrollStop
    | DeleteComplete
    | ClearComplete
    | OperationFailed
    | SelectUser
    | SelectFinger
    | Register
    | Delete
    | ClearDevice
    | CancelClear
)
