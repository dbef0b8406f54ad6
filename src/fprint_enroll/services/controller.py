"""Application model driven by an explicit message loop."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from fprint_enroll.domain.devices import Device
from fprint_enroll.domain.enrollment import (
    EnrollDone,
    EnrollProgress,
    EnrollResult,
    EnrollSignal,
    EnrollStarted,
)
from fprint_enroll.domain.errors import ErrorKind, OperationError
from fprint_enroll.domain.fingers import Finger
from fprint_enroll.domain.messages import (
    CancelClear,
    ClearComplete,
    ClearDevice,
    ConnectionReady,
    Delete,
    DeleteComplete,
    DeviceFound,
    EnrolledFingers,
    EnrollStart,
    EnrollStatus,
    EnrollStop,
    Message,
    OperationFailed,
    Register,
    SelectFinger,
    SelectUser,
    UsersFound,
)
from fprint_enroll.domain.users import UserIdentity
from fprint_enroll.services.devices import DeviceLocator
from fprint_enroll.services.enrollment import EnrollmentOrchestrator
from fprint_enroll.services.errors import classify_error
from fprint_enroll.services.registry import TemplateRegistry
from fprint_enroll.services.users import UserDirectory

_logger = logging.getLogger(__name__)

STATUS_CONNECTING = "Connecting to the fingerprint service..."
STATUS_SEARCHING = "Searching for a fingerprint device..."
STATUS_DEVICE_FOUND = "Fingerprint device found."
STATUS_NO_DEVICE = "No fingerprint device found."
STATUS_STARTING_ENROLLMENT = "Starting enrollment..."
STATUS_ENROLL_STARTING = "Place your finger on the sensor."
STATUS_CANCELLING = "Cancelling enrollment..."
STATUS_DELETING = "Deleting..."
STATUS_DELETED = "Deleted."
STATUS_CLEARING = "Clearing device..."
STATUS_CLEARED = "Device cleared."
STATUS_CONFIRM_CLEAR = "Clear the prints of all users? Request again to confirm."

ENROLL_STATUS_TEXT: dict[EnrollResult, str] = {
    EnrollResult.STAGE_PASSED: "Stage passed. Place your finger on the sensor again.",
    EnrollResult.RETRY_SCAN: "Could not read the fingerprint, please try again.",
    EnrollResult.SWIPE_TOO_SHORT: "Swipe was too short, please try again.",
    EnrollResult.FINGER_NOT_CENTERED: "Finger was not centered, please try again.",
    EnrollResult.REMOVE_AND_RETRY: "Remove your finger and try again.",
    EnrollResult.COMPLETED: "Enrollment completed.",
    EnrollResult.FAILED: "Enrollment failed.",
    EnrollResult.DISCONNECTED: "The device was disconnected.",
    EnrollResult.DATA_FULL: "The device has no room for more prints.",
    EnrollResult.TOO_FAST: "Finger was removed too fast.",
    EnrollResult.DUPLICATE: "This fingerprint is already enrolled.",
    EnrollResult.CANCELLED: "Enrollment cancelled.",
    EnrollResult.UNKNOWN_ERROR: "An unknown error occurred.",
}


def enroll_status_text(status: str) -> str:
    """Return the user-facing text of a status string, or the string itself."""
    signal = EnrollSignal.parse(status)
    if signal.status is None:
        return signal.raw
    return ENROLL_STATUS_TEXT[signal.status]


@dataclass
class ControllerState:
    """Everything the presentation layer renders."""

    status: str = STATUS_CONNECTING
    busy: bool = True
    connection: object | None = None
    device: Device | None = None
    users: list[UserIdentity] = field(default_factory=list)
    selected_user: UserIdentity | None = None
    selected_finger: Finger = field(default_factory=Finger.default)
    enrolled_fingers: list[str] = field(default_factory=list)
    enrolling_finger: Finger | None = None
    enroll_progress: int = 0
    enroll_total_stages: int | None = None
    confirm_clear: bool = False
    listing: bool = False

    @property
    def controls_enabled(self) -> bool:
        return (
            not self.busy
            and not self.listing
            and self.device is not None
            and self.enrolling_finger is None
        )

    @property
    def is_selected_enrolled(self) -> bool:
        finger_id = self.selected_finger.finger_id
        if finger_id is None:
            return bool(self.enrolled_fingers)
        return finger_id in self.enrolled_fingers

    @property
    def can_register(self) -> bool:
        return self.controls_enabled and self.selected_finger.finger_id is not None

    @property
    def can_delete(self) -> bool:
        return self.controls_enabled and self.is_selected_enrolled

    @property
    def can_cancel(self) -> bool:
        return self.enrolling_finger is not None


class EnrollController:
    """Consumes messages, updates ``state`` and schedules bus operations.

    Results of background operations come back as messages on ``inbox``;
    only :meth:`update` mutates the state.
    """

    def __init__(  # noqa: PLR0913
        self,
        connect: Callable[[], Awaitable[object]],
        locator: DeviceLocator,
        user_directory: UserDirectory,
        registry: TemplateRegistry,
        orchestrator: EnrollmentOrchestrator,
        initial_user: UserIdentity | None = None,
    ) -> None:
        self.connect = connect
        self.locator = locator
        self.user_directory = user_directory
        self.registry = registry
        self.orchestrator = orchestrator
        self.state = ControllerState(selected_user=initial_user)
        self.inbox: asyncio.Queue[Message] = asyncio.Queue()
        self._tasks: set[asyncio.Task] = set()
        self._fingers_wanted: tuple[Device, str] | None = None
        self._fingers_task: asyncio.Task | None = None
        self._stop_pending = False
        self._handlers: dict[type, Callable[[Any], None]] = {
            ConnectionReady: self._on_connection_ready,
            DeviceFound: self._on_device_found,
            UsersFound: self._on_users_found,
            EnrolledFingers: self._on_fingers_listed,
            EnrollStart: self._on_enroll_start,
            EnrollStatus: self._on_enroll_status,
            EnrollStop: self._on_enroll_stop,
            DeleteComplete: self._on_delete_complete,
            ClearComplete: self._on_clear_complete,
            OperationFailed: self._on_error,
            SelectUser: self._on_user_selected,
            SelectFinger: self._on_finger_selected,
            Register: self._on_register,
            Delete: self._on_delete,
            ClearDevice: self._on_clear_device,
            CancelClear: self._on_cancel_clear,
        }

    def start(self) -> None:
        """Connect to the bus; the rest follows from ``ConnectionReady``."""
        self._spawn(self._connect())

    def send(self, message: Message) -> None:
        """Queue a message, typically a user command."""
        self.inbox.put_nowait(message)

    def update(self, message: Message) -> None:
        """Apply one message to the state."""
        handler = self._handlers.get(type(message))
        if handler is None:
            raise TypeError(f"Unsupported message: {message!r}")
        handler(message)

    async def process_next(self) -> Message:
        """Wait for the next message, apply it and return it."""
        message = await self.inbox.get()
        self.update(message)
        return message

    async def run_until_idle(self) -> None:
        """Process messages until no operation is pending."""
        while True:
            if not self.inbox.empty():
                self.update(self.inbox.get_nowait())
                continue
            pending = {task for task in self._tasks if not task.done()}
            if not pending:
                return
            getter = asyncio.ensure_future(self.inbox.get())
            await asyncio.wait(pending | {getter}, return_when=asyncio.FIRST_COMPLETED)
            if getter.done():
                self.update(getter.result())
            else:
                getter.cancel()

    async def aclose(self) -> None:
        """Stop any enrollment and cancel pending operations."""
        self.orchestrator.stop()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _spawn(self, operation: Coroutine[Any, Any, Message | None]) -> asyncio.Task:
        task = asyncio.create_task(self._run(operation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, operation: Coroutine[Any, Any, Message | None]) -> None:
        try:
            result = await operation
        except Exception as exc:
            _logger.exception("Background operation failed")
            result = OperationFailed(classify_error(exc))
        if result is not None:
            await self.inbox.put(result)

    async def _connect(self) -> Message:
        try:
            connection = await self.connect()
        except Exception as exc:
            error = classify_error(exc)
            if error.kind is ErrorKind.UNKNOWN:
                error = OperationError(ErrorKind.CONNECT_DBUS, error.message)
            return OperationFailed(error)
        return ConnectionReady(connection)

    async def _find_device(self) -> Message:
        try:
            device = await self.locator.find_device()
        except OperationError as exc:
            if exc.kind is ErrorKind.DEVICE_NOT_FOUND:
                return DeviceFound(None)
            return OperationFailed(exc)
        return DeviceFound(device)

    async def _fetch_users(self) -> Message:
        return UsersFound(await self.user_directory.list_users())

    async def _list_fingers(self) -> Message | None:
        # Repeat until the listed user is still the one wanted.
        while True:
            wanted = self._fingers_wanted
            if wanted is None:
                return None
            device, username = wanted
            try:
                result: Message = EnrolledFingers(
                    await self.registry.list_fingers(device, username)
                )
            except OperationError as exc:
                result = OperationFailed(exc)
            if self._fingers_wanted == wanted:
                return result

    async def _enroll(self, device: Device, username: str, finger: Finger) -> None:
        async for event in self.orchestrator.stream(device, username, finger):
            if isinstance(event, EnrollStarted):
                await self.inbox.put(EnrollStart(event.total_stages))
            elif isinstance(event, EnrollProgress):
                await self.inbox.put(
                    EnrollStatus(event.signal.raw, False, event.current_stage)
                )
            elif isinstance(event, EnrollDone):
                if event.error is not None:
                    await self.inbox.put(OperationFailed(event.error))
                else:
                    await self.inbox.put(
                        EnrollStatus(event.status, True, event.current_stage)
                    )

    async def _delete(self, device: Device, username: str, finger: Finger) -> Message:
        try:
            if finger.finger_id is None:
                await self.registry.delete_all(device, username)
            else:
                await self.registry.delete_one(device, username, finger.finger_id)
        except OperationError as exc:
            return OperationFailed(exc)
        return DeleteComplete(finger)

    async def _clear(self, device: Device, usernames: list[str]) -> Message:
        try:
            await self.registry.clear_all_users(device, usernames)
        except OperationError as exc:
            return ClearComplete(exc)
        return ClearComplete()

    def _request_fingers(self) -> None:
        state = self.state
        if state.device is None or state.selected_user is None:
            return
        self._fingers_wanted = (state.device, state.selected_user.username)
        state.listing = True
        if self._fingers_task is None or self._fingers_task.done():
            self._fingers_task = self._spawn(self._list_fingers())

    def _listing_finished(self) -> None:
        if self._fingers_task is None or self._fingers_task.done():
            self.state.listing = False

    def _on_connection_ready(self, message: ConnectionReady) -> None:
        self.state.connection = message.connection
        self.state.status = STATUS_SEARCHING
        self._spawn(self._find_device())
        self._spawn(self._fetch_users())

    def _on_device_found(self, message: DeviceFound) -> None:
        state = self.state
        state.device = message.device
        if message.device is None:
            state.status = STATUS_NO_DEVICE
            state.busy = True
            return
        state.status = STATUS_DEVICE_FOUND
        state.busy = False
        self._request_fingers()

    def _on_users_found(self, message: UsersFound) -> None:
        state = self.state
        state.users = list(message.users)
        selected = state.selected_user
        refreshed = None
        if selected is not None:
            refreshed = next(
                (u for u in state.users if u.username == selected.username), None
            )
        if refreshed is None and state.users:
            refreshed = state.users[0]
        if refreshed is not None:
            state.selected_user = refreshed
        self._request_fingers()

    def _on_fingers_listed(self, message: EnrolledFingers) -> None:
        self.state.enrolled_fingers = list(message.finger_ids)
        self._listing_finished()

    def _on_user_selected(self, message: SelectUser) -> None:
        state = self.state
        if state.busy:
            return
        state.confirm_clear = False
        for user in state.users:
            if user.username == message.username:
                state.selected_user = user
                self._request_fingers()
                return
        _logger.warning("Unknown user selected: %r", message.username)

    def _on_finger_selected(self, message: SelectFinger) -> None:
        if self.state.busy:
            return
        self.state.confirm_clear = False
        self.state.selected_finger = message.finger

    def _on_register(self, message: Register) -> None:
        state = self.state
        if (
            not state.can_register
            or state.selected_user is None
            or state.device is None
        ):
            _logger.info("Ignoring register request while unavailable")
            return
        if self.orchestrator.active:
            _logger.info("Ignoring register request during an enrollment")
            return
        state.busy = True
        state.confirm_clear = False
        state.enrolling_finger = state.selected_finger
        self._stop_pending = False
        state.enroll_progress = 0
        state.status = STATUS_STARTING_ENROLLMENT
        self._spawn(
            self._enroll(state.device, state.selected_user.username, state.selected_finger)
        )

    def _on_enroll_start(self, message: EnrollStart) -> None:
        self.state.enroll_total_stages = message.total_stages
        self.state.enroll_progress = 0
        if self._stop_pending:
            self._stop_pending = False
            self.orchestrator.stop()
            return
        self.state.status = STATUS_ENROLL_STARTING

    def _on_enroll_status(self, message: EnrollStatus) -> None:
        state = self.state
        state.status = enroll_status_text(message.status)
        if message.status == EnrollResult.STAGE_PASSED.value:
            state.enroll_progress = message.current_stage
        if not message.done:
            return
        state.busy = False
        self._stop_pending = False
        state.enrolling_finger = None
        if message.status == EnrollResult.COMPLETED.value:
            self._request_fingers()

    def _on_enroll_stop(self, message: EnrollStop) -> None:
        if self.state.enrolling_finger is None:
            return
        self.state.status = STATUS_CANCELLING
        if self.orchestrator.active:
            self.orchestrator.stop()
        else:
            # Not started yet; stop once the start is reported.
            self._stop_pending = True

    def _on_delete(self, message: Delete) -> None:
        state = self.state
        if not state.can_delete or state.selected_user is None or state.device is None:
            _logger.info("Ignoring delete request while unavailable")
            return
        state.busy = True
        state.confirm_clear = False
        state.status = STATUS_DELETING
        self._spawn(
            self._delete(state.device, state.selected_user.username, state.selected_finger)
        )

    def _on_delete_complete(self, message: DeleteComplete) -> None:
        state = self.state
        state.status = STATUS_DELETED
        state.busy = False
        finger_id = message.finger.finger_id
        if finger_id is None:
            state.enrolled_fingers.clear()
        else:
            state.enrolled_fingers = [f for f in state.enrolled_fingers if f != finger_id]

    def _on_clear_device(self, message: ClearDevice) -> None:
        state = self.state
        if not state.controls_enabled or state.device is None:
            return
        if not state.confirm_clear:
            state.confirm_clear = True
            state.status = STATUS_CONFIRM_CLEAR
            return
        state.confirm_clear = False
        state.busy = True
        state.status = STATUS_CLEARING
        usernames = [user.username for user in state.users]
        self._spawn(self._clear(state.device, usernames))

    def _on_cancel_clear(self, message: CancelClear) -> None:
        self.state.confirm_clear = False

    def _on_clear_complete(self, message: ClearComplete) -> None:
        state = self.state
        if message.error is None:
            state.status = STATUS_CLEARED
            state.enrolled_fingers.clear()
        else:
            state.status = message.error.localized_message()
        state.busy = False

    def _on_error(self, message: OperationFailed) -> None:
        state = self.state
        state.status = message.error.localized_message()
        state.busy = False
        state.enrolling_finger = None
        self._stop_pending = False
        self._listing_finished()
