"""Shared test fixtures."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest

from fprint_enroll.config import Settings
from fprint_enroll.domain.errors import BusError
from fprint_enroll.domain.users import UserIdentity
from fprint_enroll.services.controller import EnrollController
from fprint_enroll.services.devices import DeviceLocator, FprintDevice, FprintManager
from fprint_enroll.services.enrollment import EnrollmentOrchestrator
from fprint_enroll.services.registry import TemplateRegistry
from fprint_enroll.services.sessions import SessionManager
from fprint_enroll.services.users import AccountsClient, UserDirectory

DEVICE_PATH = "/net/reactivated/Fprint/Device/0"

NO_ENROLLED_PRINTS = "net.reactivated.Fprint.Error.NoEnrolledPrints"
ALREADY_IN_USE = "net.reactivated.Fprint.Error.AlreadyInUse"
PERMISSION_DENIED = "net.reactivated.Fprint.Error.PermissionDenied"
NO_SUCH_DEVICE = "net.reactivated.Fprint.Error.NoSuchDevice"


def stage_signals(count: int) -> list[tuple[str, bool]]:
    return [("enroll-stage-passed", False)] * count


@dataclass
class FakeFprintDevice(FprintDevice):
    """In-memory fingerprint device that replays scripted enroll signals."""

    path: str = DEVICE_PATH
    num_enroll_stages: int | None = 5
    enrolled: dict[str, list[str]] = field(default_factory=dict)
    script: list[tuple[str, bool]] = field(default_factory=list)
    failures: dict[str, BaseException] = field(default_factory=dict)
    user_failures: dict[str, BaseException] = field(default_factory=dict)
    calls: list[tuple[str, ...]] = field(default_factory=list)
    claimed_by: str | None = None
    claim_count: int = 0
    release_count: int = 0
    enrolling: str | None = None
    _callbacks: list[Callable[[str, bool], None]] = field(default_factory=list)

    @property
    def subscribers(self) -> int:
        return len(self._callbacks)

    def emit(self, status: str, done: bool) -> None:
        if status == "enroll-completed" and self.enrolling is not None:
            fingers = self.enrolled.setdefault(self.claimed_by or "", [])
            if self.enrolling not in fingers:
                fingers.append(self.enrolling)
        for callback in list(self._callbacks):
            callback(status, done)

    async def get_num_enroll_stages(self) -> int | None:
        self._maybe_fail("get_num_enroll_stages")
        return self.num_enroll_stages

    async def claim(self, username: str) -> None:
        self.calls.append(("claim", username))
        self._maybe_fail("claim")
        if self.claimed_by is not None:
            raise BusError(ALREADY_IN_USE, "Device was already claimed")
        self.claimed_by = username
        self.claim_count += 1

    async def release(self) -> None:
        self.calls.append(("release",))
        self.release_count += 1
        self.claimed_by = None
        self._maybe_fail("release")

    async def enroll_start(self, finger_id: str) -> None:
        self.calls.append(("enroll_start", finger_id))
        self._maybe_fail("enroll_start")
        self.enrolling = finger_id
        loop = asyncio.get_running_loop()
        for status, done in self.script:
            loop.call_soon(self.emit, status, done)

    async def enroll_stop(self) -> None:
        self.calls.append(("enroll_stop",))
        self.enrolling = None
        self._maybe_fail("enroll_stop")

    async def list_enrolled_fingers(self, username: str) -> list[str]:
        self.calls.append(("list_enrolled_fingers", username))
        self._maybe_fail("list_enrolled_fingers", username)
        fingers = self.enrolled.get(username)
        if not fingers:
            raise BusError(NO_ENROLLED_PRINTS, "Failed to discover prints")
        return list(fingers)

    async def delete_enrolled_finger(self, finger_id: str) -> None:
        username = self.claimed_by or ""
        self.calls.append(("delete_enrolled_finger", finger_id))
        self._maybe_fail("delete_enrolled_finger", username)
        fingers = self.enrolled.get(username, [])
        if finger_id not in fingers:
            raise BusError(NO_ENROLLED_PRINTS, "Fingerprint not enrolled")
        fingers.remove(finger_id)

    async def delete_enrolled_fingers(self, username: str) -> None:
        self.calls.append(("delete_enrolled_fingers", username))
        self._maybe_fail("delete_enrolled_fingers", username)
        if not self.enrolled.get(username):
            raise BusError(NO_ENROLLED_PRINTS, "Failed to discover prints")
        del self.enrolled[username]

    def watch_enroll_status(
        self, callback: Callable[[str, bool], None]
    ) -> Callable[[], None]:
        self._callbacks.append(callback)
        return lambda: self._callbacks.remove(callback)

    def _maybe_fail(self, method: str, username: str | None = None) -> None:
        if username is not None and username in self.user_failures:
            raise self.user_failures[username]
        if method in self.failures:
            raise self.failures[method]


@dataclass
class FakeFprintManager(FprintManager):
    """In-memory manager publishing a fixed set of devices."""

    devices: dict[str, FakeFprintDevice] = field(default_factory=dict)
    failures: dict[str, BaseException] = field(default_factory=dict)
    opened: list[str] = field(default_factory=list)

    async def get_devices(self) -> list[str]:
        if "get_devices" in self.failures:
            raise self.failures["get_devices"]
        return list(self.devices)

    async def open_device(self, path: str) -> FakeFprintDevice:
        self.opened.append(path)
        if "open_device" in self.failures:
            raise self.failures["open_device"]
        if path not in self.devices:
            raise BusError(NO_SUCH_DEVICE, f"No such device {path}")
        return self.devices[path]


@dataclass
class FakeAccountsClient(AccountsClient):
    """In-memory accounts service that tracks concurrent lookups."""

    users: dict[str, dict[str, object]] = field(default_factory=dict)
    failures: dict[str, BaseException] = field(default_factory=dict)
    delays: dict[str, float] = field(default_factory=dict)
    list_error: BaseException | None = None
    in_flight: int = 0
    max_in_flight: int = 0

    async def list_cached_users(self) -> list[str]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.users)

    async def get_user(self, path: str) -> dict[str, object]:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(path, 0))
            if path in self.failures:
                raise self.failures[path]
            return self.users[path]
        finally:
            self.in_flight -= 1


def account(username: str, real_name: str = "") -> dict[str, object]:
    return {"UserName": username, "RealName": real_name, "IconFile": ""}


def build_controller(
    manager: FakeFprintManager,
    accounts: FakeAccountsClient,
    connect: Callable | None = None,
    initial_user: UserIdentity | None = None,
) -> EnrollController:
    session_manager = SessionManager(manager)

    async def default_connect() -> object:
        return "bus"

    return EnrollController(
        connect=connect or default_connect,
        locator=DeviceLocator(manager),
        user_directory=UserDirectory(accounts, current_user=lambda: None),
        registry=TemplateRegistry(session_manager),
        orchestrator=EnrollmentOrchestrator(session_manager),
        initial_user=initial_user,
    )


@pytest.fixture
def device() -> FakeFprintDevice:
    return FakeFprintDevice()


@pytest.fixture
def manager(device: FakeFprintDevice) -> FakeFprintManager:
    return FakeFprintManager(devices={device.path: device})


@pytest.fixture
def session_manager(manager: FakeFprintManager) -> SessionManager:
    return SessionManager(manager)


@pytest.fixture
def accounts() -> FakeAccountsClient:
    return FakeAccountsClient(
        users={
            "/org/freedesktop/Accounts/User1000": account("alice", "Alice Liddell"),
            "/org/freedesktop/Accounts/User1001": account("bob", "Bob"),
        }
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)
