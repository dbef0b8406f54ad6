"""Tests for the device claim lifecycle."""

import asyncio
import time

import pytest

from fprint_enroll.domain.devices import Device
from fprint_enroll.domain.errors import BusError, ErrorKind, OperationError
from fprint_enroll.services.sessions import Session, SessionManager, SessionState
from tests.conftest import (
    ALREADY_IN_USE,
    DEVICE_PATH,
    PERMISSION_DENIED,
    FakeFprintDevice,
    FakeFprintManager,
)

DEVICE = Device(path=DEVICE_PATH, num_enroll_stages=5)


class ThreadedClaimDevice(FakeFprintDevice):
    """Device whose claim completes in a worker thread, like the bus adapter."""

    async def claim(self, username: str) -> None:
        self.calls.append(("claim", username))

        def blocking_claim() -> None:
            time.sleep(0.2)
            self._maybe_fail("claim")
            self.claimed_by = username
            self.claim_count += 1

        await asyncio.to_thread(blocking_claim)


def test_session_claims_and_releases_once(
    session_manager: SessionManager, device: FakeFprintDevice
) -> None:
    async def run() -> Session:
        async with session_manager.session(DEVICE, "alice") as session:
            assert session.state is SessionState.CLAIMED
            assert session_manager.is_claimed(DEVICE)
        return session

    session = asyncio.run(run())
    assert session.state is SessionState.RELEASED
    assert device.calls == [("claim", "alice"), ("release",)]
    assert not session_manager.is_claimed(DEVICE)


def test_session_released_when_body_fails(
    session_manager: SessionManager, device: FakeFprintDevice
) -> None:
    async def run() -> None:
        async with session_manager.session(DEVICE, "alice"):
            raise ValueError("body failed")

    with pytest.raises(ValueError):
        asyncio.run(run())
    assert device.release_count == 1


def test_session_released_when_cancelled(
    session_manager: SessionManager, device: FakeFprintDevice
) -> None:
    async def run() -> None:
        async def body() -> None:
            async with session_manager.session(DEVICE, "alice"):
                await asyncio.sleep(10)

        task = asyncio.create_task(body())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())
    assert device.claim_count == 1
    assert device.release_count == 1


def test_release_failure_is_swallowed(
    session_manager: SessionManager, device: FakeFprintDevice
) -> None:
    device.failures["release"] = BusError(None, "gone")

    async def run() -> str:
        return await session_manager.with_session(DEVICE, _return_username, "alice")

    assert asyncio.run(run()) == "alice"
    assert device.release_count == 1
    assert not session_manager.is_claimed(DEVICE)


def test_release_is_idempotent(
    session_manager: SessionManager, device: FakeFprintDevice
) -> None:
    async def run() -> None:
        session = await session_manager.claim(DEVICE, "alice")
        await session_manager.release(session)
        await session_manager.release(session)

    asyncio.run(run())
    assert device.release_count == 1


def test_second_claim_is_rejected_locally(
    session_manager: SessionManager, device: FakeFprintDevice
) -> None:
    async def run() -> None:
        async with session_manager.session(DEVICE, "alice"):
            await session_manager.claim(DEVICE, "bob")

    with pytest.raises(OperationError) as excinfo:
        asyncio.run(run())
    assert excinfo.value.kind is ErrorKind.ALREADY_IN_USE
    assert device.claim_count == 1
    assert device.release_count == 1


def test_claim_failure_leaves_device_unclaimed(
    session_manager: SessionManager, device: FakeFprintDevice
) -> None:
    device.failures["claim"] = BusError(PERMISSION_DENIED, "Not Authorized")

    with pytest.raises(OperationError) as excinfo:
        asyncio.run(session_manager.claim(DEVICE, "alice"))
    assert excinfo.value.kind is ErrorKind.PERMISSION_DENIED
    assert device.release_count == 0
    assert not session_manager.is_claimed(DEVICE)


def test_claim_held_by_another_process(
    session_manager: SessionManager, device: FakeFprintDevice
) -> None:
    device.claimed_by = "someone-else"

    with pytest.raises(OperationError) as excinfo:
        asyncio.run(session_manager.claim(DEVICE, "alice"))
    assert excinfo.value == OperationError(ErrorKind.ALREADY_IN_USE)
    assert ALREADY_IN_USE not in excinfo.value.localized_message()


def test_handle_unusable_after_release(session_manager: SessionManager) -> None:
    async def run() -> Session:
        async with session_manager.session(DEVICE, "alice") as session:
            return session

    session = asyncio.run(run())
    with pytest.raises(RuntimeError):
        session.handle


async def _return_username(session: Session) -> str:
    return session.username


def test_cancelled_claim_is_released_once_it_lands() -> None:
    device = ThreadedClaimDevice()
    session_manager = SessionManager(FakeFprintManager(devices={device.path: device}))

    async def run() -> None:
        task = asyncio.create_task(session_manager.claim(DEVICE, "alice"))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())
    assert device.claim_count == 1
    assert device.release_count == 1
    assert device.claimed_by is None
    assert not session_manager.is_claimed(DEVICE)


def test_cancelled_claim_that_fails_is_not_released() -> None:
    device = ThreadedClaimDevice()
    device.failures["claim"] = BusError(PERMISSION_DENIED, "Not Authorized")
    session_manager = SessionManager(FakeFprintManager(devices={device.path: device}))

    async def run() -> None:
        task = asyncio.create_task(session_manager.claim(DEVICE, "alice"))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())
    assert device.release_count == 0
    assert not session_manager.is_claimed(DEVICE)
