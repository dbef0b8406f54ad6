"""Fingerprint service adapters implemented with pydbus."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from fprint_enroll.adapters.bus import SystemBusConnection

DEVICE_INTERFACE = "net.reactivated.Fprint.Device"


@dataclass
class PydbusFprintDevice:
    """One fingerprint device object on the system bus."""

    connection: SystemBusConnection
    proxy: Any

    async def get_num_enroll_stages(self) -> int | None:
        value = await self.connection.get_property(
            self.proxy, DEVICE_INTERFACE, "num-enroll-stages"
        )
        return None if value is None else int(value)

    async def claim(self, username: str) -> None:
        await self.connection.call(self.proxy.Claim, username)

    async def release(self) -> None:
        await self.connection.call(self.proxy.Release)

    async def enroll_start(self, finger_id: str) -> None:
        await self.connection.call(self.proxy.EnrollStart, finger_id)

    async def enroll_stop(self) -> None:
        await self.connection.call(self.proxy.EnrollStop)

    async def list_enrolled_fingers(self, username: str) -> list[str]:
        fingers = await self.connection.call(self.proxy.ListEnrolledFingers, username)
        return list(fingers)

    async def delete_enrolled_finger(self, finger_id: str) -> None:
        await self.connection.call(self.proxy.DeleteEnrolledFinger, finger_id)

    async def delete_enrolled_fingers(self, username: str) -> None:
        await self.connection.call(self.proxy.DeleteEnrolledFingers, username)

    def watch_enroll_status(
        self, callback: Callable[[str, bool], None]
    ) -> Callable[[], None]:
        return self.connection.subscribe(
            self.proxy,
            "EnrollStatus",
            lambda status, done: callback(str(status), bool(done)),
        )


@dataclass
class PydbusFprintManager:
    """Manager object of the fingerprint service."""

    connection: SystemBusConnection
    service: str
    manager_path: str

    async def get_devices(self) -> list[str]:
        manager = await self.connection.get(self.service, self.manager_path)
        return list(await self.connection.call(manager.GetDevices))

    async def open_device(self, path: str) -> PydbusFprintDevice:
        proxy = await self.connection.get(self.service, path)
        return PydbusFprintDevice(connection=self.connection, proxy=proxy)
