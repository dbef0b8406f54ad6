"""Discovery of fingerprint devices published on the bus."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from fprint_enroll.domain.devices import Device, normalize_stage_count
from fprint_enroll.domain.errors import ErrorKind, OperationError
from fprint_enroll.services.errors import classify_error

_logger = logging.getLogger(__name__)


class FprintDevice(Protocol):
    """Interface for one device object of the fingerprint service."""

    async def get_num_enroll_stages(self) -> int | None:
        """Return the reported number of enroll stages, if any."""

    async def claim(self, username: str) -> None:
        """Claim the device for ``username`` (empty for the caller)."""

    async def release(self) -> None:
        """Release a previous claim."""

    async def enroll_start(self, finger_id: str) -> None:
        """Start enrolling ``finger_id`` for the claimed user."""

    async def enroll_stop(self) -> None:
        """Stop a running enrollment."""

    async def list_enrolled_fingers(self, username: str) -> list[str]:
        """Return the enrolled finger ids for ``username``."""

    async def delete_enrolled_finger(self, finger_id: str) -> None:
        """Delete one finger of the claimed user."""

    async def delete_enrolled_fingers(self, username: str) -> None:
        """Delete every finger enrolled for ``username``."""

    def watch_enroll_status(
        self, callback: Callable[[str, bool], None]
    ) -> Callable[[], None]:
        """Subscribe to ``EnrollStatus`` signals; return an unsubscribe hook.

        The callback runs on the event loop thread.
        """


class FprintManager(Protocol):
    """Interface for the fingerprint service's manager object."""

    async def get_devices(self) -> list[str]:
        """Return the object paths of all published devices."""

    async def open_device(self, path: str) -> FprintDevice:
        """Return a handle for the device at ``path``."""


@dataclass
class DeviceLocator:
    """Selects the device the application operates on."""

    manager: FprintManager
    preferred_path: str | None = None

    async def find_device(self) -> Device:
        """Return the selected device with its static capabilities."""
        try:
            paths = await self.manager.get_devices()
            path = self._select(paths)
            handle = await self.manager.open_device(path)
            stages = normalize_stage_count(await handle.get_num_enroll_stages())
        except OperationError:
            raise
        except Exception as exc:
            error = classify_error(exc)
            if error.kind is ErrorKind.UNKNOWN:
                _logger.warning("Device lookup failed: %s", error.message)
                raise OperationError(ErrorKind.DEVICE_NOT_FOUND) from exc
            raise error from exc
        _logger.info("Using fingerprint device %s (stages=%s)", path, stages)
        return Device(path=path, num_enroll_stages=stages)

    def _select(self, paths: list[str]) -> str:
        if not paths:
            raise OperationError(ErrorKind.DEVICE_NOT_FOUND)
        if self.preferred_path is not None:
            if self.preferred_path not in paths:
                raise OperationError(ErrorKind.DEVICE_NOT_FOUND)
            return self.preferred_path
        if len(paths) > 1:
            _logger.info("Found %s devices, using the first one", len(paths))
        return paths[0]
