"""Claim and release lifecycle for fingerprint devices."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from fprint_enroll.domain.devices import Device
from fprint_enroll.domain.errors import ErrorKind, OperationError
from fprint_enroll.services.devices import FprintDevice, FprintManager
from fprint_enroll.services.errors import call_classified

T = TypeVar("T")

_logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNCLAIMED = "unclaimed"
    CLAIMED = "claimed"
    RELEASED = "released"


@dataclass
class Session:
    """Exclusive ownership of a device by this process."""

    device: Device
    username: str
    _handle: FprintDevice
    state: SessionState = SessionState.UNCLAIMED

    @property
    def handle(self) -> FprintDevice:
        """Device handle; only usable while the session is claimed."""
        if self.state is not SessionState.CLAIMED:
            raise RuntimeError(f"Session for {self.device.path} is {self.state.value}")
        return self._handle


@dataclass
class SessionManager:
    """Owns device claims and guarantees their release."""

    manager: FprintManager
    _claimed: set[str] = field(default_factory=set)

    def is_claimed(self, device: Device) -> bool:
        return device.path in self._claimed

    async def claim(self, device: Device, username: str = "") -> Session:
        """Claim ``device`` for ``username``; raise ``OperationError`` on failure."""
        if device.path in self._claimed:
            raise OperationError(ErrorKind.ALREADY_IN_USE)
        self._claimed.add(device.path)
        try:
            handle = await call_classified(self.manager.open_device(device.path))
            claiming = asyncio.ensure_future(call_classified(handle.claim(username)))
            try:
                await asyncio.shield(claiming)
            except asyncio.CancelledError:
                await self._release_abandoned_claim(device, handle, claiming)
                raise
        except BaseException:
            self._claimed.discard(device.path)
            raise
        _logger.info("Claimed %s for %r", device.path, username)
        return Session(
            device=device,
            username=username,
            _handle=handle,
            state=SessionState.CLAIMED,
        )

    async def _release_abandoned_claim(
        self, device: Device, handle: FprintDevice, claiming: asyncio.Future
    ) -> None:
        # The bus call keeps running after cancellation; undo it once it lands.
        try:
            await claiming
        except Exception as exc:
            _logger.debug("Cancelled claim of %s did not succeed: %s", device.path, exc)
            return
        try:
            await handle.release()
        except Exception as exc:
            _logger.warning("Failed to release %s: %s", device.path, exc)
            return
        _logger.info("Released %s after a cancelled claim", device.path)

    async def release(self, session: Session) -> None:
        """Release a session; failures are logged, never raised."""
        if session.state is not SessionState.CLAIMED:
            return
        handle = session.handle
        session.state = SessionState.RELEASED
        self._claimed.discard(session.device.path)
        try:
            await handle.release()
        except Exception as exc:
            _logger.warning("Failed to release %s: %s", session.device.path, exc)
            return
        _logger.info("Released %s", session.device.path)

    @asynccontextmanager
    async def session(self, device: Device, username: str = "") -> AsyncIterator[Session]:
        """Scoped claim: the session is released on every exit path."""
        claimed = await self.claim(device, username)
        try:
            yield claimed
        finally:
            await self.release(claimed)

    async def with_session(
        self,
        device: Device,
        body: Callable[[Session], Awaitable[T]],
        username: str = "",
    ) -> T:
        """Claim ``device``, run ``body`` and release before returning its result."""
        async with self.session(device, username) as claimed:
            return await body(claimed)
