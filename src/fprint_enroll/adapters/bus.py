"""System bus connection shared by the bus adapters."""

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from gi.repository import Gio, GLib
from pydbus import SystemBus

from fprint_enroll.domain.errors import BusError

T = TypeVar("T")

_logger = logging.getLogger(__name__)

PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"


def translate_error(exc: GLib.Error) -> BusError:
    """Convert a GLib error into a ``BusError`` carrying the remote error name."""
    name = Gio.DBusError.get_remote_error(exc)
    message = exc.message
    prefix = f"GDBus.Error:{name}: "
    if name is not None and message.startswith(prefix):
        message = message[len(prefix) :]
    return BusError(name, message)


@dataclass
class SystemBusConnection:
    """Lazily opened system bus with a GLib loop delivering its signals.

    Proxy calls block, so they run in worker threads; signal callbacks are
    handed back to the event loop that subscribed.
    """

    _bus: Any = field(default=None, init=False)
    _main_loop: GLib.MainLoop | None = field(default=None, init=False)
    _thread: threading.Thread | None = field(default=None, init=False)

    @property
    def connected(self) -> bool:
        return self._bus is not None

    async def connect(self) -> "SystemBusConnection":
        """Open the bus; repeated calls reuse the first connection."""
        if self._bus is None:
            self._bus = await self.call(SystemBus)
            self._start_dispatch()
            _logger.info("Connected to the system bus")
        return self

    async def get(self, service: str, path: str) -> Any:
        """Return a proxy for the object at ``path`` owned by ``service``."""
        await self.connect()
        return await self.call(self._bus.get, service, path)

    async def call(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking bus call in a worker thread."""
        try:
            return await asyncio.to_thread(func, *args)
        except GLib.Error as exc:
            raise translate_error(exc) from exc

    async def get_property(self, proxy: Any, interface: str, name: str) -> Any:
        return await self.call(proxy[PROPERTIES_INTERFACE].Get, interface, name)

    async def get_all_properties(self, proxy: Any, interface: str) -> dict[str, Any]:
        return await self.call(proxy[PROPERTIES_INTERFACE].GetAll, interface)

    def subscribe(
        self, proxy: Any, signal_name: str, callback: Callable[..., None]
    ) -> Callable[[], None]:
        """Connect ``callback`` to a signal of ``proxy``; return the disconnect hook."""
        loop = asyncio.get_running_loop()

        def forward(*args: Any) -> None:
            loop.call_soon_threadsafe(callback, *args)

        subscription = getattr(proxy, signal_name).connect(forward)
        return subscription.disconnect

    async def close(self) -> None:
        """Stop signal dispatch; proxies obtained earlier become unusable."""
        if self._main_loop is not None:
            self._main_loop.quit()
        if self._thread is not None:
            await asyncio.to_thread(self._thread.join, 1.0)
        self._main_loop = None
        self._thread = None
        self._bus = None

    def _start_dispatch(self) -> None:
        self._main_loop = GLib.MainLoop()
        self._thread = threading.Thread(
            target=self._main_loop.run,
            name="glib-dispatch",
            daemon=True,
        )
        self._thread.start()
