"""Enrollment state machine driving the service's multi-stage protocol."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from fprint_enroll.domain.devices import Device
from fprint_enroll.domain.enrollment import (
    EnrollDone,
    EnrollmentAttempt,
    EnrollmentEvent,
    EnrollmentState,
    EnrollProgress,
    EnrollResult,
    EnrollSignal,
    EnrollStarted,
    SignalKind,
)
from fprint_enroll.domain.errors import OperationError
from fprint_enroll.domain.fingers import Finger
from fprint_enroll.services.errors import call_classified
from fprint_enroll.services.sessions import Session, SessionManager

_logger = logging.getLogger(__name__)

_STOP = object()
_TASK_FINISHED = object()


@dataclass
class EnrollmentOrchestrator:
    """Runs one enrollment at a time and reports it as an ordered event stream."""

    session_manager: SessionManager
    attempt: EnrollmentAttempt | None = None
    _signals: asyncio.Queue | None = field(default=None, init=False)
    _stop_requested: bool = field(default=False, init=False)

    @property
    def active(self) -> bool:
        return self.attempt is not None and not self.attempt.state.is_terminal

    def stop(self) -> None:
        """Ask the running enrollment to stop; no-op when nothing runs."""
        if not self.active:
            return
        self._stop_requested = True
        if self._signals is not None:
            self._signals.put_nowait(_STOP)

    async def enroll(
        self,
        device: Device,
        username: str,
        finger: Finger,
        events: "asyncio.Queue[EnrollmentEvent]",
    ) -> EnrollmentAttempt:
        """Enroll ``finger`` for ``username``, publishing events to ``events``.

        Exactly one ``EnrollDone`` is published, after the device has been
        released. Bus failures end the attempt as failed and are carried by
        that event instead of being raised.
        """
        self._check_can_start(finger)
        attempt = EnrollmentAttempt(
            username=username,
            finger=finger,
            total_stages=device.num_enroll_stages,
        )
        self.attempt = attempt
        self._stop_requested = False
        signals: asyncio.Queue = asyncio.Queue()
        self._signals = signals
        error: OperationError | None = None
        try:
            async with self.session_manager.session(device, username) as session:
                state, status = await self._drive(session, attempt, signals, events)
        except OperationError as exc:
            _logger.warning("Enrollment of %s failed: %s", finger.finger_id, exc)
            error = exc
            state, status = EnrollmentState.FAILED, EnrollResult.FAILED.value
        except asyncio.CancelledError:
            attempt.finish(EnrollmentState.CANCELLED)
            events.put_nowait(
                EnrollDone(
                    state=EnrollmentState.CANCELLED,
                    status=EnrollResult.CANCELLED.value,
                    current_stage=attempt.current_stage,
                )
            )
            raise
        finally:
            self._signals = None

        attempt.finish(state)
        _logger.info(
            "Enrollment of %s for %r finished: %s",
            finger.finger_id,
            username,
            state.value,
        )
        await events.put(
            EnrollDone(
                state=state,
                status=status,
                current_stage=attempt.current_stage,
                error=error,
            )
        )
        return attempt

    async def stream(
        self, device: Device, username: str, finger: Finger
    ) -> AsyncIterator[EnrollmentEvent]:
        """Yield the events of one enrollment, ending with ``EnrollDone``."""
        self._check_can_start(finger)
        events: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(self.enroll(device, username, finger, events))
        task.add_done_callback(lambda _: events.put_nowait(_TASK_FINISHED))
        try:
            while True:
                event = await events.get()
                if event is _TASK_FINISHED:
                    task.result()
                    return
                yield event
                if isinstance(event, EnrollDone):
                    return
        finally:
            if not task.done():
                task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _drive(
        self,
        session: Session,
        attempt: EnrollmentAttempt,
        signals: asyncio.Queue,
        events: "asyncio.Queue[EnrollmentEvent]",
    ) -> tuple[EnrollmentState, str]:
        handle = session.handle
        unsubscribe = handle.watch_enroll_status(
            lambda status, done: signals.put_nowait((status, done))
        )
        started = False
        try:
            if self._stop_requested:
                return EnrollmentState.CANCELLED, EnrollResult.CANCELLED.value
            await call_classified(handle.enroll_start(attempt.finger.finger_id))
            started = True
            attempt.state = EnrollmentState.IN_PROGRESS
            await events.put(EnrollStarted(total_stages=attempt.total_stages))

            while True:
                item = await signals.get()
                if item is _STOP:
                    await self._stop_enrollment(session)
                    return EnrollmentState.CANCELLED, EnrollResult.CANCELLED.value
                raw, done = item
                signal = EnrollSignal.parse(raw)
                outcome = signal.outcome
                if outcome is None and done:
                    _logger.warning("Enrollment ended with unexpected status %r", raw)
                    outcome = EnrollmentState.FAILED
                if outcome is not None:
                    await self._stop_enrollment(session)
                    return outcome, signal.raw
                if signal.kind is SignalKind.STAGE_PASSED:
                    attempt.advance()
                elif signal.kind is SignalKind.UNRECOGNIZED:
                    _logger.debug("Unrecognized enroll status %r", raw)
                await events.put(
                    EnrollProgress(signal=signal, current_stage=attempt.current_stage)
                )
        except asyncio.CancelledError:
            if started:
                await self._stop_enrollment(session)
            raise
        finally:
            unsubscribe()

    async def _stop_enrollment(self, session: Session) -> None:
        try:
            await session.handle.enroll_stop()
        except Exception as exc:
            _logger.warning("Failed to stop enrollment on %s: %s", session.device.path, exc)

    def _check_can_start(self, finger: Finger) -> None:
        if self.active:
            raise RuntimeError("An enrollment is already in progress")
        if finger.finger_id is None:
            raise ValueError(f"{finger.name} cannot be enrolled")
