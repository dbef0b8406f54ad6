"""Domain models for multi-stage fingerprint enrollment."""

from dataclasses import dataclass, field
from enum import Enum

from fprint_enroll.domain.errors import OperationError
from fprint_enroll.domain.fingers import Finger


class EnrollResult(str, Enum):
    """Result strings carried by the service's ``EnrollStatus`` signal."""

    STAGE_PASSED = "enroll-stage-passed"
    RETRY_SCAN = "enroll-retry-scan"
    SWIPE_TOO_SHORT = "enroll-swipe-too-short"
    FINGER_NOT_CENTERED = "enroll-finger-not-centered"
    REMOVE_AND_RETRY = "enroll-remove-and-retry"
    COMPLETED = "enroll-completed"
    FAILED = "enroll-failed"
    DISCONNECTED = "enroll-disconnected"
    DATA_FULL = "enroll-data-full"
    TOO_FAST = "enroll-too-fast"
    DUPLICATE = "enroll-duplicate"
    CANCELLED = "enroll-cancelled"
    UNKNOWN_ERROR = "enroll-unknown-error"


class SignalKind(Enum):
    """How a status signal affects an enrollment attempt."""

    STAGE_PASSED = "stage-passed"
    RETRYABLE = "retryable"
    TERMINAL = "terminal"
    UNRECOGNIZED = "unrecognized"


class EnrollmentState(str, Enum):
    """Lifecycle of an enrollment attempt."""

    STARTING = "starting"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = {
    EnrollmentState.COMPLETED,
    EnrollmentState.FAILED,
    EnrollmentState.CANCELLED,
}

_RETRYABLE = {
    EnrollResult.RETRY_SCAN,
    EnrollResult.SWIPE_TOO_SHORT,
    EnrollResult.FINGER_NOT_CENTERED,
    EnrollResult.REMOVE_AND_RETRY,
}

_OUTCOMES = {
    EnrollResult.COMPLETED: EnrollmentState.COMPLETED,
    EnrollResult.CANCELLED: EnrollmentState.CANCELLED,
    EnrollResult.FAILED: EnrollmentState.FAILED,
    EnrollResult.DISCONNECTED: EnrollmentState.FAILED,
    EnrollResult.DATA_FULL: EnrollmentState.FAILED,
    EnrollResult.TOO_FAST: EnrollmentState.FAILED,
    EnrollResult.DUPLICATE: EnrollmentState.FAILED,
    EnrollResult.UNKNOWN_ERROR: EnrollmentState.FAILED,
}


@dataclass(frozen=True)
class EnrollSignal:
    """A status signal, keeping the raw string when it is not recognized."""

    raw: str
    status: EnrollResult | None

    @classmethod
    def parse(cls, raw: str) -> "EnrollSignal":
        """Parse a raw status string from the service."""
        try:
            status = EnrollResult(raw)
        except ValueError:
            status = None
        return cls(raw=raw, status=status)

    @property
    def kind(self) -> SignalKind:
        if self.status is None:
            return SignalKind.UNRECOGNIZED
        if self.status is EnrollResult.STAGE_PASSED:
            return SignalKind.STAGE_PASSED
        if self.status in _RETRYABLE:
            return SignalKind.RETRYABLE
        return SignalKind.TERMINAL

    @property
    def outcome(self) -> EnrollmentState | None:
        """Terminal state this signal leads to, if any."""
        if self.status is None:
            return None
        return _OUTCOMES.get(self.status)


@dataclass
class EnrollmentAttempt:
    """Bookkeeping for one in-flight enrollment."""

    username: str
    finger: Finger
    total_stages: int | None = None
    current_stage: int = 0
    state: EnrollmentState = EnrollmentState.STARTING

    def advance(self) -> int:
        """Record a passed stage, never exceeding the known total."""
        if self.total_stages is None or self.current_stage < self.total_stages:
            self.current_stage += 1
        return self.current_stage

    def finish(self, state: EnrollmentState) -> None:
        if not state.is_terminal:
            raise ValueError(f"{state.value} is not a terminal state")
        if self.state.is_terminal:
            raise RuntimeError(f"Enrollment already finished as {self.state.value}")
        self.state = state


@dataclass(frozen=True)
class EnrollStarted:
    """The service accepted the enrollment request."""

    total_stages: int | None


@dataclass(frozen=True)
class EnrollProgress:
    """A non-terminal status signal."""

    signal: EnrollSignal
    current_stage: int


@dataclass(frozen=True)
class EnrollDone:
    """The single terminal event of an enrollment attempt."""

    state: EnrollmentState
    status: str
    current_stage: int
    error: OperationError | None = field(default=None)

    @property
    def done(self) -> bool:
        return True


EnrollmentEvent = EnrollStarted | EnrollProgress | EnrollDone
