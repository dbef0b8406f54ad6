"""Domain models for fingerprint devices and enrolled templates."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Device:
    """A sensor endpoint published by the fingerprint service."""

    path: str
    num_enroll_stages: int | None = None


@dataclass(frozen=True)
class TemplateRecord:
    """One enrolled finger slot for one username on one device."""

    username: str
    finger_id: str


def normalize_stage_count(raw: int | None) -> int | None:
    """Map the service's stage count to ``None`` when it is not reported."""
    if raw is None or raw < 1:
        return None
    return int(raw)
