"""Finger slots that templates can be enrolled against."""

from enum import Enum


class Finger(Enum):
    """Selectable finger slots, plus the "all prints" pseudo-selection."""

    RIGHT_THUMB = ("right-thumb", "Right thumb")
    RIGHT_INDEX = ("right-index-finger", "Right index finger")
    RIGHT_MIDDLE = ("right-middle-finger", "Right middle finger")
    RIGHT_RING = ("right-ring-finger", "Right ring finger")
    RIGHT_LITTLE = ("right-little-finger", "Right little finger")
    LEFT_THUMB = ("left-thumb", "Left thumb")
    LEFT_INDEX = ("left-index-finger", "Left index finger")
    LEFT_MIDDLE = ("left-middle-finger", "Left middle finger")
    LEFT_RING = ("left-ring-finger", "Left ring finger")
    LEFT_LITTLE = ("left-little-finger", "Left little finger")
    ALL_PRINTS = (None, "All of the user's prints")

    @property
    def finger_id(self) -> str | None:
        """Wire identifier used by the fingerprint service."""
        return self.value[0]

    @property
    def display_name(self) -> str:
        return self.value[1]

    @classmethod
    def default(cls) -> "Finger":
        return cls.RIGHT_INDEX

    @classmethod
    def from_id(cls, finger_id: str) -> "Finger":
        """Return the finger for a wire identifier."""
        for finger in cls:
            if finger.finger_id is not None and finger.finger_id == finger_id:
                return finger
        raise ValueError(f"Unknown finger id: {finger_id}")


FINGER_IDS: tuple[str, ...] = tuple(
    finger.finger_id for finger in Finger if finger.finger_id is not None
)
