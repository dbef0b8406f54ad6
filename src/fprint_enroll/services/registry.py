"""Operations on the templates enrolled with the fingerprint service."""

import logging
from dataclasses import dataclass

from fprint_enroll.domain.devices import Device, TemplateRecord
from fprint_enroll.domain.errors import OperationError
from fprint_enroll.services.errors import classify_error, is_no_enrolled_prints
from fprint_enroll.services.sessions import Session, SessionManager

_logger = logging.getLogger(__name__)

LIST_CONTEXT = "Failed to list fingers"
DELETE_CONTEXT = "Failed to delete fingerprint"
CLEAR_CONTEXT = "Failed to clear device"


@dataclass
class TemplateRegistry:
    """List, delete and clear enrolled templates, each under its own claim."""

    session_manager: SessionManager

    async def list_fingers(self, device: Device, username: str) -> list[str]:
        """Return the enrolled finger ids for ``username``."""
        try:
            async with self.session_manager.session(device, username) as session:
                return await _list(session, username)
        except OperationError as exc:
            raise exc.with_context(LIST_CONTEXT) from exc

    async def list_records(self, device: Device, username: str) -> list[TemplateRecord]:
        fingers = await self.list_fingers(device, username)
        return [TemplateRecord(username=username, finger_id=f) for f in fingers]

    async def delete_one(self, device: Device, username: str, finger_id: str) -> None:
        """Delete one enrolled finger; an absent finger is not an error."""
        try:
            async with self.session_manager.session(device, username) as session:
                await _delete_one(session, username, finger_id)
        except OperationError as exc:
            raise exc.with_context(DELETE_CONTEXT) from exc

    async def delete_all(self, device: Device, username: str) -> None:
        """Delete every enrolled finger of ``username``."""
        try:
            async with self.session_manager.session(device, username) as session:
                await _delete_all(session, username)
        except OperationError as exc:
            raise exc.with_context(DELETE_CONTEXT) from exc

    async def clear_all_users(self, device: Device, usernames: list[str]) -> None:
        """Delete the prints of every user under a single claim.

        Stops at the first failure; deletions already done are kept.
        """
        try:
            async with self.session_manager.session(device) as session:
                for username in usernames:
                    await _delete_all(session, username)
        except OperationError as exc:
            raise exc.with_context(CLEAR_CONTEXT) from exc
        _logger.info("Cleared prints of %s users", len(usernames))


async def _list(session: Session, username: str) -> list[str]:
    try:
        fingers = await session.handle.list_enrolled_fingers(username)
    except Exception as exc:
        if is_no_enrolled_prints(exc):
            return []
        raise classify_error(exc) from exc
    return [str(finger) for finger in fingers]


async def _delete_one(session: Session, username: str, finger_id: str) -> None:
    try:
        await session.handle.delete_enrolled_finger(finger_id)
    except Exception as exc:
        if is_no_enrolled_prints(exc):
            _logger.info("%r has no %s enrolled", username, finger_id)
            return
        raise classify_error(exc) from exc
    _logger.info("Deleted %s for %r", finger_id, username)


async def _delete_all(session: Session, username: str) -> None:
    try:
        await session.handle.delete_enrolled_fingers(username)
    except Exception as exc:
        if is_no_enrolled_prints(exc):
            return
        raise classify_error(exc) from exc
    _logger.info("Deleted all prints of %r", username)
