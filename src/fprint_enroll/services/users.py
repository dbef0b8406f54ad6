"""Enumeration of the user accounts that prints can be enrolled for."""

import asyncio
import logging
import os
import pwd
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from fprint_enroll.domain.users import AccountRecord, UserIdentity

_logger = logging.getLogger(__name__)

DEFAULT_FETCH_CONCURRENCY = 10


class AccountsClient(Protocol):
    """Interface for the accounts service."""

    async def list_cached_users(self) -> list[str]:
        """Return the object paths of known user accounts."""

    async def get_user(self, path: str) -> dict[str, object]:
        """Return the raw properties of the account at ``path``."""


def current_os_user() -> UserIdentity | None:
    """Return the account running this process, if it can be resolved."""
    try:
        entry = pwd.getpwuid(os.getuid())
    except KeyError:
        return None
    return UserIdentity(
        username=entry.pw_name,
        display_name=entry.pw_gecos.split(",", 1)[0],
    )


@dataclass
class UserDirectory:
    """Fetches user identities with a bounded number of lookups in flight."""

    client: AccountsClient
    concurrency: int = DEFAULT_FETCH_CONCURRENCY
    current_user: Callable[[], UserIdentity | None] = field(default=current_os_user)

    async def list_users(self) -> list[UserIdentity]:
        """Return users in arrival order, falling back to the current user."""
        users = await self._fetch_all()
        if not users:
            fallback = self.current_user()
            if fallback is not None:
                _logger.info("No accounts listed, using %r", fallback.username)
                users.append(fallback)
        return users

    async def _fetch_all(self) -> list[UserIdentity]:
        try:
            paths = await self.client.list_cached_users()
        except Exception as exc:
            _logger.warning("Failed to list cached users: %s", exc)
            return []

        semaphore = asyncio.Semaphore(max(1, self.concurrency))

        async def fetch(path: str) -> UserIdentity:
            async with semaphore:
                raw = await self.client.get_user(path)
            return AccountRecord.model_validate(raw).to_identity()

        users: list[UserIdentity] = []
        for next_done in asyncio.as_completed([fetch(path) for path in paths]):
            try:
                users.append(await next_done)
            except Exception as exc:
                _logger.warning("Failed to fetch user: %s", exc)
        return users
