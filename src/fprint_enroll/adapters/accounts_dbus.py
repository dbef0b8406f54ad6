"""Accounts service adapter implemented with pydbus."""

from dataclasses import dataclass

from fprint_enroll.adapters.bus import SystemBusConnection

USER_INTERFACE = "org.freedesktop.Accounts.User"


@dataclass
class PydbusAccountsClient:
    """Reads cached user accounts from the accounts service."""

    connection: SystemBusConnection
    service: str
    accounts_path: str

    async def list_cached_users(self) -> list[str]:
        accounts = await self.connection.get(self.service, self.accounts_path)
        return list(await self.connection.call(accounts.ListCachedUsers))

    async def get_user(self, path: str) -> dict[str, object]:
        user = await self.connection.get(self.service, path)
        return dict(await self.connection.get_all_properties(user, USER_INTERFACE))
