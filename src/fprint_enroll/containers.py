"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fprint_enroll.adapters.accounts_dbus import PydbusAccountsClient
from fprint_enroll.adapters.bus import SystemBusConnection
from fprint_enroll.adapters.fprint_dbus import PydbusFprintManager
from fprint_enroll.config import Settings
from fprint_enroll.domain.users import UserIdentity
from fprint_enroll.services.controller import EnrollController
from fprint_enroll.services.devices import DeviceLocator
from fprint_enroll.services.enrollment import EnrollmentOrchestrator
from fprint_enroll.services.registry import TemplateRegistry
from fprint_enroll.services.sessions import SessionManager
from fprint_enroll.services.users import UserDirectory


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    connection: SystemBusConnection
    device_locator: DeviceLocator
    session_manager: SessionManager
    enrollment_orchestrator: EnrollmentOrchestrator
    template_registry: TemplateRegistry
    user_directory: UserDirectory
    close_resources: Callable[[], Awaitable[None]]

    def create_controller(
        self, initial_user: UserIdentity | None = None
    ) -> EnrollController:
        """Create an application model bound to this container's services."""
        return EnrollController(
            connect=self.connection.connect,
            locator=self.device_locator,
            user_directory=self.user_directory,
            registry=self.template_registry,
            orchestrator=self.enrollment_orchestrator,
            initial_user=initial_user,
        )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    connection = SystemBusConnection()
    fprint_manager = PydbusFprintManager(
        connection=connection,
        service=resolved_settings.fprint_service,
        manager_path=resolved_settings.fprint_manager_path,
    )
    accounts_client = PydbusAccountsClient(
        connection=connection,
        service=resolved_settings.accounts_service,
        accounts_path=resolved_settings.accounts_path,
    )
    session_manager = SessionManager(fprint_manager)
    device_locator = DeviceLocator(
        manager=fprint_manager,
        preferred_path=resolved_settings.device_path,
    )
    user_directory = UserDirectory(
        client=accounts_client,
        concurrency=resolved_settings.user_fetch_concurrency,
    )

    async def close_resources() -> None:
        await connection.close()

    return AppContainer(
        settings=resolved_settings,
        connection=connection,
        device_locator=device_locator,
        session_manager=session_manager,
        enrollment_orchestrator=EnrollmentOrchestrator(session_manager),
        template_registry=TemplateRegistry(session_manager),
        user_directory=user_directory,
        close_resources=close_resources,
    )
