"""Command line interface for managing enrolled fingerprints."""

import argparse
import asyncio
import signal
import sys
from collections.abc import Callable, Sequence

from fprint_enroll.app_logging import configure_logging
from fprint_enroll.config import Settings, parse_log_level
from fprint_enroll.containers import AppContainer, build_container
from fprint_enroll.domain.enrollment import (
    EnrollDone,
    EnrollmentState,
    EnrollProgress,
    EnrollStarted,
)
from fprint_enroll.domain.errors import OperationError
from fprint_enroll.domain.fingers import FINGER_IDS, Finger
from fprint_enroll.services.controller import enroll_status_text


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fprint-enroll",
        description="Enroll, list and delete fingerprints through fprintd.",
    )
    parser.add_argument(
        "--device",
        default=None,
        help="Object path of the device to use (defaults to the first one found).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level, overriding FPRINT_ENROLL_LOG_LEVEL.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("devices", help="Show the fingerprint device in use.")
    commands.add_parser("users", help="List the users prints can be enrolled for.")

    list_parser = commands.add_parser("list", help="List the enrolled fingers of a user.")
    list_parser.add_argument("user")

    enroll_parser = commands.add_parser("enroll", help="Enroll a finger.")
    enroll_parser.add_argument("user")
    enroll_parser.add_argument("finger", choices=FINGER_IDS)

    delete_parser = commands.add_parser(
        "delete", help="Delete one finger, or every finger when none is given."
    )
    delete_parser.add_argument("user")
    delete_parser.add_argument("finger", nargs="?", choices=FINGER_IDS)

    clear_parser = commands.add_parser(
        "clear", help="Delete the prints of every listed user."
    )
    clear_parser.add_argument("users", nargs="+", metavar="user")
    return parser


def main(
    argv: Sequence[str] | None = None,
    container_factory: Callable[[Settings], AppContainer] = build_container,
) -> int:
    """Run one command and return the process exit code."""
    args = build_parser().parse_args(argv)
    settings = Settings()
    if args.device is not None:
        settings = settings.model_copy(update={"device_path": args.device})
    configure_logging(parse_log_level(args.log_level or settings.log_level))
    container = container_factory(settings)
    try:
        return asyncio.run(_run(args, container))
    except OperationError as exc:
        print(exc.localized_message(), file=sys.stderr)
        return 1


async def _run(args: argparse.Namespace, container: AppContainer) -> int:
    try:
        return await _COMMANDS[args.command](args, container)
    finally:
        await container.close_resources()


async def _show_device(args: argparse.Namespace, container: AppContainer) -> int:
    device = await container.device_locator.find_device()
    stages = device.num_enroll_stages
    print(f"{device.path}\tstages: {stages if stages is not None else 'unknown'}")
    return 0


async def _show_users(args: argparse.Namespace, container: AppContainer) -> int:
    for user in await container.user_directory.list_users():
        print(f"{user.username}\t{user.display_name}")
    return 0


async def _list_fingers(args: argparse.Namespace, container: AppContainer) -> int:
    device = await container.device_locator.find_device()
    fingers = await container.template_registry.list_fingers(device, args.user)
    if not fingers:
        print(f"No fingers enrolled for {args.user}.")
    for finger_id in fingers:
        try:
            print(f"{finger_id}\t{Finger.from_id(finger_id).display_name}")
        except ValueError:
            print(finger_id)
    return 0


async def _enroll(args: argparse.Namespace, container: AppContainer) -> int:
    device = await container.device_locator.find_device()
    orchestrator = container.enrollment_orchestrator
    finger = Finger.from_id(args.finger)
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, orchestrator.stop)
    state = EnrollmentState.FAILED
    try:
        async for event in orchestrator.stream(device, args.user, finger):
            if isinstance(event, EnrollStarted):
                total = event.total_stages
                print(
                    f"Enrolling {finger.display_name} for {args.user}"
                    + (f" ({total} stages)" if total is not None else "")
                )
            elif isinstance(event, EnrollProgress):
                print(
                    f"[{_progress(event.current_stage, device.num_enroll_stages)}] "
                    f"{enroll_status_text(event.signal.raw)}"
                )
            elif isinstance(event, EnrollDone):
                if event.error is not None:
                    raise event.error
                state = event.state
                print(enroll_status_text(event.status))
    finally:
        loop.remove_signal_handler(signal.SIGINT)
    return 0 if state is EnrollmentState.COMPLETED else 1


async def _delete(args: argparse.Namespace, container: AppContainer) -> int:
    device = await container.device_locator.find_device()
    registry = container.template_registry
    if args.finger is None:
        await registry.delete_all(device, args.user)
        print(f"Deleted all fingers of {args.user}.")
    else:
        await registry.delete_one(device, args.user, args.finger)
        print(f"Deleted {args.finger} of {args.user}.")
    return 0


async def _clear(args: argparse.Namespace, container: AppContainer) -> int:
    device = await container.device_locator.find_device()
    await container.template_registry.clear_all_users(device, args.users)
    print("Device cleared.")
    return 0


def _progress(current: int, total: int | None) -> str:
    if total is None:
        return str(current)
    return f"{current}/{total}"


_COMMANDS = {
    "devices": _show_device,
    "users": _show_users,
    "list": _list_fingers,
    "enroll": _enroll,
    "delete": _delete,
    "clear": _clear,
}


if __name__ == "__main__":
    sys.exit(main())
