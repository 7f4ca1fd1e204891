"""
Application wiring: builds the menu and notification sink from configuration
and runs controller sessions until the user quits.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .chooser import ChooserKind, ChooserRunner
from .controller import SessionController
from .daemon.iwd import IwdSession
from .daemon.session import DaemonSession
from .errors import IwmenuError
from .icons import IconMode, Icons
from .menu import Menu
from .model import Mode
from .notification import FreedesktopNotifier, NotificationSink

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_RESETS = 3

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


class TooManyResetsError(IwmenuError):
    """Sessions kept requesting a reset without ever reaching a menu."""


async def run_sessions(connect: Callable[[], Awaitable[DaemonSession]], menu: Menu, notifier,
                       max_resets: int = MAX_CONSECUTIVE_RESETS,
                       **controller_options) -> Optional[Mode]:
    """
    Run controller sessions, rebuilding everything after each reset.

    Args:
        connect: Factory returning a fresh daemon session
        menu: Menu shared by every session
        notifier: Notification sink shared by every session
        max_resets: Consecutive resets tolerated before giving up
        controller_options: Passed through to SessionController

    Returns:
        The mode the last session ended in

    Raises:
        TooManyResetsError: If more than `max_resets` sessions in a row reset
            before completing a tick
        NoAdapterError, NoDeviceError, DaemonCallFailed: Fatal session errors
    """
    resets = 0
    while True:
        session = await connect()
        controller = None
        try:
            controller = await SessionController.create(session, menu, notifier, **controller_options)
            await controller.run()
        finally:
            if controller is not None:
                await controller.close()
            await session.close()

        if not controller.reset_requested:
            return controller.adapter.mode

        if controller.completed_ticks:
            resets = 0
        resets += 1
        if resets > max_resets:
            raise TooManyResetsError(f"Session reset {resets} times in a row")
        target = controller.reset_mode.value if controller.reset_mode else "unknown"
        logger.info(f"Restarting session (target mode: {target})")


def build_menu(config: dict, runner: ChooserRunner, notifier=None) -> Menu:
    """
    Build the menu from merged configuration.

    Raises:
        ValueError: If the chooser or icon mode is unknown, or a custom
            chooser has no command
    """
    kind = ChooserKind(config["menu"])
    template = config.get("menu_command")
    if kind is ChooserKind.CUSTOM and not template:
        raise ValueError("--menu-command is required with --menu custom")
    return Menu(
        kind=kind,
        icons=Icons(config.get("icons_file")),
        runner=runner,
        icon_mode=IconMode(config.get("icon") or IconMode.GLYPH.value),
        spaces=int(config.get("spaces", 1)),
        template=template,
        notifier=notifier,
    )


async def run_app(config: dict) -> int:
    """
    Run iwmenu until the user quits.

    Returns:
        EXIT_OK, or EXIT_INTERRUPTED if a termination signal ended the run

    Raises:
        IwmenuError: On fatal daemon errors
    """
    runner = ChooserRunner()
    notifier = FreedesktopNotifier()
    sink = NotificationSink(notifier)
    menu = build_menu(config, runner, sink)
    sink.icons = menu.icons

    main_task = asyncio.current_task()
    runner.install_signal_forwarding(asyncio.get_running_loop(), fallback=main_task.cancel)
    sink.start()
    try:
        await run_sessions(IwdSession.connect, menu, sink)
    except asyncio.CancelledError:
        logger.warning("Interrupted")
        return EXIT_INTERRUPTED
    finally:
        await sink.stop()
        await notifier.aclose()

    return EXIT_INTERRUPTED if runner.interrupted else EXIT_OK
