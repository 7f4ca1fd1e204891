"""
Chooser programs: command construction and process lifecycle.

A chooser reads newline-separated candidates on stdin and prints the selected
line on stdout. Each one runs in its own process group so that cancelling it
also takes down any helper processes it spawned.
"""

import asyncio
import logging
import os
import re
import shlex
import signal
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from .errors import ChooserDecodeFailed, ChooserInputWriteFailed, ChooserSpawnFailed
from .icons import IconMode

logger = logging.getLogger(__name__)

DEFAULTED_PLACEHOLDER = re.compile(r"\{(\w+):([^}]+)\}")
CUSTOM_PLACEHOLDERS = ("prompt", "placeholder", "password_flag")
PASSWORD_FLAG = "--password"


class ChooserKind(Enum):
    FUZZEL = "fuzzel"
    ROFI = "rofi"
    DMENU = "dmenu"
    WALKER = "walker"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ChooserCommand:
    """One invocation of a chooser: which program and how to present it."""

    kind: ChooserKind
    icon_mode: IconMode = IconMode.GLYPH
    prompt: Optional[str] = None
    placeholder: Optional[str] = None
    password: bool = False
    template: Optional[str] = None

    def argv(self) -> List[str]:
        """
        Build the argument vector.

        Raises:
            ChooserSpawnFailed: If a custom template is missing, empty or
                does not split into shell words
        """
        if self.kind is ChooserKind.FUZZEL:
            argv = ["fuzzel", "-d"]
            if self.icon_mode is IconMode.GLYPH:
                argv.append("-I")
            if self.placeholder:
                argv += ["--placeholder", self.placeholder]
            if self.password:
                argv.append("--password")
            return argv

        if self.kind is ChooserKind.ROFI:
            argv = ["rofi", "-m", "-1", "-dmenu"]
            if self.icon_mode is IconMode.SYMBOLIC:
                argv.append("-show-icons")
            if self.placeholder:
                argv += ["-theme-str", f'entry {{ placeholder: "{self.placeholder}"; }}']
            if self.password:
                argv.append("-password")
            return argv

        if self.kind is ChooserKind.DMENU:
            argv = ["dmenu"]
            if self.prompt:
                argv += ["-p", f"{self.prompt}: "]
            return argv

        if self.kind is ChooserKind.WALKER:
            argv = ["walker", "-d", "-k"]
            if self.placeholder:
                argv += ["-p", self.placeholder]
            if self.password:
                argv.append("-y")
            return argv

        if not self.template:
            raise ChooserSpawnFailed("No custom menu command provided")
        command = expand_template(self.template, self.values())
        try:
            argv = shlex.split(command)
        except ValueError as e:
            raise ChooserSpawnFailed(f"Cannot parse menu command {command!r}: {e}") from e
        if not argv:
            raise ChooserSpawnFailed(f"Custom menu command is empty: {self.template!r}")
        return argv

    def values(self) -> dict:
        values = {}
        if self.prompt:
            values["prompt"] = self.prompt
        if self.placeholder:
            values["placeholder"] = self.placeholder
        if self.password:
            values["password_flag"] = PASSWORD_FLAG
        return values


def expand_template(template: str, values: dict) -> str:
    """
    Substitute placeholders in a custom chooser command.

    ``{name}`` becomes the supplied value, or nothing when absent.
    ``{password_flag:default}`` always becomes ``default``. Other
    ``{name:default}`` forms are left intact.

    Args:
        template: Command template, e.g. ``"wofi -d -p '{prompt}' {password_flag:-P}"``
        values: Supplied placeholder values

    Returns:
        The expanded command string (not yet split)
    """
    command = template
    for name in CUSTOM_PLACEHOLDERS:
        command = command.replace(f"{{{name}}}", values.get(name, ""))

    def _defaulted(match: re.Match) -> str:
        if match.group(1) == "password_flag":
            return match.group(2)
        return match.group(0)

    return DEFAULTED_PLACEHOLDER.sub(_defaulted, command)


class ChooserRunner:
    """Runs one chooser at a time and can cancel it from another task."""

    def __init__(self, terminate_timeout: float = 5.0):
        self.terminate_timeout = terminate_timeout
        self.active: Optional[asyncio.subprocess.Process] = None
        self.interrupted = False
        self._cancelled = False

    async def run(self, command: ChooserCommand, input_text: Optional[str] = None) -> Optional[str]:
        """
        Spawn the chooser, feed it candidates and return the selected line.

        Args:
            command: Chooser invocation
            input_text: Newline-separated candidates, or None for a free-text prompt

        Returns:
            The trimmed first line of output, or None when the output is empty
            (dismissed, or cancelled through cancel())

        Raises:
            ChooserSpawnFailed: If the program could not be started
            ChooserInputWriteFailed: If the candidates could not be written
            ChooserDecodeFailed: If the output was not UTF-8
        """
        argv = command.argv()
        logger.debug(f"Spawning chooser: {argv}")
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise ChooserSpawnFailed(f"Failed to spawn menu command {argv[0]}: {e}") from e

        self.active = process
        self._cancelled = False
        try:
            if input_text:
                try:
                    process.stdin.write(input_text.encode("utf-8"))
                    await process.stdin.drain()
                except (BrokenPipeError, ConnectionResetError) as e:
                    if not self._cancelled:
                        await self._terminate(process)
                        raise ChooserInputWriteFailed(f"Failed to write menu input: {e}") from e
            process.stdin.close()

            raw = await process.stdout.read()
            await process.wait()
        except asyncio.CancelledError:
            await self._terminate(process)
            raise
        finally:
            self.active = None

        if self._cancelled:
            logger.debug(f"Chooser {argv[0]} was cancelled")
            return None

        try:
            output = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ChooserDecodeFailed(f"Menu output is not valid UTF-8: {e}") from e

        for line in output.strip().splitlines():
            if line.strip():
                return line.strip()
        return None

    async def cancel(self) -> bool:
        """
        SIGTERM the active chooser's process group and reap it.

        Returns:
            True if a chooser was running
        """
        process = self.active
        if process is None:
            return False
        self._cancelled = True
        await self._terminate(process)
        return True

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            self._signal_group(process.pid, signal.SIGTERM)
            try:
                await asyncio.wait_for(process.wait(), self.terminate_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Chooser {process.pid} ignored SIGTERM; killing it")
                self._signal_group(process.pid, signal.SIGKILL)
                await process.wait()

    @staticmethod
    def _signal_group(pgid: int, sig: int) -> None:
        try:
            os.killpg(pgid, sig)
        except ProcessLookupError:
            logger.debug(f"Process group {pgid} already gone")

    def forward_signal(self, signum: int = signal.SIGTERM) -> bool:
        """
        Forward a host termination signal to the active chooser.

        Returns:
            True if a chooser was signalled
        """
        self.interrupted = True
        process = self.active
        if process is None or process.returncode is not None:
            return False
        logger.info(f"Forwarding signal {signum} to chooser group {process.pid}")
        self._cancelled = True
        self._signal_group(process.pid, signal.SIGTERM)
        return True

    def install_signal_forwarding(self, loop: asyncio.AbstractEventLoop,
                                  fallback: Optional[Callable[[], None]] = None) -> None:
        """
        Route SIGTERM and SIGINT aimed at the host to the active chooser.

        Args:
            loop: Running event loop
            fallback: Called when a signal arrives and no chooser is running
        """
        def _handler(signum: int) -> None:
            if not self.forward_signal(signum) and fallback is not None:
                fallback()

        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(signum, _handler, signum)
