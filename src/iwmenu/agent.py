"""
Agent bridge between the daemon's passphrase requests and the controller.

The daemon calls the agent while a connect call is outstanding and waits for
the answer. The controller answers by posting a passphrase or a cancel into
unbounded queues; the first message to reach a waiting request wins.
"""

import asyncio
import logging
from typing import Optional

from .errors import ConnectionAborted, PassphraseChannelClosed

logger = logging.getLogger(__name__)

_CLOSED = object()


class AgentBridge:
    """Holds the pending flag and the passphrase / cancel channels."""

    def __init__(self):
        self.pending = False
        self.requested_network: Optional[str] = None
        self._passphrases: asyncio.Queue = asyncio.Queue()
        self._cancels: asyncio.Queue = asyncio.Queue()
        self._request_event = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def request_passphrase(self, network_path: str) -> str:
        """
        Serve one passphrase request from the daemon.

        Args:
            network_path: Object path of the network being joined

        Returns:
            The passphrase posted by the controller

        Raises:
            ConnectionAborted: If a cancel message arrived first
            PassphraseChannelClosed: If the bridge was closed
        """
        if self._closed:
            raise PassphraseChannelClosed("Agent bridge is closed")

        self.pending = True
        self.requested_network = network_path
        self._request_event.set()
        logger.info(f"Passphrase requested for {network_path}")

        get_passphrase = asyncio.ensure_future(self._passphrases.get())
        get_cancel = asyncio.ensure_future(self._cancels.get())
        try:
            done, waiting = await asyncio.wait(
                {get_passphrase, get_cancel},
                return_when=asyncio.FIRST_COMPLETED)
            for task in waiting:
                task.cancel()

            # A passphrase wins a tie; the loser is dropped
            if get_passphrase in done:
                passphrase = get_passphrase.result()
                if passphrase is _CLOSED:
                    raise PassphraseChannelClosed("Agent bridge is closed")
                return passphrase

            if get_cancel.result() is _CLOSED:
                raise PassphraseChannelClosed("Agent bridge is closed")
            logger.info(f"Passphrase request for {network_path} cancelled")
            raise ConnectionAborted("request_passphrase", "Operation cancelled")
        finally:
            get_passphrase.cancel()
            get_cancel.cancel()
            self.pending = False
            self.requested_network = None
            self._request_event.clear()

    def send_passphrase(self, passphrase: str) -> None:
        if self._closed:
            raise PassphraseChannelClosed("Agent bridge is closed")
        self._passphrases.put_nowait(passphrase)

    def cancel(self) -> None:
        if self._closed:
            raise PassphraseChannelClosed("Agent bridge is closed")
        self._cancels.put_nowait(None)

    def drain(self) -> int:
        """
        Drop answers nobody asked for.

        Called before each connect attempt so an answer left over from an
        earlier attempt cannot satisfy a later request.

        Returns:
            Number of dropped messages
        """
        dropped = 0
        for queue in (self._passphrases, self._cancels):
            while not queue.empty():
                queue.get_nowait()
                dropped += 1
        if dropped:
            logger.debug(f"Dropped {dropped} stale agent message(s)")
        return dropped

    async def wait_for_request(self) -> Optional[str]:
        """Block until the daemon asks for a passphrase; return the network path."""
        await self._request_event.wait()
        return self.requested_network

    def close(self) -> None:
        """Fail any waiting request and refuse new ones."""
        if self._closed:
            return
        self._closed = True
        self._passphrases.put_nowait(_CLOSED)
