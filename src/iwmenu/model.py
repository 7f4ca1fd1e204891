"""
In-memory projection of the daemon's adapter, device, station and access
point state.

The model never writes to the daemon on its own; `Adapter.refresh()` is the
single entry point that reconciles it. Commands issued on behalf of the user
(connect, scan, start AP, ...) go through the same objects so that the
controller has one place to call.
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .daemon.session import (
    DaemonSession,
    KnownNetworkHandle,
    NetworkHandle,
    StationHandle,
)
from .errors import (
    DaemonCallFailed,
    InvalidApSettingsError,
    InvalidModeError,
    NoAccessPointError,
    NoStationError,
)
from .i18n import t
from .notification import NEVER_EXPIRE
from .presentation import SECURE_NETWORK_TYPES

logger = logging.getLogger(__name__)

SCAN_POLL_INTERVAL = 0.5
SSID_MAX_LENGTH = 32
PSK_MIN_LENGTH = 8
PSK_MAX_LENGTH = 63


class Mode(Enum):
    STATION = "station"
    AP = "ap"
    UNKNOWN = "unknown"

    @classmethod
    def from_daemon(cls, value: Optional[str]) -> "Mode":
        for mode in (cls.STATION, cls.AP):
            if value == mode.value:
                return mode
        return cls.UNKNOWN


class KnownNetwork:
    """Credential record stored by the daemon."""

    def __init__(self, handle: KnownNetworkHandle, name: str, network_type: str,
                 autoconnect: bool, hidden: bool = False,
                 last_connected: Optional[str] = None):
        self.handle = handle
        self.name = name
        self.network_type = network_type
        self.autoconnect = autoconnect
        self.hidden = hidden
        self.last_connected = last_connected

    @classmethod
    async def load(cls, handle: KnownNetworkHandle) -> "KnownNetwork":
        name, network_type, autoconnect, hidden, last_connected = await asyncio.gather(
            handle.name(),
            handle.network_type(),
            handle.autoconnect(),
            handle.hidden(),
            handle.last_connected_time(),
        )
        return cls(handle, name, network_type, autoconnect, hidden, last_connected)

    async def toggle_autoconnect(self) -> bool:
        """
        Flip the autoconnect flag on the daemon.

        Returns:
            The new autoconnect value
        """
        enabled = not self.autoconnect
        await self.handle.set_autoconnect(enabled)
        self.autoconnect = enabled
        logger.info(f"Autoconnect for {self.name} set to {enabled}")
        return enabled

    async def forget(self) -> None:
        await self.handle.forget()
        logger.info(f"Forgot known network {self.name}")

    def __repr__(self) -> str:
        return f"KnownNetwork(name={self.name!r}, type={self.network_type!r}, autoconnect={self.autoconnect})"


class Network:
    """A network discovered by the last scan."""

    def __init__(self, handle: NetworkHandle, name: str, network_type: str,
                 connected: bool = False, known_network: Optional[KnownNetwork] = None):
        self.handle = handle
        self.name = name
        self.network_type = network_type
        self.connected = connected
        self.known_network = known_network

    @classmethod
    async def load(cls, handle: NetworkHandle) -> "Network":
        name, network_type, connected, known_handle = await asyncio.gather(
            handle.name(),
            handle.network_type(),
            handle.connected(),
            handle.known_network(),
        )
        known = await KnownNetwork.load(known_handle) if known_handle is not None else None
        return cls(handle, name, network_type, connected, known)

    @property
    def secure(self) -> bool:
        return self.network_type in SECURE_NETWORK_TYPES

    async def connect(self) -> None:
        """
        Ask the daemon to join this network.

        Raises:
            ConnectionAborted: If the passphrase request was cancelled
            DaemonCallFailed: On any other failure
        """
        logger.info(f"Connecting to {self.name}")
        await self.handle.connect()

    def __repr__(self) -> str:
        return (f"Network(name={self.name!r}, type={self.network_type!r}, "
                f"connected={self.connected}, known={self.known_network is not None})")


@dataclass
class StationView:
    """Copy of the station state taken under the device lock."""
    state: str
    scanning: bool
    connected_network: Optional[Network]
    known_networks: List[Tuple[Network, int]] = field(default_factory=list)
    new_networks: List[Tuple[Network, int]] = field(default_factory=list)


class Station:
    """
    Station (client mode) state.

    Args:
        session: Daemon session
        notifier: Notification sink for scan progress messages
        scan_complete: Queue receiving one item whenever a scan started from
            here has finished
    """

    def __init__(self, session: DaemonSession, notifier=None,
                 scan_complete: Optional[asyncio.Queue] = None,
                 poll_interval: Optional[float] = None):
        self.session = session
        self.notifier = notifier
        self.scan_complete = scan_complete
        self.poll_interval = SCAN_POLL_INTERVAL if poll_interval is None else poll_interval

        self.state = "disconnected"
        self.scanning = False
        self.connected_network: Optional[Network] = None
        self.known_networks: List[Tuple[Network, int]] = []
        self.new_networks: List[Tuple[Network, int]] = []
        self.discovered_count = 0
        self.diagnostic: Optional[Dict[str, str]] = None
        self._scan_watcher: Optional[asyncio.Task] = None

    async def _handle(self) -> StationHandle:
        handle = await self.session.station()
        if handle is None:
            raise NoStationError("No station available")
        return handle

    @property
    def watching_scan(self) -> bool:
        return self._scan_watcher is not None and not self._scan_watcher.done()

    async def refresh(self, wait_for_scan: bool = True) -> None:
        """
        Re-read state, connected network and discovered networks.

        Args:
            wait_for_scan: Poll until a running scan finishes before reading
                the network list

        Raises:
            NoStationError: If the daemon no longer exposes a station
            DaemonCallFailed: If a daemon read fails
        """
        handle = await self._handle()

        self.scanning = await handle.is_scanning()
        if wait_for_scan:
            while self.scanning:
                await asyncio.sleep(self.poll_interval)
                self.scanning = await handle.is_scanning()

        self.state = await handle.state()
        connected_handle = await handle.connected_network()
        discovered = await handle.discovered_networks()

        results = await asyncio.gather(
            *(Network.load(network_handle) for network_handle, _ in discovered),
            return_exceptions=True)

        known: List[Tuple[Network, int]] = []
        new: List[Tuple[Network, int]] = []
        connected: Optional[Network] = None
        for (network_handle, signal), result in zip(discovered, results):
            if isinstance(result, Exception):
                logger.warning(f"Skipping network {network_handle!r}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            if connected_handle is not None and network_handle == connected_handle:
                connected = result
            if result.known_network is not None:
                known.append((result, signal))
            else:
                new.append((result, signal))

        if connected is None and connected_handle is not None:
            try:
                connected = await Network.load(connected_handle)
            except DaemonCallFailed as e:
                logger.warning(f"Failed to read connected network: {e}")

        self.connected_network = connected
        self.known_networks = known
        self.new_networks = new
        self.discovered_count = len(known) + len(new)
        logger.debug(f"Station {self.state}: {len(known)} known, {len(new)} new networks")

        self.diagnostic = None
        if connected is not None:
            await self._refresh_diagnostic()

    async def _refresh_diagnostic(self) -> None:
        try:
            diagnostic = await self.session.station_diagnostic()
            if diagnostic is not None:
                self.diagnostic = await diagnostic.get()
        except DaemonCallFailed as e:
            logger.debug(f"Station diagnostics unavailable: {e}")

    def snapshot(self) -> StationView:
        return StationView(
            state=self.state,
            scanning=self.scanning,
            connected_network=copy.copy(self.connected_network),
            known_networks=[(copy.copy(n), s) for n, s in self.known_networks],
            new_networks=[(copy.copy(n), s) for n, s in self.new_networks],
        )

    def _notify(self, body: str, icon: str = "network_wireless", timeout_ms: Optional[int] = None) -> None:
        if self.notifier is not None:
            self.notifier.send(body, icon=icon, timeout_ms=timeout_ms)

    async def scan(self) -> bool:
        """
        Start a scan and watch it in the background.

        Returns:
            False if a scan was already running

        Raises:
            DaemonCallFailed: If the daemon refused to scan
        """
        handle = await self._handle()
        if self.watching_scan or await handle.is_scanning():
            logger.info("Scan already in progress")
            self._notify(t("notifications.scan_already_in_progress"), icon="scan")
            return False

        await handle.scan()
        self.scanning = True
        logger.info("Scan started")
        self._notify(t("notifications.scan_started"), icon="scan", timeout_ms=NEVER_EXPIRE)
        self._scan_watcher = asyncio.create_task(self._watch_scan(handle))
        return True

    async def _watch_scan(self, handle: StationHandle) -> None:
        try:
            while await handle.is_scanning():
                await asyncio.sleep(self.poll_interval)
        except DaemonCallFailed as e:
            logger.warning(f"Lost track of scan: {e}")
        self.scanning = False
        logger.info("Scan completed")
        self._notify(t("notifications.scan_completed"), icon="ok")
        if self.scan_complete is not None:
            self.scan_complete.put_nowait(True)

    async def disconnect(self) -> None:
        handle = await self._handle()
        await handle.disconnect()
        logger.info("Disconnected")

    def close(self) -> None:
        if self._scan_watcher is not None:
            self._scan_watcher.cancel()
            self._scan_watcher = None


def validate_ssid(ssid: Optional[str]) -> Optional[str]:
    """Return an error message key if the SSID cannot be advertised."""
    if not ssid or len(ssid.encode("utf-8")) > SSID_MAX_LENGTH:
        return "notifications.ap_invalid_ssid"
    return None


def validate_psk(psk: Optional[str]) -> Optional[str]:
    """Return an error message key if the passphrase is out of range."""
    if not psk or not PSK_MIN_LENGTH <= len(psk) <= PSK_MAX_LENGTH:
        return "notifications.ap_invalid_password"
    return None


class AccessPoint:
    """Access point (host mode) state plus the SSID/PSK used by the next start."""

    def __init__(self, session: DaemonSession):
        self.session = session
        self.has_started = False
        self.name: Optional[str] = None
        self.frequency: Optional[int] = None
        self.scanning = False
        self.pairwise_ciphers: List[str] = []
        self.group_cipher: Optional[str] = None
        self.connected_devices: List[str] = []
        self.ssid = ""
        self.psk = ""

    async def _handle(self):
        handle = await self.session.access_point()
        if handle is None:
            raise NoAccessPointError("No access point available")
        return handle

    async def refresh(self) -> None:
        handle = await self._handle()
        self.has_started = await handle.has_started()
        self.name = await handle.name()
        self.frequency = await handle.frequency()
        self.scanning = await handle.is_scanning()
        self.pairwise_ciphers = await handle.pairwise_ciphers()
        self.group_cipher = await handle.group_cipher()

        self.connected_devices = []
        if self.has_started:
            try:
                diagnostic = await self.session.access_point_diagnostic()
                if diagnostic is not None:
                    clients = await diagnostic.get()
                    self.connected_devices = [c["Address"] for c in clients if "Address" in c]
            except DaemonCallFailed as e:
                logger.debug(f"Access point diagnostics unavailable: {e}")

    def set_ssid(self, ssid: str) -> None:
        """Store the SSID for the next start; a running AP is unaffected."""
        self.ssid = ssid

    def set_psk(self, psk: str) -> None:
        """Store the passphrase for the next start; a running AP is unaffected."""
        self.psk = psk

    async def start(self) -> None:
        """
        Start advertising the stored SSID with the stored passphrase.

        Raises:
            InvalidApSettingsError: If the SSID or passphrase is out of range
            DaemonCallFailed: If the daemon refused
        """
        for error in (validate_ssid(self.ssid), validate_psk(self.psk)):
            if error:
                raise InvalidApSettingsError(error)
        handle = await self._handle()
        await handle.start(self.ssid, self.psk)
        logger.info(f"Access point {self.ssid} started")

    async def stop(self) -> None:
        handle = await self._handle()
        await handle.stop()
        logger.info("Access point stopped")


class Device:
    """
    Network device with at most one of station / access point populated.

    `lock` guards station and access point state; it is held while
    refreshing and while copying state out, never while a chooser runs.
    """

    def __init__(self, session: DaemonSession, notifier=None,
                 scan_complete: Optional[asyncio.Queue] = None):
        self.session = session
        self.notifier = notifier
        self.scan_complete = scan_complete
        self.lock = asyncio.Lock()
        self.name = ""
        self.address = ""
        self.mode = Mode.UNKNOWN
        self.powered = False
        self.station: Optional[Station] = None
        self.access_point: Optional[AccessPoint] = None

    def _clear(self) -> None:
        if self.station is not None:
            self.station.close()
        self.station = None
        self.access_point = None

    def close(self) -> None:
        """Stop background scan tracking; the last refreshed state stays readable."""
        if self.station is not None:
            self.station.close()

    async def refresh(self, wait_for_scan: bool = True) -> None:
        handle = await self.session.device()
        self.name = await handle.name()
        self.address = await handle.address()
        self.powered = await handle.is_powered()
        mode = Mode.from_daemon(await handle.mode())

        if mode is not self.mode:
            logger.info(f"Device mode changed: {self.mode.value} -> {mode.value}")
            self._clear()
            self.mode = mode

        if not self.powered:
            self._clear()
            return

        if mode is Mode.STATION:
            if self.station is None:
                self.station = Station(self.session, self.notifier, self.scan_complete)
            await self.station.refresh(wait_for_scan=wait_for_scan)
        elif mode is Mode.AP:
            if self.access_point is None:
                self.access_point = AccessPoint(self.session)
            await self.access_point.refresh()

    async def set_mode(self, mode: Mode) -> None:
        handle = await self.session.device()
        await handle.set_mode(mode.value)
        logger.info(f"Device mode set to {mode.value}")

    async def set_powered(self, powered: bool) -> None:
        handle = await self.session.device()
        await handle.set_powered(powered)
        logger.info(f"Device powered: {powered}")


class Adapter:
    """Physical radio and the device bound to it."""

    def __init__(self, session: DaemonSession, notifier=None,
                 scan_complete: Optional[asyncio.Queue] = None):
        self.session = session
        self.name = ""
        self.model: Optional[str] = None
        self.vendor: Optional[str] = None
        self.powered = False
        self.supported_modes: List[str] = []
        self.device = Device(session, notifier, scan_complete)

    @classmethod
    async def load(cls, session: DaemonSession, notifier=None,
                   scan_complete: Optional[asyncio.Queue] = None) -> "Adapter":
        """
        Build and populate the model.

        Raises:
            NoAdapterError: If the daemon exposes no adapter
            NoDeviceError: If the daemon exposes no device
        """
        adapter = cls(session, notifier, scan_complete)
        await adapter.refresh()
        return adapter

    async def refresh(self, wait_for_scan: bool = True) -> None:
        handle = await self.session.adapter()
        self.powered = await handle.is_powered()
        self.name = await handle.name()
        self.model = await handle.model()
        self.vendor = await handle.vendor()
        self.supported_modes = await handle.supported_modes()

        async with self.device.lock:
            if self.powered:
                await self.device.refresh(wait_for_scan=wait_for_scan)
            else:
                # The daemon drops the device object while the radio is off
                self.device.powered = False
                self.device._clear()

    @property
    def mode(self) -> Mode:
        return self.device.mode

    @property
    def enabled(self) -> bool:
        return self.powered and self.device.powered

    def supports(self, mode: Mode) -> bool:
        return mode.value in self.supported_modes

    async def set_mode(self, mode: Mode) -> None:
        """
        Raises:
            InvalidModeError: If the radio does not support the mode
        """
        if not self.supports(mode):
            raise InvalidModeError(f"Mode {mode.value} not in {self.supported_modes}")
        await self.device.set_mode(mode)

    async def power_on(self) -> None:
        handle = await self.session.adapter()
        if not await handle.is_powered():
            await handle.set_powered(True)
            logger.info(f"Adapter {self.name} powered on")
        await self.device.set_powered(True)

    async def power_off(self) -> None:
        await self.device.set_powered(False)

    async def list_known_networks(self) -> List[KnownNetwork]:
        """Every credential record the daemon stores, in or out of range."""
        handles = await self.session.known_networks()
        results = await asyncio.gather(
            *(KnownNetwork.load(h) for h in handles), return_exceptions=True)
        networks = []
        for handle, result in zip(handles, results):
            if isinstance(result, Exception):
                logger.warning(f"Skipping known network {handle!r}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            networks.append(result)
        return sorted(networks, key=lambda n: n.name.lower())

    def close(self) -> None:
        self.device.close()
