"""
Session controller.

One controller lives for one daemon session. Each tick refreshes the model
and shows the menu for the current mode. In station mode the main menu races
the scan watcher: a finished scan cancels an open main menu so that the next
tick redraws it with fresh signal values. Passphrase requests raised by the
daemon while a connect is outstanding are prompted for exactly once.

A mode switch sets `reset_requested` and ends the session; the caller then
builds a fresh session, agent and controller.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from .agent import AgentBridge
from .daemon.session import DaemonSession
from .errors import (
    ChooserIoFailed,
    ConnectionAborted,
    DaemonCallFailed,
    InvalidApSettingsError,
    InvalidModeError,
    NoAccessPointError,
    NoStationError,
)
from .i18n import t
from .menu import ApMenuOption, KnownNetworkOption, MainMenuOption, Menu, SettingsOption
from .model import AccessPoint, Adapter, Mode, Network, validate_psk, validate_ssid

logger = logging.getLogger(__name__)

MAX_REFRESH_FAILURES = 5
REFRESH_RETRY_DELAY = 1.0


class MenuState(Enum):
    MAIN_MENU = "main_menu"
    KNOWN_NETWORKS_MENU = "known_networks_menu"
    SETTINGS_MENU = "settings_menu"
    AP_MENU = "ap_menu"
    ENABLE_ADAPTER_MENU = "enable_adapter_menu"


class SessionController:
    """
    State machine binding user choices, scan completion and passphrase
    requests to daemon commands.

    Use `SessionController.create()` to register the agent and load the
    model before calling `run()`.
    """

    def __init__(self, session: DaemonSession, menu: Menu, notifier, bridge: AgentBridge,
                 adapter: Adapter, scan_complete: asyncio.Queue,
                 refresh_retry_delay: float = REFRESH_RETRY_DELAY):
        self.session = session
        self.menu = menu
        self.notifier = notifier
        self.bridge = bridge
        self.adapter = adapter
        self.scan_complete = scan_complete
        self.refresh_retry_delay = refresh_retry_delay

        self.current_menu = MenuState.MAIN_MENU
        self.running = True
        self.reset_requested = False
        self.reset_mode: Optional[Mode] = None
        self.preempted = False
        self.main_menu_open = False
        self._refresh_failures = 0
        self.completed_ticks = 0

    @classmethod
    async def create(cls, session: DaemonSession, menu: Menu, notifier,
                     **kwargs) -> "SessionController":
        """
        Register the agent and load the model.

        Raises:
            NoAdapterError: If the daemon exposes no adapter
            NoDeviceError: If the daemon exposes no device
            DaemonCallFailed: If the agent could not be registered
        """
        bridge = AgentBridge()
        await session.register_agent(bridge)

        scan_complete: asyncio.Queue = asyncio.Queue()
        adapter = Adapter(session, notifier, scan_complete)
        try:
            await adapter.refresh()
        except (NoStationError, NoAccessPointError) as e:
            # run() resets the mode on its first refresh
            logger.warning(f"Initial refresh incomplete: {e}")
        logger.info(f"Adapter {adapter.name} loaded in {adapter.mode.value} mode")
        return cls(session, menu, notifier, bridge, adapter, scan_complete, **kwargs)

    # -- helpers -------------------------------------------------------

    @property
    def runner(self):
        return self.menu.runner

    def notify(self, body: str, icon: str = "network_wireless", timeout_ms: Optional[int] = None) -> None:
        if self.notifier is not None:
            self.notifier.send(body, icon=icon, timeout_ms=timeout_ms)

    def report(self, error: Exception, key: str = "notifications.daemon_error", **kwargs) -> None:
        """Log a non-fatal error and show one notification for it."""
        logger.error(f"{error}")
        self.notify(t(key, error=error, **kwargs), icon="error")

    async def refresh(self, wait_for_scan: Optional[bool] = None) -> bool:
        """
        Refresh the model.

        Returns:
            True if the model is current. False if the tick should be
            skipped (mode reset requested, or a transient failure)

        Raises:
            NoAdapterError, NoDeviceError: If the hardware disappeared
            DaemonCallFailed: After MAX_REFRESH_FAILURES consecutive failures
        """
        if wait_for_scan is None:
            station = self.adapter.device.station
            wait_for_scan = station is None or not station.watching_scan
        try:
            await self.adapter.refresh(wait_for_scan=wait_for_scan)
        except (NoStationError, NoAccessPointError) as e:
            logger.warning(f"{e}; resetting to station mode")
            self.notify(str(e), icon="error")
            await self.reset_to_station()
            return False
        except DaemonCallFailed as e:
            self._refresh_failures += 1
            if self._refresh_failures >= MAX_REFRESH_FAILURES:
                logger.error(f"Refresh failed {self._refresh_failures} times in a row, giving up")
                raise
            self.report(e)
            await asyncio.sleep(self.refresh_retry_delay)
            return False
        self._refresh_failures = 0
        return True

    async def reset_to_station(self) -> None:
        try:
            if self.adapter.mode is not Mode.STATION:
                await self.adapter.set_mode(Mode.STATION)
        except (DaemonCallFailed, InvalidModeError) as e:
            logger.error(f"Failed to reset to station mode: {e}")
        self.reset_mode = Mode.STATION
        self.reset_requested = True

    # -- main loop -----------------------------------------------------

    async def run(self) -> None:
        """Tick until the user quits or a reset is requested."""
        while self.running and not self.reset_requested:
            if self.runner.interrupted:
                logger.info("Interrupted, ending session")
                self.running = False
                break

            if not await self.refresh():
                continue

            try:
                await self.tick()
            except (NoStationError, NoAccessPointError) as e:
                logger.warning(f"{e}; resetting to station mode")
                await self.reset_to_station()
            except ChooserIoFailed as e:
                self.report(e)
                self.running = False
            except DaemonCallFailed as e:
                self.report(e)
            else:
                self.completed_ticks += 1

    async def tick(self) -> None:
        if not self.adapter.enabled:
            await self.handle_enable_adapter()
        elif self.adapter.mode is Mode.STATION:
            await self.station_tick()
        elif self.adapter.mode is Mode.AP:
            await self.ap_tick()
        else:
            logger.warning(f"Device {self.adapter.device.name} is in an unsupported mode")
            await self.reset_to_station()

    # -- station mode --------------------------------------------------

    async def station_tick(self) -> None:
        """
        Show the main menu while watching for scan completion.

        A completed scan refreshes the model; if the user is still looking
        at the main menu it is cancelled and redrawn by the next tick.
        Deeper menus are left alone.
        """
        self.current_menu = MenuState.MAIN_MENU
        self.preempted = False
        interaction = asyncio.create_task(self.station_interaction())
        try:
            while True:
                scan_done = asyncio.create_task(self.scan_complete.get())
                done, _ = await asyncio.wait(
                    {interaction, scan_done}, return_when=asyncio.FIRST_COMPLETED)
                if scan_done not in done:
                    scan_done.cancel()
                    break
                await self.on_scan_complete()
                if interaction in done:
                    break
            interaction.result()
        finally:
            if not interaction.done():
                interaction.cancel()
                try:
                    await interaction
                except asyncio.CancelledError:
                    pass

    async def on_scan_complete(self) -> None:
        logger.info("Scan complete, refreshing")
        try:
            await self.adapter.refresh(wait_for_scan=False)
        except (DaemonCallFailed, NoStationError) as e:
            logger.warning(f"Refresh after scan failed: {e}")
        # Only the main menu chooser is redrawn; prompts and submenus stay open
        if self.main_menu_open:
            if await self.runner.cancel():
                self.preempted = True
                logger.debug("Main menu cancelled for redraw")

    async def station_interaction(self) -> None:
        async with self.adapter.device.lock:
            station = self.adapter.device.station
            if station is None:
                raise NoStationError("No station available")
            view = station.snapshot()

        self.main_menu_open = True
        try:
            choice = await self.menu.show_main_menu(view)
        finally:
            self.main_menu_open = False
        if choice is None:
            if self.preempted:
                return
            if self.current_menu is MenuState.MAIN_MENU:
                logger.info("Main menu dismissed, exiting")
                self.running = False
            return

        if choice is MainMenuOption.SCAN:
            await self.start_scan()
        elif choice is MainMenuOption.KNOWN_NETWORKS:
            self.current_menu = MenuState.KNOWN_NETWORKS_MENU
            await self.handle_known_networks_menu()
        elif choice is MainMenuOption.SETTINGS:
            self.current_menu = MenuState.SETTINGS_MENU
            await self.handle_settings_menu()
        else:
            await self.handle_network(choice)

        if self.current_menu in (MenuState.KNOWN_NETWORKS_MENU, MenuState.SETTINGS_MENU):
            self.current_menu = MenuState.MAIN_MENU

    async def start_scan(self) -> None:
        station = self.adapter.device.station
        if station is None:
            self.notify(t("notifications.no_station"), icon="error")
            return
        try:
            await station.scan()
        except DaemonCallFailed as e:
            self.report(e, "notifications.scan_failed")

    async def handle_network(self, network: Network) -> None:
        if network.connected:
            await self.disconnect(network)
        else:
            await self.connect(network)

    async def disconnect(self, network: Network) -> None:
        station = self.adapter.device.station
        if station is None:
            self.notify(t("notifications.no_station"), icon="error")
            return
        try:
            await station.disconnect()
        except DaemonCallFailed as e:
            self.report(e, "notifications.disconnect_failed")
            return
        self.notify(t("notifications.disconnected", ssid=network.name), icon="disconnected")

    async def connect(self, network: Network) -> bool:
        """
        Connect to a network, prompting for a passphrase where needed.

        New secured networks are prompted for before the connect call; a
        dismissed prompt posts a cancel and nothing is connected. Any other
        passphrase request raised by the daemon during the call is prompted
        for once.

        Returns:
            True if connected
        """
        self.bridge.drain()
        answered = False
        if network.secure and network.known_network is None:
            passphrase = await self.menu.prompt_passphrase(network.name)
            if not passphrase:
                logger.info(f"Passphrase prompt for {network.name} dismissed")
                self.bridge.cancel()
                self.notify(t("notifications.connection_cancelled"))
                return False
            self.bridge.send_passphrase(passphrase)
            answered = True

        try:
            if answered:
                await network.connect()
            else:
                await self._connect_answering_agent(network)
        except ConnectionAborted:
            logger.info(f"Connection to {network.name} cancelled")
            self.notify(t("notifications.connection_cancelled"))
            return False
        except DaemonCallFailed as e:
            self.report(e, "notifications.connection_failed", ssid=network.name)
            return False
        finally:
            self.bridge.drain()

        logger.info(f"Connected to {network.name}")
        self.notify(t("notifications.connected", ssid=network.name), icon="connected")
        return True

    async def _connect_answering_agent(self, network: Network) -> None:
        connecting = asyncio.create_task(network.connect())
        request = asyncio.create_task(self.bridge.wait_for_request())
        try:
            done, _ = await asyncio.wait({connecting, request}, return_when=asyncio.FIRST_COMPLETED)
            if connecting not in done and self.bridge.pending:
                logger.info(f"Daemon requested a passphrase for {network.name}")
                passphrase = await self.menu.prompt_passphrase(network.name)
                if passphrase:
                    self.bridge.send_passphrase(passphrase)
                else:
                    self.bridge.cancel()
            await connecting
        finally:
            request.cancel()
            if not connecting.done():
                connecting.cancel()

    async def handle_known_networks_menu(self) -> None:
        try:
            networks = await self.adapter.list_known_networks()
        except DaemonCallFailed as e:
            self.report(e)
            return

        selected = await self.menu.show_known_networks_menu(networks)
        if selected is None:
            return

        option = await self.menu.show_known_network_options(selected)
        if option is KnownNetworkOption.TOGGLE_AUTOCONNECT:
            enabled = await selected.toggle_autoconnect()
            key = "notifications.autoconnect_enabled" if enabled else "notifications.autoconnect_disabled"
            self.notify(t(key, ssid=selected.name))
        elif option is KnownNetworkOption.FORGET:
            await selected.forget()
            self.notify(t("notifications.network_forgotten", ssid=selected.name), icon="forget_network")

    # -- settings and adapter -----------------------------------------

    async def handle_settings_menu(self) -> None:
        option = await self.menu.show_settings_menu(self.adapter.mode, self.adapter.supported_modes)
        if option is SettingsOption.DISABLE_ADAPTER:
            await self.adapter.power_off()
            logger.info("Adapter disabled")
            self.notify(t("notifications.adapter_disabled"), icon="disable_adapter")
            self.current_menu = MenuState.ENABLE_ADAPTER_MENU
        elif option is SettingsOption.SWITCH_MODE:
            target = Mode.AP if self.adapter.mode is Mode.STATION else Mode.STATION
            await self.switch_mode(target)

    async def switch_mode(self, target: Mode) -> None:
        try:
            await self.adapter.set_mode(target)
        except InvalidModeError as e:
            logger.warning(f"{e}")
            self.notify(t("notifications.mode_unsupported", mode=t(f"modes.{target.value}")), icon="error")
            return
        logger.info(f"Switched to {target.value} mode, resetting session")
        self.notify(t("notifications.mode_switched", mode=t(f"modes.{target.value}")), icon="switch_mode")
        self.reset_mode = target
        self.reset_requested = True

    async def handle_enable_adapter(self) -> None:
        self.current_menu = MenuState.ENABLE_ADAPTER_MENU
        if not await self.menu.show_enable_adapter_menu():
            logger.info("Adapter left disabled, exiting")
            self.notify(t("notifications.adapter_remains_disabled"))
            self.running = False
            return

        await self.adapter.power_on()
        logger.info("Adapter enabled")
        self.notify(t("notifications.adapter_enabled"), icon="power_on_device")
        self.current_menu = MenuState.MAIN_MENU
        await self._scan_after_power_on()

    async def _scan_after_power_on(self) -> None:
        try:
            await self.adapter.refresh(wait_for_scan=True)
        except (DaemonCallFailed, NoStationError, NoAccessPointError) as e:
            logger.debug(f"Skipping scan after power on: {e}")
            return
        if self.adapter.mode is Mode.STATION and self.adapter.device.station is not None:
            await self.start_scan()

    # -- access point mode ---------------------------------------------

    async def ap_tick(self) -> None:
        self.current_menu = MenuState.AP_MENU
        async with self.adapter.device.lock:
            ap = self.adapter.device.access_point
            if ap is None:
                raise NoAccessPointError("No access point available")
            started = ap.has_started

        option = await self.menu.show_ap_menu(started)
        if option is None:
            logger.info("Access point menu dismissed, exiting")
            self.running = False
        elif option is ApMenuOption.START_AP:
            await self.start_access_point(ap)
        elif option is ApMenuOption.STOP_AP:
            try:
                await ap.stop()
            except DaemonCallFailed as e:
                self.report(e)
                return
            self.notify(t("notifications.ap_stopped"), icon="stop_ap")
        elif option is ApMenuOption.SET_SSID:
            await self.set_ap_ssid(ap)
        elif option is ApMenuOption.SET_PASSWORD:
            await self.set_ap_password(ap)
        elif option is ApMenuOption.SETTINGS:
            self.current_menu = MenuState.SETTINGS_MENU
            await self.handle_settings_menu()

    async def _ask_ssid(self) -> Optional[str]:
        ssid = await self.menu.prompt_ssid()
        if ssid is None:
            return None
        error = validate_ssid(ssid)
        if error:
            logger.warning(f"Rejected SSID {ssid!r}")
            self.notify(t(error), icon="error")
            return None
        return ssid

    async def _ask_psk(self) -> Optional[str]:
        psk = await self.menu.prompt_ap_password()
        if psk is None:
            return None
        error = validate_psk(psk)
        if error:
            logger.warning("Rejected access point password")
            self.notify(t(error), icon="error")
            return None
        return psk

    async def set_ap_ssid(self, ap: AccessPoint) -> None:
        ssid = await self._ask_ssid()
        if ssid is None:
            return
        async with self.adapter.device.lock:
            ap.set_ssid(ssid)
            started = ap.has_started
        if started:
            self.notify(t("notifications.ap_restart_required"))
        else:
            self.notify(t("notifications.ap_ssid_set", ssid=ssid), icon="set_ssid")

    async def set_ap_password(self, ap: AccessPoint) -> None:
        psk = await self._ask_psk()
        if psk is None:
            return
        async with self.adapter.device.lock:
            ap.set_psk(psk)
            started = ap.has_started
        if started:
            self.notify(t("notifications.ap_restart_required"))
        else:
            self.notify(t("notifications.ap_password_set"), icon="set_password")

    async def start_access_point(self, ap: AccessPoint) -> None:
        """Start the AP, asking for whichever of SSID and password is unset."""
        if ap.has_started:
            self.notify(t("notifications.ap_already_started"))
            return

        if not ap.ssid:
            ssid = await self._ask_ssid()
            if ssid is None:
                return
            async with self.adapter.device.lock:
                ap.set_ssid(ssid)
        if not ap.psk:
            psk = await self._ask_psk()
            if psk is None:
                return
            async with self.adapter.device.lock:
                ap.set_psk(psk)

        try:
            await ap.start()
        except InvalidApSettingsError as e:
            self.notify(t(e.key), icon="error")
            return
        except DaemonCallFailed as e:
            self.report(e, "notifications.ap_start_failed")
            return
        self.notify(t("notifications.ap_started", ssid=ap.ssid), icon="start_ap")

    async def close(self) -> None:
        self.adapter.close()
