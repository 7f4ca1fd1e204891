"""
Menus shown through the chooser.

Each `show_*` method renders entries, runs the chooser and maps the canonical
label it returns back to an option or model object. None always means the
user made no selection.
"""

import logging
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .chooser import ChooserCommand, ChooserKind, ChooserRunner
from .errors import ChooserSpawnFailed
from .i18n import t
from .icons import IconMode, Icons
from .model import KnownNetwork, Mode, Network, StationView
from .presentation import clean_output, format_entries, format_entry, format_network

logger = logging.getLogger(__name__)


class MainMenuOption(Enum):
    SCAN = "scan"
    KNOWN_NETWORKS = "known_networks"
    SETTINGS = "settings"


class KnownNetworkOption(Enum):
    TOGGLE_AUTOCONNECT = "toggle_autoconnect"
    FORGET = "forget_network"


class SettingsOption(Enum):
    DISABLE_ADAPTER = "disable_adapter"
    SWITCH_MODE = "switch_mode"


class ApMenuOption(Enum):
    START_AP = "start_ap"
    STOP_AP = "stop_ap"
    SET_SSID = "set_ssid"
    SET_PASSWORD = "set_password"
    SETTINGS = "settings"


class Menu:
    """
    Chooser front-end for every menu and prompt.

    Args:
        kind: Chooser family
        icons: Icon table
        runner: Chooser runner shared with the signal forwarder
        icon_mode: How icons are attached to entries
        spaces: Padding between glyph and label
        template: Command template for ChooserKind.CUSTOM
        notifier: Notification sink told about choosers that fail to start
    """

    def __init__(self, kind: ChooserKind, icons: Icons, runner: ChooserRunner,
                 icon_mode: IconMode = IconMode.GLYPH, spaces: int = 1,
                 template: Optional[str] = None, notifier=None):
        self.kind = kind
        self.icons = icons
        self.runner = runner
        self.icon_mode = icon_mode
        self.spaces = spaces
        self.template = template
        self.notifier = notifier

    def command(self, prompt: Optional[str] = None, placeholder: Optional[str] = None,
                password: bool = False) -> ChooserCommand:
        return ChooserCommand(
            kind=self.kind,
            icon_mode=self.icon_mode,
            prompt=prompt,
            placeholder=placeholder,
            password=password,
            template=self.template,
        )

    def entries(self, items: Iterable[Tuple[str, str]]) -> List[str]:
        return format_entries(self.icons, items, self.icon_mode, self.spaces)

    def _spawn_failed(self, error: ChooserSpawnFailed) -> None:
        logger.error(f"Failed to spawn chooser: {error}")
        if self.notifier is not None:
            self.notifier.send(t("notifications.menu_failed", error=error), icon="error")

    async def choose(self, entries: Sequence[str], prompt: Optional[str] = None) -> Optional[str]:
        """
        Run the chooser over `entries`.

        Returns:
            The canonical label of the selected entry, or None

        Raises:
            ChooserIoFailed: If talking to the chooser failed
        """
        input_text = "\n".join(entries) + "\n" if entries else ""
        try:
            output = await self.runner.run(self.command(prompt=prompt), input_text)
        except ChooserSpawnFailed as e:
            self._spawn_failed(e)
            return None
        return clean_output(output, self.icon_mode) or None

    async def prompt(self, text: str, password: bool = False) -> Optional[str]:
        """Ask for free text; returns None when dismissed or empty."""
        try:
            output = await self.runner.run(
                self.command(prompt=text, placeholder=text, password=password))
        except ChooserSpawnFailed as e:
            self._spawn_failed(e)
            return None
        return output or None

    # -- station -------------------------------------------------------

    async def show_main_menu(self, view: StationView) -> Optional[Union[MainMenuOption, Network]]:
        options = [(MainMenuOption.SCAN, "menus.main.scan"),
                   (MainMenuOption.KNOWN_NETWORKS, "menus.main.known_networks")]
        entries = self.entries((o.value, t(key)) for o, key in options)

        networks = view.known_networks + view.new_networks
        for network, signal in networks:
            entries.append(format_network(self.icons, network.name, network.network_type,
                                          signal, network.connected, self.icon_mode, self.spaces))

        entries += self.entries([(MainMenuOption.SETTINGS.value, t("menus.main.settings"))])

        selection = await self.choose(entries)
        if selection is None:
            return None

        for option, key in options + [(MainMenuOption.SETTINGS, "menus.main.settings")]:
            if selection == t(key):
                return option
        for network, _ in networks:
            if clean_output(network.name, self.icon_mode) == selection:
                return network
        logger.warning(f"Unrecognised main menu selection: {selection!r}")
        return None

    async def show_known_networks_menu(self, networks: List[KnownNetwork]) -> Optional[KnownNetwork]:
        entries = [format_entry(n.name, self.icons.get("known_network", self.icon_mode),
                                self.icon_mode, self.spaces) for n in networks]
        selection = await self.choose(entries)
        if selection is None:
            return None
        for network in networks:
            if clean_output(network.name, self.icon_mode) == selection:
                return network
        return None

    async def show_known_network_options(self, network: KnownNetwork) -> Optional[KnownNetworkOption]:
        if network.autoconnect:
            toggle = ("disable_autoconnect", t("menus.known_networks.disable_autoconnect"))
        else:
            toggle = ("enable_autoconnect", t("menus.known_networks.enable_autoconnect"))
        forget = ("forget_network", t("menus.known_networks.forget_network"))

        selection = await self.choose(self.entries([toggle, forget]), prompt=network.name)
        if selection == toggle[1]:
            return KnownNetworkOption.TOGGLE_AUTOCONNECT
        if selection == forget[1]:
            return KnownNetworkOption.FORGET
        return None

    async def prompt_passphrase(self, ssid: str) -> Optional[str]:
        return await self.prompt(t("menus.main.passphrase_prompt", ssid=ssid), password=True)

    # -- settings and adapter -----------------------------------------

    async def show_settings_menu(self, current_mode: Mode,
                                 supported_modes: List[str]) -> Optional[SettingsOption]:
        items = [("disable_adapter", t("menus.settings.disable_adapter"))]
        switch_label = None
        if current_mode is Mode.STATION and Mode.AP.value in supported_modes:
            switch_label = t("menus.settings.switch_mode_to_ap")
        elif current_mode is Mode.AP and Mode.STATION.value in supported_modes:
            switch_label = t("menus.settings.switch_mode_to_station")
        if switch_label:
            items.append(("switch_mode", switch_label))

        selection = await self.choose(self.entries(items))
        if selection == items[0][1]:
            return SettingsOption.DISABLE_ADAPTER
        if switch_label and selection == switch_label:
            return SettingsOption.SWITCH_MODE
        return None

    async def show_enable_adapter_menu(self) -> bool:
        label = t("menus.adapter.power_on_device")
        selection = await self.choose(self.entries([("power_on_device", label)]))
        return selection == label

    # -- access point --------------------------------------------------

    async def show_ap_menu(self, has_started: bool) -> Optional[ApMenuOption]:
        if has_started:
            first = (ApMenuOption.STOP_AP, "stop_ap", t("menus.ap.stop_ap"))
        else:
            first = (ApMenuOption.START_AP, "start_ap", t("menus.ap.start_ap"))
        options = [
            first,
            (ApMenuOption.SET_SSID, "set_ssid", t("menus.ap.set_ssid")),
            (ApMenuOption.SET_PASSWORD, "set_password", t("menus.ap.set_password")),
            (ApMenuOption.SETTINGS, "settings", t("menus.ap.settings")),
        ]
        selection = await self.choose(self.entries((key, label) for _, key, label in options))
        for option, _, label in options:
            if selection == label:
                return option
        return None

    async def prompt_ssid(self) -> Optional[str]:
        return await self.prompt(t("menus.ap.ssid_prompt"))

    async def prompt_ap_password(self) -> Optional[str]:
        return await self.prompt(t("menus.ap.password_prompt"), password=True)
