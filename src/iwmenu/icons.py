"""
Icon tables for menu entries and notifications.
Built-in glyph and symbolic-name tables, optionally overridden from YAML.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

import yaml

logger = logging.getLogger(__name__)


class IconMode(Enum):
    """How icons are attached to chooser entries."""
    GLYPH = "glyph"          # Nerd-font glyph before the label
    SYMBOLIC = "symbolic"    # freedesktop icon name after a NUL marker
    PLAIN = "plain"          # label only


GLYPH_ICONS: Dict[str, str] = {
    "signal_weak_open": "\U000f16cb",
    "signal_weak_secure": "\U000f0921",
    "signal_ok_open": "\U000f16cc",
    "signal_ok_secure": "\U000f0924",
    "signal_good_open": "\U000f16cd",
    "signal_good_secure": "\U000f0927",
    "signal_excellent_open": "\U000f16ce",
    "signal_excellent_secure": "\U000f092a",
    "connected": "\U000f05a9",
    "disconnected": "\U000f16bc",
    "known_network": "\U000f16bd",
    "known_networks": "\U000f0134",
    "scan": "\uf46a",
    "settings": "\U000f0493",
    "disable_adapter": "\U000f092d",
    "power_on_device": "\U000f0425",
    "switch_mode": "\U000f0fe2",
    "start_ap": "\U000f040d",
    "stop_ap": "\U000f0667",
    "set_ssid": "\U000f08d5",
    "set_password": "\U000f0bc5",
    "enable_autoconnect": "\U000f006a",
    "disable_autoconnect": "\U000f19e7",
    "forget_network": "\U000f0377",
    "station": "\U000f059f",
    "access_point": "\U000f0003",
    "ok": "\U000f05e1",
    "error": "\U000f05d6",
    "network_wireless": "\U000f05a9",
}

# Each entry is a comma-separated fallback list; the first name is used
# where a single icon is needed (notifications).
SYMBOLIC_ICONS: Dict[str, str] = {
    "signal_weak_open": "network-wireless-signal-weak-symbolic,network-wireless-symbolic",
    "signal_ok_open": "network-wireless-signal-ok-symbolic,network-wireless-symbolic",
    "signal_good_open": "network-wireless-signal-good-symbolic,network-wireless-symbolic",
    "signal_excellent_open": "network-wireless-signal-excellent-symbolic,network-wireless-symbolic",
    "signal_weak_secure": "network-wireless-signal-weak-secure-symbolic,network-wireless-signal-weak-symbolic",
    "signal_ok_secure": "network-wireless-signal-ok-secure-symbolic,network-wireless-signal-ok-symbolic",
    "signal_good_secure": "network-wireless-signal-good-secure-symbolic,network-wireless-signal-good-symbolic",
    "signal_excellent_secure": "network-wireless-signal-excellent-secure-symbolic,network-wireless-signal-excellent-symbolic",
    "connected": "network-wireless-connected-symbolic,network-wireless-symbolic",
    "disconnected": "network-wireless-disconnected-symbolic,network-wireless-offline-symbolic",
    "known_network": "network-wireless-connected-symbolic",
    "known_networks": "app-installed-symbolic",
    "scan": "view-refresh-symbolic,emblem-synchronizing",
    "settings": "preferences-system-symbolic",
    "disable_adapter": "network-wireless-hardware-disabled-symbolic,network-wireless-disabled-symbolic",
    "power_on_device": "system-shutdown-symbolic",
    "switch_mode": "media-playlist-repeat-symbolic",
    "start_ap": "media-playback-start-symbolic",
    "stop_ap": "media-playback-stop-symbolic",
    "set_ssid": "edit-symbolic",
    "set_password": "dialog-password-symbolic,changes-prevent",
    "enable_autoconnect": "media-playlist-repeat-symbolic,media-repeat-symbolic",
    "disable_autoconnect": "media-playlist-no-repeat-symbolic,media-repeat-none-symbolic",
    "forget_network": "list-remove-symbolic",
    "station": "network-wireless-symbolic",
    "access_point": "network-wireless-hotspot-symbolic",
    "ok": "emblem-default-symbolic",
    "error": "dialog-error-symbolic",
    "network_wireless": "network-wireless",
}


class Icons:
    """
    Looks up icons by key for a given icon mode.

    An optional YAML file may override entries:
    ```yaml
    glyph:
      scan: "S"
    symbolic:
      scan: "view-refresh"
    ```
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.glyph_icons = dict(GLYPH_ICONS)
        self.symbolic_icons = dict(SYMBOLIC_ICONS)
        if config_path:
            self.load_overrides()

    def load_overrides(self) -> None:
        """Merge icon overrides from the configuration file."""
        config_file = Path(self.config_path).expanduser()

        if not config_file.exists():
            logger.warning(f"Icon config not found: {self.config_path}, using built-in icons")
            return

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading icon config: {e}")
            return

        if not isinstance(config, dict):
            logger.warning("Icon config is not a dict, using built-in icons")
            return

        for section, table in (("glyph", self.glyph_icons), ("symbolic", self.symbolic_icons)):
            overrides = config.get(section, {})
            if isinstance(overrides, dict):
                table.update({str(k): str(v) for k, v in overrides.items()})
                logger.info(f"Loaded {len(overrides)} {section} icon overrides")
            else:
                logger.warning(f"Icon section '{section}' is not a dict")

    def get(self, key: str, mode: IconMode) -> str:
        """Return the icon for a menu entry, or '' if unknown or in plain mode."""
        if mode is IconMode.GLYPH:
            return self.glyph_icons.get(key, "")
        if mode is IconMode.SYMBOLIC:
            return self.symbolic_icons.get(key, "")
        return ""

    def notification_icon(self, key: str) -> str:
        """Return a single freedesktop icon name for notifications."""
        names = self.symbolic_icons.get(key, "")
        return names.split(",", 1)[0].strip()
