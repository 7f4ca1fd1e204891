"""Menu and notification strings with locale selection."""

import os

TRANSLATIONS = {
    "en": {
        # ─── Main menu ───
        "menus.main.scan": "Scan",
        "menus.main.known_networks": "Known Networks",
        "menus.main.settings": "Settings",
        "menus.main.passphrase_prompt": "Enter passphrase for {ssid}",

        # ─── Known networks ───
        "menus.known_networks.enable_autoconnect": "Enable Autoconnect",
        "menus.known_networks.disable_autoconnect": "Disable Autoconnect",
        "menus.known_networks.forget_network": "Forget Network",

        # ─── Settings ───
        "menus.settings.disable_adapter": "Disable Adapter",
        "menus.settings.switch_mode_to_ap": "Switch Mode to Access Point",
        "menus.settings.switch_mode_to_station": "Switch Mode to Station",

        # ─── Adapter ───
        "menus.adapter.power_on_device": "Power On Device",

        # ─── Access point ───
        "menus.ap.start_ap": "Start AP",
        "menus.ap.stop_ap": "Stop AP",
        "menus.ap.set_ssid": "Set SSID",
        "menus.ap.set_password": "Set Password",
        "menus.ap.settings": "Settings",
        "menus.ap.ssid_prompt": "Enter SSID",
        "menus.ap.password_prompt": "Enter password",

        # ─── Notifications ───
        "notifications.summary": "iNet Wireless",
        "notifications.connected": "Connected to {ssid}",
        "notifications.connection_cancelled": "Connection cancelled",
        "notifications.connection_failed": "Failed to connect to {ssid}: {error}",
        "notifications.disconnected": "Disconnected from {ssid}",
        "notifications.disconnect_failed": "Failed to disconnect: {error}",
        "notifications.scan_started": "Scan in progress",
        "notifications.scan_completed": "Scan completed",
        "notifications.scan_already_in_progress": "Scan already in progress",
        "notifications.scan_failed": "Failed to start scan: {error}",
        "notifications.no_station": "No station available",
        "notifications.no_access_point": "No access point available",
        "notifications.adapter_enabled": "Adapter enabled",
        "notifications.adapter_disabled": "Adapter disabled",
        "notifications.adapter_remains_disabled": "Adapter remains disabled",
        "notifications.mode_switched": "Switched to {mode} mode",
        "notifications.mode_unsupported": "Mode {mode} is not supported by this adapter",
        "notifications.autoconnect_enabled": "Autoconnect enabled for {ssid}",
        "notifications.autoconnect_disabled": "Autoconnect disabled for {ssid}",
        "notifications.network_forgotten": "Forgot network {ssid}",
        "notifications.ap_started": "Access point {ssid} started",
        "notifications.ap_stopped": "Access point stopped",
        "notifications.ap_already_started": "Access point is already started",
        "notifications.ap_start_failed": "Failed to start access point: {error}",
        "notifications.ap_ssid_set": "SSID set to {ssid}",
        "notifications.ap_password_set": "Password set",
        "notifications.ap_restart_required": "Changes apply the next time the access point starts",
        "notifications.ap_invalid_ssid": "SSID must be 1 to 32 characters",
        "notifications.ap_invalid_password": "Password must be 8 to 63 characters",
        "notifications.daemon_error": "{error}",
        "notifications.menu_failed": "Failed to open menu: {error}",

        # ─── Mode names ───
        "modes.station": "station",
        "modes.ap": "access point",
    },
}

DEFAULT_LANG = "en"
_current_lang = DEFAULT_LANG


def get_lang() -> str:
    """Get current language code."""
    return _current_lang


def set_lang(lang: str) -> None:
    """Set current language; unknown codes keep English."""
    global _current_lang
    _current_lang = lang if lang in TRANSLATIONS else DEFAULT_LANG


def detect_lang(environ=None) -> str:
    """Pick the language from LC_ALL, LC_MESSAGES or LANG ('de_DE.UTF-8' -> 'de')."""
    environ = os.environ if environ is None else environ
    for var in ("LC_ALL", "LC_MESSAGES", "LANG"):
        value = environ.get(var)
        if value:
            code = value.split(".", 1)[0].split("_", 1)[0].lower()
            if code in TRANSLATIONS:
                return code
            break
    return DEFAULT_LANG


def load_language(environ=None) -> None:
    """Select the language from the environment."""
    set_lang(detect_lang(environ))


def t(key: str, **kwargs) -> str:
    """Get translated string by key. Supports {placeholder} formatting."""
    text = TRANSLATIONS.get(_current_lang, TRANSLATIONS[DEFAULT_LANG]).get(key)
    if text is None:
        # Fallback to English
        text = TRANSLATIONS[DEFAULT_LANG].get(key, key)
    if kwargs:
        try:
            text = text.format(**kwargs)
        except (KeyError, IndexError):
            pass
    return text
