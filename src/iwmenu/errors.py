"""
Exception hierarchy shared by the daemon facade, chooser runner and controller.
"""

from typing import Optional

ABORTED_ERROR_NAME = "net.connman.iwd.Aborted"


class IwmenuError(Exception):
    """Base exception for iwmenu errors."""


class NoAdapterError(IwmenuError):
    """The daemon exposes no Wi-Fi adapter. Fatal to the session."""


class NoDeviceError(IwmenuError):
    """The daemon exposes no Wi-Fi device. Fatal to the session."""


class NoStationError(IwmenuError):
    """Station mode is expected but the daemon has no station object."""


class NoAccessPointError(IwmenuError):
    """AP mode is expected but the daemon has no access point object."""


class InvalidModeError(IwmenuError):
    """A mode string the adapter does not support was requested."""


class DaemonCallFailed(IwmenuError):
    """A call to the daemon failed (transport or semantic error)."""

    def __init__(self, op: str, message: str, dbus_name: Optional[str] = None):
        self.op = op
        self.message = message
        self.dbus_name = dbus_name
        super().__init__(f"{op}: {message}")


class ConnectionAborted(DaemonCallFailed):
    """The connect attempt was aborted, typically by a cancelled passphrase."""

    def __init__(self, op: str = "connect", message: str = "Operation aborted"):
        super().__init__(op, message, ABORTED_ERROR_NAME)


class ChooserSpawnFailed(IwmenuError):
    """The chooser program could not be started."""


class ChooserIoFailed(IwmenuError):
    """Talking to a running chooser failed."""


class ChooserInputWriteFailed(ChooserIoFailed):
    """Writing candidates to the chooser's stdin failed."""


class ChooserDecodeFailed(ChooserIoFailed):
    """The chooser's stdout was not valid UTF-8."""


class PassphraseChannelClosed(IwmenuError):
    """The agent bridge was closed while a passphrase was being exchanged."""


class InvalidApSettingsError(IwmenuError):
    """The access point SSID or passphrase is out of range."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(key)
