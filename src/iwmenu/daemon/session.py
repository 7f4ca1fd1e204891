"""
Daemon session interface for abstraction over the iwd D-Bus API.
Allows in-memory doubles to be injected in tests.

Every method is a coroutine: each one is a round trip to the daemon and may
raise DaemonCallFailed.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple


class KnownNetworkHandle(ABC):
    """Remote handle to a credential record stored by the daemon."""

    @abstractmethod
    async def name(self) -> str:
        """Return the network name."""

    @abstractmethod
    async def network_type(self) -> str:
        """Return the security type ('open', 'wep', 'psk', '8021x')."""

    @abstractmethod
    async def autoconnect(self) -> bool:
        """Return whether the daemon connects to this network automatically."""

    @abstractmethod
    async def set_autoconnect(self, enabled: bool) -> None:
        """Enable or disable automatic connection."""

    @abstractmethod
    async def hidden(self) -> bool:
        """Return whether the network hides its SSID."""

    @abstractmethod
    async def last_connected_time(self) -> Optional[str]:
        """Return the ISO-8601 time of the last connection, if any."""

    @abstractmethod
    async def forget(self) -> None:
        """Delete the credential record."""


class NetworkHandle(ABC):
    """Remote handle to a network discovered by a scan."""

    @abstractmethod
    async def name(self) -> str:
        """Return the network name (SSID)."""

    @abstractmethod
    async def network_type(self) -> str:
        """Return the security type ('open', 'wep', 'psk', '8021x')."""

    @abstractmethod
    async def connected(self) -> bool:
        """Return whether the station is connected to this network."""

    @abstractmethod
    async def known_network(self) -> Optional[KnownNetworkHandle]:
        """Return the credential record for this network, if one exists."""

    @abstractmethod
    async def connect(self) -> None:
        """
        Connect to the network.

        The daemon may call the registered agent for a passphrase while this
        call is outstanding.

        Raises:
            ConnectionAborted: If the agent cancelled the request
            DaemonCallFailed: On any other failure
        """


class StationHandle(ABC):
    """Remote handle to the station (client mode) interface."""

    @abstractmethod
    async def state(self) -> str:
        """Return the connection state string."""

    @abstractmethod
    async def is_scanning(self) -> bool:
        """Return whether a scan is in progress."""

    @abstractmethod
    async def connected_network(self) -> Optional[NetworkHandle]:
        """Return the connected network, if any."""

    @abstractmethod
    async def discovered_networks(self) -> List[Tuple[NetworkHandle, int]]:
        """
        Return discovered networks ordered by signal strength.

        Returns:
            List of (network, signal) pairs, signal in 100 * dBm
        """

    @abstractmethod
    async def scan(self) -> None:
        """Start a scan; returns once the daemon accepted the request."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the current network."""


class AccessPointHandle(ABC):
    """Remote handle to the access point interface."""

    @abstractmethod
    async def has_started(self) -> bool:
        """Return whether the access point is running."""

    @abstractmethod
    async def name(self) -> Optional[str]:
        """Return the advertised SSID while started."""

    @abstractmethod
    async def frequency(self) -> Optional[int]:
        """Return the operating frequency in MHz while started."""

    @abstractmethod
    async def is_scanning(self) -> bool:
        """Return whether the access point is scanning."""

    @abstractmethod
    async def pairwise_ciphers(self) -> List[str]:
        """Return the supported pairwise ciphers."""

    @abstractmethod
    async def group_cipher(self) -> Optional[str]:
        """Return the group cipher in use."""

    @abstractmethod
    async def start(self, ssid: str, psk: str) -> None:
        """Start advertising a WPA2 network."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop the access point."""

    @abstractmethod
    async def scan(self) -> None:
        """Scan for nearby networks while in AP mode."""


class StationDiagnosticHandle(ABC):

    @abstractmethod
    async def get(self) -> Dict[str, str]:
        """Return a diagnostic snapshot of the current connection."""


class AccessPointDiagnosticHandle(ABC):

    @abstractmethod
    async def get(self) -> List[Dict[str, str]]:
        """Return one diagnostic mapping per associated client."""


class AdapterHandle(ABC):
    """Remote handle to a physical radio."""

    @abstractmethod
    async def is_powered(self) -> bool:
        """Return whether the radio is powered."""

    @abstractmethod
    async def set_powered(self, powered: bool) -> None:
        """Power the radio on or off."""

    @abstractmethod
    async def name(self) -> str:
        """Return the adapter name (e.g. 'phy0')."""

    @abstractmethod
    async def model(self) -> Optional[str]:
        """Return the model string, if the daemon knows it."""

    @abstractmethod
    async def vendor(self) -> Optional[str]:
        """Return the vendor string, if the daemon knows it."""

    @abstractmethod
    async def supported_modes(self) -> List[str]:
        """Return operating modes the radio supports."""


class DeviceHandle(ABC):
    """Remote handle to the network device bound to an adapter."""

    @abstractmethod
    async def name(self) -> str:
        """Return the interface name (e.g. 'wlan0')."""

    @abstractmethod
    async def address(self) -> str:
        """Return the MAC address."""

    @abstractmethod
    async def mode(self) -> str:
        """Return the operating mode string ('station', 'ap', ...)."""

    @abstractmethod
    async def set_mode(self, mode: str) -> None:
        """Switch the operating mode."""

    @abstractmethod
    async def is_powered(self) -> bool:
        """Return whether the device is powered."""

    @abstractmethod
    async def set_powered(self, powered: bool) -> None:
        """Power the device on or off."""


class DaemonSession(ABC):
    """
    Entry point to the daemon.

    The session is stateless beyond its bus connection: every accessor looks
    the object up again, so a handle is never stale across mode switches.
    """

    @abstractmethod
    async def adapter(self) -> AdapterHandle:
        """
        Return the first adapter.

        Raises:
            NoAdapterError: If the daemon exposes none
        """

    @abstractmethod
    async def device(self) -> DeviceHandle:
        """
        Return the first device.

        Raises:
            NoDeviceError: If the daemon exposes none
        """

    @abstractmethod
    async def station(self) -> Optional[StationHandle]:
        """Return the station interface, present in station mode only."""

    @abstractmethod
    async def access_point(self) -> Optional[AccessPointHandle]:
        """Return the access point interface, present in AP mode only."""

    @abstractmethod
    async def station_diagnostic(self) -> Optional[StationDiagnosticHandle]:
        """Return the station diagnostic interface, if exposed."""

    @abstractmethod
    async def access_point_diagnostic(self) -> Optional[AccessPointDiagnosticHandle]:
        """Return the access point diagnostic interface, if exposed."""

    @abstractmethod
    async def known_networks(self) -> List[KnownNetworkHandle]:
        """Return every credential record the daemon stores."""

    @abstractmethod
    async def register_agent(self, bridge) -> None:
        """
        Register an authentication agent backed by an AgentBridge.

        Args:
            bridge: AgentBridge answering passphrase requests
        """

    @abstractmethod
    async def close(self) -> None:
        """Unregister the agent and release the bus connection."""
