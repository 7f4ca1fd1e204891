"""
Shared fixtures: an in-memory iwd double, a scripted chooser runner and a
recording notification sink.
"""

import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from iwmenu.chooser import ChooserKind  # noqa: E402
from iwmenu.daemon.session import (  # noqa: E402
    AccessPointDiagnosticHandle,
    AccessPointHandle,
    AdapterHandle,
    DaemonSession,
    DeviceHandle,
    KnownNetworkHandle,
    NetworkHandle,
    StationDiagnosticHandle,
    StationHandle,
)
from iwmenu.errors import DaemonCallFailed, NoAdapterError, NoDeviceError  # noqa: E402
from iwmenu.icons import IconMode, Icons  # noqa: E402
from iwmenu.menu import Menu  # noqa: E402
from iwmenu.presentation import SECURE_NETWORK_TYPES  # noqa: E402


class FakeKnownNetwork(KnownNetworkHandle):

    def __init__(self, daemon: "FakeDaemon", name: str, network_type: str = "psk",
                 autoconnect: bool = True, hidden: bool = False):
        self.daemon = daemon
        self._name = name
        self._type = network_type
        self._autoconnect = autoconnect
        self._hidden = hidden

    def __repr__(self) -> str:
        return f"FakeKnownNetwork({self._name!r})"

    async def name(self) -> str:
        return self._name

    async def network_type(self) -> str:
        return self._type

    async def autoconnect(self) -> bool:
        return self._autoconnect

    async def set_autoconnect(self, enabled: bool) -> None:
        self._autoconnect = enabled

    async def hidden(self) -> bool:
        return self._hidden

    async def last_connected_time(self) -> Optional[str]:
        return "2026-10-01T12:00:00Z"

    async def forget(self) -> None:
        self.daemon.known.remove(self)
        for network in self.daemon.networks:
            if network.known is self:
                network.known = None


class FakeNetwork(NetworkHandle):
    """
    Discovered network. Connecting to a secured network without credentials
    asks the registered agent for a passphrase, the way iwd does.
    """

    def __init__(self, daemon: "FakeDaemon", name: str, network_type: str = "open",
                 signal: int = -6000, known: Optional[FakeKnownNetwork] = None,
                 requires_passphrase: bool = False):
        self.daemon = daemon
        self._name = name
        self._type = network_type
        self.signal = signal
        self.known = known
        self.requires_passphrase = requires_passphrase
        self.fail_with: Optional[Exception] = None
        self.broken = False

    def __repr__(self) -> str:
        return f"FakeNetwork({self._name!r})"

    @property
    def path(self) -> str:
        return f"/net/connman/iwd/0/3/{self._name.encode().hex()}_{self._type}"

    async def name(self) -> str:
        if self.broken:
            raise DaemonCallFailed("Get", f"{self.path} vanished")
        return self._name

    async def network_type(self) -> str:
        return self._type

    async def connected(self) -> bool:
        return self.daemon.connected is self

    async def known_network(self) -> Optional[KnownNetworkHandle]:
        return self.known

    async def connect(self) -> None:
        self.daemon.connect_calls.append(self._name)
        needs_key = self._type in SECURE_NETWORK_TYPES and self.known is None
        if needs_key or self.requires_passphrase:
            passphrase = await self.daemon.bridge.request_passphrase(self.path)
            self.daemon.passphrases.append(passphrase)
        if self.fail_with is not None:
            raise self.fail_with
        if self.known is None:
            self.known = FakeKnownNetwork(self.daemon, self._name, self._type)
            self.daemon.known.append(self.known)
        self.daemon.connected = self
        self.daemon.state = "connected"


class FakeStation(StationHandle):

    def __init__(self, daemon: "FakeDaemon"):
        self.daemon = daemon

    async def state(self) -> str:
        return self.daemon.state

    async def is_scanning(self) -> bool:
        self.daemon.scan_reads += 1
        if self.daemon.scan_polls > 0:
            self.daemon.scan_polls -= 1
            return True
        return self.daemon.scanning

    async def connected_network(self) -> Optional[NetworkHandle]:
        return self.daemon.connected

    async def discovered_networks(self):
        if self.daemon.fail_discovery:
            self.daemon.fail_discovery -= 1
            raise DaemonCallFailed("GetOrderedNetworks", "Operation failed")
        ordered = sorted(self.daemon.networks, key=lambda n: n.signal, reverse=True)
        return [(n, n.signal) for n in ordered]

    async def scan(self) -> None:
        self.daemon.scan_calls += 1
        self.daemon.scanning = True

    async def disconnect(self) -> None:
        self.daemon.disconnect_calls += 1
        self.daemon.connected = None
        self.daemon.state = "disconnected"


class FakeAccessPoint(AccessPointHandle):

    def __init__(self, daemon: "FakeDaemon"):
        self.daemon = daemon

    async def has_started(self) -> bool:
        return self.daemon.ap_started

    async def name(self) -> Optional[str]:
        return self.daemon.ap_ssid if self.daemon.ap_started else None

    async def frequency(self) -> Optional[int]:
        return 2412 if self.daemon.ap_started else None

    async def is_scanning(self) -> bool:
        return False

    async def pairwise_ciphers(self) -> List[str]:
        return ["CCMP"]

    async def group_cipher(self) -> Optional[str]:
        return "CCMP" if self.daemon.ap_started else None

    async def start(self, ssid: str, psk: str) -> None:
        self.daemon.ap_start_calls.append((ssid, psk))
        self.daemon.ap_started = True
        self.daemon.ap_ssid = ssid

    async def stop(self) -> None:
        self.daemon.ap_started = False

    async def scan(self) -> None:
        pass


class FakeStationDiagnostic(StationDiagnosticHandle):

    def __init__(self, daemon: "FakeDaemon"):
        self.daemon = daemon

    async def get(self) -> Dict[str, str]:
        if self.daemon.fail_diagnostics:
            raise DaemonCallFailed("GetDiagnostics", "Not supported")
        return {"ConnectedBss": "aa:bb:cc:dd:ee:ff", "RSSI": "-52"}


class FakeAccessPointDiagnostic(AccessPointDiagnosticHandle):

    def __init__(self, daemon: "FakeDaemon"):
        self.daemon = daemon

    async def get(self) -> List[Dict[str, str]]:
        return [{"Address": mac} for mac in self.daemon.ap_clients]


class FakeAdapter(AdapterHandle):

    def __init__(self, daemon: "FakeDaemon"):
        self.daemon = daemon

    async def is_powered(self) -> bool:
        return self.daemon.adapter_powered

    async def set_powered(self, powered: bool) -> None:
        self.daemon.adapter_powered = powered

    async def name(self) -> str:
        return "phy0"

    async def model(self) -> Optional[str]:
        return "AX200"

    async def vendor(self) -> Optional[str]:
        return "Intel"

    async def supported_modes(self) -> List[str]:
        return list(self.daemon.supported_modes)


class FakeDevice(DeviceHandle):

    def __init__(self, daemon: "FakeDaemon"):
        self.daemon = daemon

    async def name(self) -> str:
        return "wlan0"

    async def address(self) -> str:
        return "00:11:22:33:44:55"

    async def mode(self) -> str:
        return self.daemon.mode

    async def set_mode(self, mode: str) -> None:
        self.daemon.mode_calls.append(mode)
        self.daemon.mode = mode
        self.daemon.ap_started = False

    async def is_powered(self) -> bool:
        return self.daemon.device_powered

    async def set_powered(self, powered: bool) -> None:
        self.daemon.device_powered = powered


class FakeDaemon(DaemonSession):
    """
    In-memory iwd. Doubles as its own session factory through `connect()`, so
    state survives the session rebuild after a mode switch.
    """

    def __init__(self, mode: str = "station", supported_modes=("station", "ap")):
        self.mode = mode
        self.supported_modes = list(supported_modes)
        self.adapter_powered = True
        self.device_powered = True
        self.has_adapter = True
        self.has_device = True
        self.hide_station = False

        self.state = "disconnected"
        self.scanning = False
        self.scan_polls = 0
        self.scan_reads = 0
        self.networks: List[FakeNetwork] = []
        self.known: List[FakeKnownNetwork] = []
        self.connected: Optional[FakeNetwork] = None
        self.fail_discovery = 0
        self.fail_diagnostics = False

        self.ap_started = False
        self.ap_ssid: Optional[str] = None
        self.ap_clients: List[str] = []

        self.bridge = None
        self.connect_calls: List[str] = []
        self.passphrases: List[str] = []
        self.scan_calls = 0
        self.disconnect_calls = 0
        self.mode_calls: List[str] = []
        self.ap_start_calls = []
        self.agents_registered = 0
        self.sessions_opened = 0
        self.sessions_closed = 0

    def add_network(self, name: str, network_type: str = "open", signal: int = -6000,
                    known: bool = False, **kwargs) -> FakeNetwork:
        known_handle = None
        if known:
            known_handle = FakeKnownNetwork(self, name, network_type)
            self.known.append(known_handle)
        network = FakeNetwork(self, name, network_type, signal, known_handle, **kwargs)
        self.networks.append(network)
        return network

    def add_known(self, name: str, network_type: str = "psk", autoconnect: bool = True) -> FakeKnownNetwork:
        known = FakeKnownNetwork(self, name, network_type, autoconnect)
        self.known.append(known)
        return known

    async def connect(self) -> "FakeDaemon":
        self.sessions_opened += 1
        return self

    async def adapter(self) -> AdapterHandle:
        if not self.has_adapter:
            raise NoAdapterError("No adapter found")
        return FakeAdapter(self)

    async def device(self) -> DeviceHandle:
        if not self.has_device or not self.adapter_powered:
            raise NoDeviceError("No device found")
        return FakeDevice(self)

    async def station(self) -> Optional[StationHandle]:
        if self.mode != "station" or not self.device_powered or self.hide_station:
            return None
        return FakeStation(self)

    async def access_point(self) -> Optional[AccessPointHandle]:
        if self.mode != "ap" or not self.device_powered:
            return None
        return FakeAccessPoint(self)

    async def station_diagnostic(self) -> Optional[StationDiagnosticHandle]:
        if self.mode != "station" or self.connected is None:
            return None
        return FakeStationDiagnostic(self)

    async def access_point_diagnostic(self) -> Optional[AccessPointDiagnosticHandle]:
        if self.mode != "ap" or not self.ap_started:
            return None
        return FakeAccessPointDiagnostic(self)

    async def known_networks(self) -> List[KnownNetworkHandle]:
        return list(self.known)

    async def register_agent(self, bridge) -> None:
        self.bridge = bridge
        self.agents_registered += 1

    async def close(self) -> None:
        self.sessions_closed += 1
        if self.bridge is not None:
            self.bridge.close()


BLOCK = object()


class ScriptedRunner:
    """
    Chooser runner double.

    Each run pops the next scripted response: a string (the chooser's output
    line), None (dismissed), BLOCK (stay open until cancel()) or a coroutine
    function called with (command, input_text) whose result is used the same
    way. A chooser is open, and cancel() ends it with None, for the whole
    run including while a coroutine response is still running.
    """

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.calls = []
        self.interrupted = False
        self.cancelled = 0
        self._open: Optional[asyncio.Future] = None

    @property
    def inputs(self) -> List[Optional[str]]:
        return [input_text for _, input_text in self.calls]

    @property
    def commands(self):
        return [command for command, _ in self.calls]

    async def run(self, command, input_text=None):
        self.calls.append((command, input_text))
        response = self.responses.pop(0) if self.responses else None
        self._open = asyncio.get_running_loop().create_future()
        scripted = None
        try:
            if callable(response):
                scripted = asyncio.ensure_future(response(command, input_text))
                done, _ = await asyncio.wait({scripted, self._open},
                                             return_when=asyncio.FIRST_COMPLETED)
                if scripted not in done:
                    return None
                response = scripted.result()
            if response is BLOCK:
                return await self._open
            return response
        finally:
            if scripted is not None and not scripted.done():
                scripted.cancel()
            self._open = None

    async def cancel(self) -> bool:
        if self._open is None or self._open.done():
            return False
        self.cancelled += 1
        self._open.set_result(None)
        return True


class RecordingSink:
    """Notification sink double keeping every message body."""

    def __init__(self):
        self.messages = []

    @property
    def bodies(self) -> List[str]:
        return [body for body, _, _ in self.messages]

    def send(self, body: str, summary=None, icon=None, timeout_ms=None) -> None:
        self.messages.append((body, icon, timeout_ms))


@pytest.fixture
def daemon():
    return FakeDaemon()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def make_menu():
    """Build a plain-mode fuzzel menu over a ScriptedRunner."""
    def _make(responses=(), icon_mode=IconMode.PLAIN, notifier=None):
        runner = ScriptedRunner(responses)
        return Menu(ChooserKind.FUZZEL, Icons(), runner, icon_mode=icon_mode, notifier=notifier)
    return _make


@pytest.fixture
def fast_scan(monkeypatch):
    """Poll scan state every 10 ms."""
    monkeypatch.setattr("iwmenu.model.SCAN_POLL_INTERVAL", 0.01)
