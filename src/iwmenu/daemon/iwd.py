"""
iwd-backed daemon session.
Talks to net.connman.iwd on the system bus through jeepney's asyncio router.
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, Dict, List, Optional, Tuple

from jeepney import DBusAddress, HeaderFields, MatchRule, MessageType, new_error, new_method_call, new_method_return
from jeepney.io.asyncio import open_dbus_router
from jeepney.wrappers import DBusErrorResponse, unwrap_msg

from ..errors import (
    ABORTED_ERROR_NAME,
    ConnectionAborted,
    DaemonCallFailed,
    NoAdapterError,
    NoDeviceError,
    PassphraseChannelClosed,
)
from .session import (
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

logger = logging.getLogger(__name__)

IWD_SERVICE = "net.connman.iwd"
IWD_ROOT_PATH = "/net/connman/iwd"

ADAPTER_INTERFACE = "net.connman.iwd.Adapter"
DEVICE_INTERFACE = "net.connman.iwd.Device"
STATION_INTERFACE = "net.connman.iwd.Station"
STATION_DIAGNOSTIC_INTERFACE = "net.connman.iwd.StationDiagnostic"
ACCESS_POINT_INTERFACE = "net.connman.iwd.AccessPoint"
ACCESS_POINT_DIAGNOSTIC_INTERFACE = "net.connman.iwd.AccessPointDiagnostic"
NETWORK_INTERFACE = "net.connman.iwd.Network"
KNOWN_NETWORK_INTERFACE = "net.connman.iwd.KnownNetwork"
AGENT_MANAGER_INTERFACE = "net.connman.iwd.AgentManager"
AGENT_INTERFACE = "net.connman.iwd.Agent"

PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"
OBJECT_MANAGER_INTERFACE = "org.freedesktop.DBus.ObjectManager"

AGENT_PATH = "/iwmenu/agent"
AGENT_CANCELED_ERROR = "net.connman.iwd.Agent.Error.Canceled"


def _unwrap_variant(value: Any) -> Any:
    """Strip jeepney's (signature, value) variant wrapping, recursively for dicts."""
    if isinstance(value, tuple) and len(value) == 2 and isinstance(value[0], str):
        value = value[1]
    if isinstance(value, dict):
        return {k: _unwrap_variant(v) for k, v in value.items()}
    return value


class IwdObject:
    """Base for remote handles: one object path, one interface."""

    interface = ""

    def __init__(self, session: "IwdSession", path: str):
        self._session = session
        self.path = path

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path!r})"

    def __eq__(self, other) -> bool:
        return type(self) is type(other) and self.path == other.path

    def __hash__(self) -> int:
        return hash((type(self), self.path))

    async def _properties(self) -> Dict[str, Any]:
        return await self._session.get_all_properties(self.path, self.interface)

    async def _get(self, name: str) -> Any:
        props = await self._properties()
        if name not in props:
            raise DaemonCallFailed(
                f"get {name}", f"{self.interface} at {self.path} has no property {name}")
        return props[name]

    async def _get_optional(self, name: str, default: Any = None) -> Any:
        props = await self._properties()
        return props.get(name, default)

    async def _set(self, name: str, signature: str, value: Any) -> None:
        await self._session.set_property(self.path, self.interface, name, signature, value)

    async def _call(self, method: str, signature: Optional[str] = None, body: tuple = ()) -> tuple:
        return await self._session.call(self.path, self.interface, method, signature, body)


class IwdKnownNetwork(IwdObject, KnownNetworkHandle):
    interface = KNOWN_NETWORK_INTERFACE

    async def name(self) -> str:
        return await self._get("Name")

    async def network_type(self) -> str:
        return await self._get("Type")

    async def autoconnect(self) -> bool:
        return bool(await self._get("AutoConnect"))

    async def set_autoconnect(self, enabled: bool) -> None:
        await self._set("AutoConnect", "b", enabled)

    async def hidden(self) -> bool:
        return bool(await self._get_optional("Hidden", False))

    async def last_connected_time(self) -> Optional[str]:
        return await self._get_optional("LastConnectedTime")

    async def forget(self) -> None:
        await self._call("Forget")


class IwdNetwork(IwdObject, NetworkHandle):
    interface = NETWORK_INTERFACE

    async def name(self) -> str:
        return await self._get("Name")

    async def network_type(self) -> str:
        return await self._get("Type")

    async def connected(self) -> bool:
        return bool(await self._get("Connected"))

    async def known_network(self) -> Optional[KnownNetworkHandle]:
        path = await self._get_optional("KnownNetwork")
        if not path:
            return None
        return IwdKnownNetwork(self._session, path)

    async def connect(self) -> None:
        await self._call("Connect")


class IwdStation(IwdObject, StationHandle):
    interface = STATION_INTERFACE

    async def state(self) -> str:
        return await self._get("State")

    async def is_scanning(self) -> bool:
        return bool(await self._get_optional("Scanning", False))

    async def connected_network(self) -> Optional[NetworkHandle]:
        path = await self._get_optional("ConnectedNetwork")
        if not path:
            return None
        return IwdNetwork(self._session, path)

    async def discovered_networks(self) -> List[Tuple[NetworkHandle, int]]:
        body = await self._call("GetOrderedNetworks")
        return [(IwdNetwork(self._session, path), int(signal)) for path, signal in body[0]]

    async def scan(self) -> None:
        await self._call("Scan")

    async def disconnect(self) -> None:
        await self._call("Disconnect")


class IwdAccessPoint(IwdObject, AccessPointHandle):
    interface = ACCESS_POINT_INTERFACE

    async def has_started(self) -> bool:
        return bool(await self._get("Started"))

    async def name(self) -> Optional[str]:
        return await self._get_optional("Name")

    async def frequency(self) -> Optional[int]:
        return await self._get_optional("Frequency")

    async def is_scanning(self) -> bool:
        return bool(await self._get_optional("Scanning", False))

    async def pairwise_ciphers(self) -> List[str]:
        return list(await self._get_optional("PairwiseCiphers", []))

    async def group_cipher(self) -> Optional[str]:
        return await self._get_optional("GroupCipher")

    async def start(self, ssid: str, psk: str) -> None:
        await self._call("Start", "ss", (ssid, psk))

    async def stop(self) -> None:
        await self._call("Stop")

    async def scan(self) -> None:
        await self._call("Scan")


class IwdStationDiagnostic(IwdObject, StationDiagnosticHandle):
    interface = STATION_DIAGNOSTIC_INTERFACE

    async def get(self) -> Dict[str, str]:
        body = await self._call("GetDiagnostics")
        return {k: str(v) for k, v in _unwrap_variant(body[0]).items()}


class IwdAccessPointDiagnostic(IwdObject, AccessPointDiagnosticHandle):
    interface = ACCESS_POINT_DIAGNOSTIC_INTERFACE

    async def get(self) -> List[Dict[str, str]]:
        body = await self._call("GetDiagnostics")
        return [
            {k: str(v) for k, v in _unwrap_variant(client).items()}
            for client in body[0]
        ]


class IwdAdapter(IwdObject, AdapterHandle):
    interface = ADAPTER_INTERFACE

    async def is_powered(self) -> bool:
        return bool(await self._get("Powered"))

    async def set_powered(self, powered: bool) -> None:
        await self._set("Powered", "b", powered)

    async def name(self) -> str:
        return await self._get("Name")

    async def model(self) -> Optional[str]:
        return await self._get_optional("Model")

    async def vendor(self) -> Optional[str]:
        return await self._get_optional("Vendor")

    async def supported_modes(self) -> List[str]:
        return list(await self._get_optional("SupportedModes", []))


class IwdDevice(IwdObject, DeviceHandle):
    interface = DEVICE_INTERFACE

    async def name(self) -> str:
        return await self._get("Name")

    async def address(self) -> str:
        return await self._get("Address")

    async def mode(self) -> str:
        return await self._get("Mode")

    async def set_mode(self, mode: str) -> None:
        await self._set("Mode", "s", mode)

    async def is_powered(self) -> bool:
        return bool(await self._get("Powered"))

    async def set_powered(self, powered: bool) -> None:
        await self._set("Powered", "b", powered)


class IwdSession(DaemonSession):
    """Daemon session over a jeepney asyncio router on the system bus."""

    def __init__(self, router, exit_stack: Optional[AsyncExitStack] = None):
        self._router = router
        self._exit_stack = exit_stack
        self._agent_task: Optional[asyncio.Task] = None
        self._agent_bridge = None
        self._agent_requests: set = set()

    @classmethod
    async def connect(cls, bus: str = "SYSTEM") -> "IwdSession":
        """
        Open a bus connection and return a session on it.

        Raises:
            DaemonCallFailed: If the bus cannot be reached
        """
        stack = AsyncExitStack()
        try:
            router = await stack.enter_async_context(open_dbus_router(bus=bus))
        except (OSError, ValueError, KeyError) as e:
            await stack.aclose()
            raise DaemonCallFailed("connect", f"Cannot open {bus} bus: {e}") from e
        logger.info(f"Connected to the {bus} bus")
        return cls(router, stack)

    async def __aenter__(self) -> "IwdSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # -- low level -----------------------------------------------------

    async def call(self, path: str, interface: str, method: str,
                   signature: Optional[str] = None, body: tuple = ()) -> tuple:
        address = DBusAddress(path, bus_name=IWD_SERVICE, interface=interface)
        message = new_method_call(address, method, signature, body)
        op = f"{interface.rsplit('.', 1)[-1]}.{method}"
        try:
            reply = await self._router.send_and_get_reply(message)
            return unwrap_msg(reply)
        except DBusErrorResponse as e:
            if e.name == ABORTED_ERROR_NAME:
                raise ConnectionAborted(op, str(e.data[0]) if e.data else "Operation aborted") from e
            detail = e.data[0] if e.data else e.name
            raise DaemonCallFailed(op, str(detail), e.name) from e
        except (OSError, EOFError) as e:
            raise DaemonCallFailed(op, f"Bus transport error: {e}") from e

    async def get_all_properties(self, path: str, interface: str) -> Dict[str, Any]:
        body = await self.call(path, PROPERTIES_INTERFACE, "GetAll", "s", (interface,))
        return _unwrap_variant(body[0])

    async def set_property(self, path: str, interface: str, name: str,
                           signature: str, value: Any) -> None:
        await self.call(path, PROPERTIES_INTERFACE, "Set", "ssv",
                        (interface, name, (signature, value)))

    async def managed_objects(self) -> Dict[str, Dict[str, Any]]:
        body = await self.call("/", OBJECT_MANAGER_INTERFACE, "GetManagedObjects")
        return body[0]

    async def _find_paths(self, interface: str) -> List[str]:
        objects = await self.managed_objects()
        return sorted(path for path, interfaces in objects.items() if interface in interfaces)

    async def _find_first(self, interface: str) -> Optional[str]:
        paths = await self._find_paths(interface)
        return paths[0] if paths else None

    # -- DaemonSession -------------------------------------------------

    async def adapter(self) -> AdapterHandle:
        path = await self._find_first(ADAPTER_INTERFACE)
        if path is None:
            raise NoAdapterError("No Wi-Fi adapter found")
        return IwdAdapter(self, path)

    async def device(self) -> DeviceHandle:
        path = await self._find_first(DEVICE_INTERFACE)
        if path is None:
            raise NoDeviceError("No Wi-Fi device found")
        return IwdDevice(self, path)

    async def station(self) -> Optional[StationHandle]:
        path = await self._find_first(STATION_INTERFACE)
        return IwdStation(self, path) if path else None

    async def access_point(self) -> Optional[AccessPointHandle]:
        path = await self._find_first(ACCESS_POINT_INTERFACE)
        return IwdAccessPoint(self, path) if path else None

    async def station_diagnostic(self) -> Optional[StationDiagnosticHandle]:
        path = await self._find_first(STATION_DIAGNOSTIC_INTERFACE)
        return IwdStationDiagnostic(self, path) if path else None

    async def access_point_diagnostic(self) -> Optional[AccessPointDiagnosticHandle]:
        path = await self._find_first(ACCESS_POINT_DIAGNOSTIC_INTERFACE)
        return IwdAccessPointDiagnostic(self, path) if path else None

    async def known_networks(self) -> List[KnownNetworkHandle]:
        return [IwdKnownNetwork(self, path)
                for path in await self._find_paths(KNOWN_NETWORK_INTERFACE)]

    # -- agent ---------------------------------------------------------

    async def register_agent(self, bridge) -> None:
        self._agent_bridge = bridge
        rule = MatchRule(type=MessageType.method_call, interface=AGENT_INTERFACE, path=AGENT_PATH)
        ready = asyncio.Event()
        self._agent_task = asyncio.create_task(self._serve_agent(rule, ready))
        await ready.wait()
        await self.call(IWD_ROOT_PATH, AGENT_MANAGER_INTERFACE, "RegisterAgent", "o", (AGENT_PATH,))
        logger.info(f"Registered agent at {AGENT_PATH}")

    async def _serve_agent(self, rule: MatchRule, ready: asyncio.Event) -> None:
        with self._router.filter(rule, bufsize=0) as queue:
            ready.set()
            while True:
                message = await queue.get()
                task = asyncio.create_task(self._answer_agent_call(message))
                self._agent_requests.add(task)
                task.add_done_callback(self._agent_requests.discard)

    async def _answer_agent_call(self, message) -> None:
        member = message.header.fields.get(HeaderFields.member)
        if member == "RequestPassphrase":
            network_path = message.body[0]
            try:
                passphrase = await self._agent_bridge.request_passphrase(network_path)
                reply = new_method_return(message, "s", (passphrase,))
            except (ConnectionAborted, PassphraseChannelClosed) as e:
                reply = new_error(message, AGENT_CANCELED_ERROR, "s", (str(e),))
        elif member in ("Release", "Cancel"):
            logger.info(f"Agent {member} received: {message.body}")
            reply = new_method_return(message)
        else:
            logger.warning(f"Agent request {member} is not supported")
            reply = new_error(message, AGENT_CANCELED_ERROR, "s", (f"{member} not supported",))
        try:
            await self._router.send(reply)
        except OSError as e:
            logger.error(f"Failed to answer agent {member}: {e}")

    async def close(self) -> None:
        if self._agent_task is not None:
            try:
                await self.call(IWD_ROOT_PATH, AGENT_MANAGER_INTERFACE, "UnregisterAgent",
                                "o", (AGENT_PATH,))
            except DaemonCallFailed as e:
                logger.warning(f"Failed to unregister agent: {e}")
            if self._agent_bridge is not None:
                self._agent_bridge.close()
            self._agent_task.cancel()
            for task in list(self._agent_requests):
                task.cancel()
            self._agent_task = None
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
            self._exit_stack = None
