"""
End-to-end session scenarios.
Drives the session controller against the in-memory daemon with a scripted
chooser: connect flows, scan preemption, mode switch and access point start.
"""

import asyncio

import pytest

from conftest import BLOCK, FakeDaemon
from iwmenu.app import run_sessions
from iwmenu.controller import SessionController
from iwmenu.errors import ConnectionAborted
from iwmenu.icons import IconMode
from iwmenu.model import Mode
from iwmenu.presentation import clean_output


async def run_controller(daemon, menu, sink):
    controller = await SessionController.create(daemon, menu, sink)
    try:
        await controller.run()
    finally:
        await controller.close()
    return controller


class TestConnectFlows:
    """Joining networks from the main menu."""

    @pytest.mark.asyncio
    async def test_fresh_connect_to_open_network(self, daemon, sink, make_menu):
        """Selecting an open network connects without a passphrase prompt."""
        daemon.add_network("Cafe", "open", -5500)
        menu = make_menu(["Cafe", None])

        controller = await run_controller(daemon, menu, sink)

        assert daemon.connect_calls == ["Cafe"]
        assert daemon.passphrases == []
        assert not any(command.password for command in menu.runner.commands)
        assert controller.adapter.device.station.connected_network.name == "Cafe"
        assert "Connected to Cafe" in sink.bodies

    @pytest.mark.asyncio
    async def test_secured_network_with_passphrase(self, daemon, sink, make_menu):
        """The passphrase typed by the user reaches the agent and the connect succeeds."""
        daemon.add_network("Home", "psk", -4000)
        menu = make_menu(["Home", "hunter2", None])

        controller = await run_controller(daemon, menu, sink)

        prompt = menu.runner.commands[1]
        assert prompt.password is True
        assert "Home" in prompt.placeholder
        assert menu.runner.inputs[1] is None
        assert daemon.passphrases == ["hunter2"]
        assert daemon.connect_calls == ["Home"]
        assert controller.adapter.device.station.connected_network.name == "Home"

    @pytest.mark.asyncio
    async def test_passphrase_prompt_dismissed(self, daemon, sink, make_menu):
        """Dismissing the prompt posts a cancel, skips the connect and notifies."""
        network = daemon.add_network("Home", "psk", -4000)
        menu = make_menu(["Home", None, None])

        controller = await run_controller(daemon, menu, sink)

        assert daemon.connect_calls == []
        assert "Connection cancelled" in sink.bodies
        assert controller.adapter.device.station.connected_network is None

        # The queued cancel answers the next request with an abort
        with pytest.raises(ConnectionAborted):
            await controller.bridge.request_passphrase(network.path)


class TestScanPreemption:
    """Scan completion while the main menu is open."""

    @pytest.mark.asyncio
    async def test_scan_completion_redraws_main_menu(self, daemon, sink, make_menu, fast_scan):
        """The open main menu is cancelled and redrawn with fresh signal values."""
        cafe = daemon.add_network("Cafe", "open", -6000)
        home = daemon.add_network("Home", "psk", -7000, known=True)

        async def finish_scan(command, input_text):
            cafe.signal = -2000
            home.signal = -4000
            daemon.scanning = False
            return BLOCK

        menu = make_menu(["Scan", finish_scan, None], icon_mode=IconMode.GLYPH)

        controller = await run_controller(daemon, menu, sink)

        assert daemon.scan_calls == 1
        assert menu.runner.cancelled == 1
        assert len(menu.runner.calls) == 3
        assert controller.running is False

        before, after = menu.runner.inputs[1], menu.runner.inputs[2]
        labels_before = {clean_output(line, IconMode.GLYPH) for line in before.splitlines()}
        labels_after = {clean_output(line, IconMode.GLYPH) for line in after.splitlines()}
        assert labels_before == labels_after
        assert {"Cafe", "Home"} <= labels_after
        assert before != after

        station = controller.adapter.device.station
        assert [s for _, s in station.new_networks] == [-2000]
        assert [s for _, s in station.known_networks] == [-4000]
        assert "Scan completed" in sink.bodies

    @pytest.mark.asyncio
    async def test_scan_completion_leaves_submenu_open(self, daemon, sink, make_menu, fast_scan):
        """A scan finishing while the user is in settings does not cancel the chooser."""
        daemon.add_network("Cafe", "open", -6000)

        async def finish_scan_in_settings(command, input_text):
            daemon.scanning = False
            return None

        menu = make_menu(["Scan", "Settings", finish_scan_in_settings, None])

        controller = await run_controller(daemon, menu, sink)

        assert menu.runner.cancelled == 0
        assert len(menu.runner.calls) == 4
        assert controller.running is False

    @pytest.mark.asyncio
    async def test_scan_completion_leaves_passphrase_prompt_open(self, daemon, sink, make_menu, fast_scan):
        """A scan finishing while the passphrase is typed does not cancel the prompt."""
        daemon.add_network("Home", "psk", -4000)

        async def type_slowly(command, input_text):
            daemon.scanning = False
            await asyncio.sleep(0.2)
            return "hunter2"

        menu = make_menu(["Scan", "Home", type_slowly, None])

        controller = await run_controller(daemon, menu, sink)

        assert menu.runner.cancelled == 0
        assert daemon.connect_calls == ["Home"]
        assert daemon.passphrases == ["hunter2"]
        assert "Scan completed" in sink.bodies
        assert "Connection cancelled" not in sink.bodies
        assert controller.adapter.device.station.connected_network.name == "Home"

    @pytest.mark.asyncio
    async def test_scan_completion_leaves_daemon_prompt_open(self, daemon, sink, make_menu, fast_scan):
        """A prompt raised by the daemon during a connect survives a finishing scan."""
        daemon.add_network("Home", "psk", -4000, known=True, requires_passphrase=True)

        async def type_slowly(command, input_text):
            daemon.scanning = False
            await asyncio.sleep(0.2)
            return "newkey"

        menu = make_menu(["Scan", "Home", type_slowly, None])

        await run_controller(daemon, menu, sink)

        assert menu.runner.cancelled == 0
        assert daemon.passphrases == ["newkey"]
        assert "Connected to Home" in sink.bodies


class TestModeSwitch:
    """Switching between station and access point mode."""

    @pytest.mark.asyncio
    async def test_switch_requests_reset(self, daemon, sink, make_menu):
        """Choosing the switch ends the session with a reset request."""
        daemon.add_network("Cafe")
        menu = make_menu(["Settings", "Switch Mode to Access Point"])

        controller = await run_controller(daemon, menu, sink)

        assert controller.reset_requested is True
        assert controller.reset_mode is Mode.AP
        assert daemon.mode == "ap"

    @pytest.mark.asyncio
    async def test_next_session_shows_ap_menu(self, daemon, sink, make_menu):
        """The rebuilt session starts in AP mode and shows the AP menu."""
        menu = make_menu(["Settings", "Switch Mode to Access Point", None])

        final_mode = await run_sessions(daemon.connect, menu, sink)

        assert final_mode is Mode.AP
        assert daemon.sessions_opened == 2
        assert daemon.sessions_closed == 2
        assert daemon.agents_registered == 2
        assert "Start AP" in menu.runner.inputs[-1]


class TestAccessPointStart:
    """Starting an access point with nothing configured yet."""

    @pytest.fixture
    def ap_daemon(self):
        return FakeDaemon(mode="ap")

    @pytest.mark.asyncio
    async def test_start_prompts_for_ssid_then_password(self, ap_daemon, sink, make_menu):
        """Both values are asked for in order and passed to a single start call."""
        menu = make_menu(["Start AP", "MyHotspot", "supersecret", None])

        controller = await run_controller(ap_daemon, menu, sink)

        commands = menu.runner.commands
        assert commands[1].password is False
        assert commands[2].password is True
        assert ap_daemon.ap_start_calls == [("MyHotspot", "supersecret")]
        assert controller.adapter.device.access_point.has_started is True
        assert "Stop AP" in menu.runner.inputs[-1]

    @pytest.mark.asyncio
    async def test_dismissed_password_aborts_start(self, ap_daemon, sink, make_menu):
        """Nothing is started when the password prompt is dismissed."""
        menu = make_menu(["Start AP", "MyHotspot", None, None])

        controller = await run_controller(ap_daemon, menu, sink)

        assert ap_daemon.ap_start_calls == []
        assert controller.adapter.device.access_point.ssid == "MyHotspot"
        assert controller.adapter.device.access_point.has_started is False

    @pytest.mark.asyncio
    async def test_stored_values_skip_prompts(self, ap_daemon, sink, make_menu):
        """SSID and password set beforehand are not asked for again."""
        menu = make_menu(["Set SSID", "Lab", "Set Password", "password1", "Start AP", None])

        await run_controller(ap_daemon, menu, sink)

        assert ap_daemon.ap_start_calls == [("Lab", "password1")]
        assert len(menu.runner.calls) == 6
