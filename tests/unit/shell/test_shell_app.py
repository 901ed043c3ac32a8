"""End-to-end tests for the shell lifecycle with a fake gateway spawner."""

import asyncio
import json
import re
from pathlib import Path

import pytest
import pytest_asyncio

from tixbot.errors import ConfigWriteError
from tixbot.gateway.supervisor import Supervisor, SupervisorState
from tixbot.log_sink import LogSink
from tixbot.settings import ShellSettings
from tixbot.shell import app as app_module
from tixbot.shell.app import ShellApp
from tixbot.ui.attach import AttachmentController


class FakeProcess:
    def __init__(self, pid: int):
        self.pid = pid
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.returncode = None
        self._exit = asyncio.get_running_loop().create_future()

    async def wait(self) -> int:
        return await self._exit

    def terminate(self) -> None:
        self.finish(-15)

    def finish(self, returncode: int) -> None:
        if self._exit.done():
            return
        self.returncode = returncode
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exit.set_result(returncode)


class ConfigCheckingSpawner:
    """Records each spawn together with the config file as it was at spawn time"""

    def __init__(self, config_path: Path):
        self.config_path = config_path
        self.calls = []
        self.processes = []

    async def __call__(self, *command, **kwargs):
        config = None
        if self.config_path.exists():
            config = json.loads(self.config_path.read_text(encoding="utf-8"))
        self.calls.append((list(command), config))
        process = FakeProcess(pid=2000 + len(self.calls))
        self.processes.append(process)
        return process


class FakeSurface:
    def __init__(self):
        self.loads = []
        self.handler = None
        self.closed = False
        self.failures = []

    def set_load_failed_handler(self, handler):
        self.handler = handler

    def load_url(self, url):
        self.loads.append(url)

    def show_failure(self, failure):
        self.failures.append(failure)

    def close(self):
        self.closed = True


@pytest.fixture
def settings(tmp_path: Path) -> ShellSettings:
    return ShellSettings(
        state_dir=tmp_path / "state",
        root_dir=tmp_path / "app",
        gateway_executable="node",
        gateway_entry=tmp_path / "app" / "openclaw.mjs",
    )


def _make_app(settings: ShellSettings, spawner, surface_factory) -> ShellApp:
    log = LogSink(settings.log_path)
    supervisor = Supervisor(
        log=log,
        executable=settings.gateway_executable,
        entry=settings.gateway_entry,
        spawner=spawner,
    )
    return ShellApp(
        settings,
        surface_factory=surface_factory,
        log=log,
        supervisor=supervisor,
    )


@pytest_asyncio.fixture
async def shell(settings: ShellSettings):
    spawner = ConfigCheckingSpawner(settings.config_path)
    surfaces = []

    def make_surface():
        surface = FakeSurface()
        surfaces.append(surface)
        return surface

    app = _make_app(settings, spawner, make_surface)
    app.controller = AttachmentController(log=app.log, scheduler=lambda delay, cb: cb())
    yield app, spawner, surfaces
    app.quit()
    await app.supervisor.wait()
    app.log.close()


@pytest.mark.asyncio
async def test_first_run_boot(shell, settings: ShellSettings):
    app, spawner, surfaces = shell

    await app.ready()

    config = json.loads(settings.config_path.read_text(encoding="utf-8"))
    token = config["gateway"]["auth"]["token"]
    assert re.fullmatch(r"[0-9a-f]{48}", token)
    assert config["gateway"]["port"] == 18789

    command, config_at_spawn = spawner.calls[0]
    assert config_at_spawn == config
    assert command[command.index("--token") + 1] == token
    assert command[command.index("--port") + 1] == "18789"

    expected_url = f"http://127.0.0.1:18789/?token={token}"
    assert app.url == expected_url
    assert surfaces[0].loads == [expected_url]

    text = settings.log_path.read_text(encoding="utf-8")
    assert "[info] tixbot starting..." in text
    assert f"[info] Root dir: {settings.root_dir}" in text
    assert text.index("Wrote gateway config") < text.index("Starting gateway")
    assert text.index("Starting gateway") < text.index("Loading UI")


@pytest.mark.asyncio
async def test_restart_reuses_token(settings: ShellSettings):
    tokens = []
    for _ in range(2):
        spawner = ConfigCheckingSpawner(settings.config_path)
        app = _make_app(settings, spawner, FakeSurface)
        await app.ready()
        command, _ = spawner.calls[0]
        tokens.append(command[command.index("--token") + 1])
        app.quit()
        await app.supervisor.wait()
        app.log.close()

    assert tokens[0] == tokens[1]


@pytest.mark.asyncio
async def test_activate_with_window_open_does_nothing(shell):
    app, spawner, surfaces = shell
    await app.ready()

    await app.activate()

    assert len(surfaces) == 1
    assert len(spawner.calls) == 1


@pytest.mark.asyncio
async def test_activate_after_window_closed_reattaches_without_respawn(shell):
    app, spawner, surfaces = shell
    await app.ready()

    app.window_closed()
    assert surfaces[0].closed

    await app.activate()

    assert len(surfaces) == 2
    assert len(spawner.calls) == 1
    assert surfaces[1].loads == [app.url]


@pytest.mark.asyncio
async def test_activate_restarts_exited_gateway(shell):
    app, spawner, surfaces = shell
    await app.ready()
    spawner.processes[0].finish(1)
    status = await app.supervisor.wait()
    assert status.outcome is SupervisorState.CRASHED

    app.window_closed()
    await app.activate()

    assert len(spawner.calls) == 2
    assert app.supervisor.is_running


@pytest.mark.asyncio
async def test_quit_stops_gateway_once(shell):
    app, spawner, surfaces = shell
    await app.ready()

    app.quit()
    app.quit()
    await asyncio.wait_for(app.wait_quit(), timeout=1)
    status = await app.supervisor.wait()

    assert status.outcome is SupervisorState.EXITED
    assert not app.supervisor.is_running
    assert surfaces[0].closed
    assert app.log.path.read_text(encoding="utf-8").count("tixbot quitting") == 1


@pytest.mark.asyncio
async def test_all_windows_closed_quits_off_macos(shell, monkeypatch: pytest.MonkeyPatch):
    app, spawner, surfaces = shell
    monkeypatch.setattr(app_module, "get_platform", lambda: "linux")
    await app.ready()

    assert app.all_windows_closed() is True
    await app.supervisor.wait()
    assert not app.supervisor.is_running


@pytest.mark.asyncio
async def test_all_windows_closed_stays_resident_on_macos(shell, monkeypatch: pytest.MonkeyPatch):
    app, spawner, surfaces = shell
    monkeypatch.setattr(app_module, "get_platform", lambda: "macos")
    await app.ready()

    app.window_closed()
    assert app.all_windows_closed() is False
    assert app.supervisor.is_running


@pytest.mark.asyncio
async def test_exhausted_retries_are_shown(shell):
    app, spawner, surfaces = shell
    await app.ready()

    for _ in range(21):
        surfaces[0].handler(-102, "ERR_CONNECTION_REFUSED", app.url)

    assert len(surfaces[0].loads) == 21
    assert len(surfaces[0].failures) == 1
    assert app.last_failure.exhausted
    # The controller never restarts the gateway itself.
    assert len(spawner.calls) == 1


@pytest.mark.asyncio
async def test_failed_bootstrap_leaves_no_window(settings: ShellSettings, tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    broken = ShellSettings(state_dir=blocker / "state", root_dir=settings.root_dir)
    surfaces = []
    log = LogSink(tmp_path / "logs" / "tixbot.log")
    app = ShellApp(broken, surface_factory=lambda: surfaces.append(FakeSurface()) or surfaces[-1], log=log)
    try:
        with pytest.raises(ConfigWriteError):
            await app.ready()
        assert app.surface is None
        assert surfaces == []

        with pytest.raises(ConfigWriteError):
            await app.activate()
    finally:
        log.close()


@pytest.mark.asyncio
async def test_quit_while_gateway_spawning(settings: ShellSettings):
    gate = asyncio.Event()
    spawner = ConfigCheckingSpawner(settings.config_path)

    async def gated(*command, **kwargs):
        await gate.wait()
        return await spawner(*command, **kwargs)

    surfaces = []
    app = _make_app(settings, gated, lambda: surfaces.append(FakeSurface()) or surfaces[-1])
    try:
        booting = asyncio.create_task(app.ready())
        await asyncio.sleep(0)

        app.quit()
        gate.set()
        await booting
        await app.supervisor.wait()

        assert spawner.processes[0].returncode is not None
        assert not app.supervisor.is_running
        assert surfaces[0].loads == []
    finally:
        app.log.close()
