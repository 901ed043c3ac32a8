"""
Shell lifecycle

ShellApp is created at shell startup and torn down at quit. It owns the one
Supervisor and the one AttachmentController and wires them to the host
window's lifecycle hooks:

- ready:               bootstrap config -> start gateway -> build URL -> attach UI
- activate:            re-run ready when the window was closed (restarts an exited gateway)
- window_closed:       forget the surface
- all_windows_closed:  quit, except on macOS where the app stays resident
- quit:                signal the gateway to stop (best-effort, no wait)
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from tixbot.gateway.config_store import ConfigStore, ResolvedGateway
from tixbot.gateway.supervisor import Supervisor
from tixbot.log_sink import LogSink
from tixbot.platform_utils import get_platform
from tixbot.settings import ShellSettings
from tixbot.ui.attach import AttachmentController, LoadFailure, UISurface, build_url

logger = logging.getLogger(__name__)


class ShellApp:
    """Desktop shell state: gateway supervisor, UI controller and current window"""

    def __init__(
        self,
        settings: ShellSettings,
        surface_factory: Callable[[], UISurface],
        log: Optional[LogSink] = None,
        supervisor: Optional[Supervisor] = None,
        controller: Optional[AttachmentController] = None,
    ):
        self.settings = settings
        self._surface_factory = surface_factory
        self.log = log or LogSink(settings.log_path, level=settings.log_level)
        self.supervisor = supervisor or Supervisor.from_settings(settings, log=self.log)
        self.controller = controller or AttachmentController.from_settings(settings, log=self.log)

        self.surface: Optional[UISurface] = None
        self.resolved: Optional[ResolvedGateway] = None
        self.url: Optional[str] = None
        self.last_failure: Optional[LoadFailure] = None
        self._quit = asyncio.Event()

    @property
    def root_dir(self) -> Path:
        return Path(self.settings.root_dir)

    async def ready(self) -> None:
        """
        Create the window and attach it to a running gateway.

        Ordering: the config is written (and fsynced) before the spawn, and
        the spawn happens before the URL is built, so the UI always carries
        the token the gateway was started with.

        Raises:
            TokenGenerationError: No secure random source (fatal)
            ConfigWriteError: State directory not writable (fatal)
        """
        self.log.info("tixbot starting...")
        self.log.info(f"Root dir: {self.root_dir}")

        store = ConfigStore(self.settings.state_dir, log=self.log, port=self.settings.gateway_port)
        self.resolved = store.ensure_config()
        self.surface = self._surface_factory()

        await self.supervisor.start(self.root_dir, self.resolved, self.log)
        if self.surface is None:
            # Window closed or shell quit while the spawn was in flight
            return

        self.url = build_url(self.resolved.port, self.resolved.token)
        self.controller.attach(self.surface, self.url, self._on_load_failure)

    async def activate(self) -> None:
        """App re-activated (dock click): reopen the window if it was closed"""
        if self.surface is None:
            await self.ready()

    def window_closed(self) -> None:
        self.controller.detach()
        surface = self.surface
        self.surface = None
        if surface is not None and hasattr(surface, "close"):
            surface.close()

    def all_windows_closed(self) -> bool:
        """Returns True when the shell quit as a result"""
        if get_platform() == "macos":
            return False
        self.quit()
        return True

    def quit(self) -> None:
        if self._quit.is_set():
            return
        self.log.info("tixbot quitting")
        self.window_closed()
        self.supervisor.stop()
        self._quit.set()

    async def wait_quit(self) -> None:
        await self._quit.wait()

    def _on_load_failure(self, failure: LoadFailure) -> None:
        self.last_failure = failure
        surface = self.surface
        if surface is not None and hasattr(surface, "show_failure"):
            surface.show_failure(failure)
