"""
Browser-backed UI surface

Stands in for a native window when the shell runs headless from the CLI:
a load is a reachability probe of the URL, and once the gateway answers the
URL is handed to the system browser. Network-level failures are reported
through the load-failed handler with Chromium-style error codes, the same
signal a native web view would raise.
"""

import asyncio
import logging
import webbrowser
from typing import Callable, Optional, Set

import requests
from rich.console import Console

from tixbot.ui.attach import LoadFailedHandler, LoadFailure

logger = logging.getLogger(__name__)

ERR_FAILED = -2
ERR_TIMED_OUT = -7
ERR_CONNECTION_REFUSED = -102


class BrowserSurface:
    """UISurface that probes with requests and opens the system browser"""

    def __init__(
        self,
        probe_timeout: float = 2.0,
        open_browser: Callable[[str], object] = webbrowser.open,
        console: Optional[Console] = None,
    ):
        self._probe_timeout = probe_timeout
        self._open_browser = open_browser
        self._console = console or Console(stderr=True)
        self._handler: Optional[LoadFailedHandler] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False
        self.loaded_url: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def set_load_failed_handler(self, handler: LoadFailedHandler) -> None:
        self._handler = handler

    def load_url(self, url: str) -> None:
        if self._closed:
            return
        task = asyncio.get_running_loop().create_task(self._load(url))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _load(self, url: str) -> None:
        try:
            await asyncio.to_thread(self._probe, url)
        except requests.exceptions.ConnectionError:
            self._report(ERR_CONNECTION_REFUSED, "ERR_CONNECTION_REFUSED", url)
            return
        except requests.exceptions.Timeout:
            self._report(ERR_TIMED_OUT, "ERR_TIMED_OUT", url)
            return
        except requests.exceptions.RequestException as e:
            logger.debug(f"Probe of control UI failed: {e}")
            self._report(ERR_FAILED, "ERR_FAILED", url)
            return

        if self._closed:
            return
        self.loaded_url = url
        self._console.print("[green]control UI ready, opening browser[/green]")
        self._open_browser(url)

    def _probe(self, url: str) -> int:
        # Any HTTP answer means the page loaded; only transport errors count as failures.
        response = requests.get(url, timeout=self._probe_timeout, allow_redirects=False)
        return response.status_code

    def _report(self, code: int, description: str, url: str) -> None:
        if self._closed or self._handler is None:
            return
        self._handler(code, description, url)

    def show_failure(self, failure: LoadFailure) -> None:
        """Terminal, user-visible load failure"""
        self._console.print(f"[red]{failure.message}[/red]")
        self._console.print("[dim]Check the shell log for gateway output.[/dim]")

    def close(self) -> None:
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
