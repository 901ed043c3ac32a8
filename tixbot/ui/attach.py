"""
Control UI attachment

Builds the authenticated control UI URL and keeps the UI surface pointed at
it while the gateway is still booting.

Retry policy:
- Only failures of loopback URLs are retried, so unrelated navigation
  failures never cause a retry storm.
- At most `max` retries, each after a fixed `interval_ms` delay. The delay
  tracks the gateway's startup latency, so it is not exponential.
- Past the bound the failure is terminal and reported to the caller. The
  controller never restarts the gateway itself.
"""

import asyncio
import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol
from urllib.parse import urlencode, urlparse

from tixbot.log_sink import LogSink, parse_level
from tixbot.settings import DEFAULT_UI_RETRY_INTERVAL_MS, DEFAULT_UI_RETRY_MAX

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"

LoadFailedHandler = Callable[[int, str, str], None]


class UISurface(Protocol):
    """What the shell's window must provide for the controller"""

    @property
    def closed(self) -> bool: ...

    def load_url(self, url: str) -> None: ...

    def set_load_failed_handler(self, handler: LoadFailedHandler) -> None: ...


@dataclass
class RetryState:
    attempts: int = 0
    max: int = DEFAULT_UI_RETRY_MAX
    interval_ms: int = DEFAULT_UI_RETRY_INTERVAL_MS

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max


@dataclass(frozen=True)
class LoadFailure:
    """A UI load failure the controller will not retry"""

    url: str
    error_code: int
    description: str
    attempts: int
    # True when the retry bound was hit; False for non-loopback failures.
    exhausted: bool

    @property
    def message(self) -> str:
        if self.exhausted:
            return f"Control UI unreachable after {self.attempts} retries: {self.description} ({self.url})"
        return f"Failed to load {self.url}: {self.description}"


def build_url(port: int, token: str) -> str:
    """http://127.0.0.1:<port>/?token=<url-encoded token>"""
    return f"http://{LOOPBACK_HOST}:{port}/?{urlencode({'token': token})}"


def is_loopback_url(url: str) -> bool:
    """True for http URLs whose host is a loopback address"""
    if not url:
        return False
    try:
        parsed = urlparse(url)
        host = parsed.hostname
    except ValueError:
        return False
    if parsed.scheme != "http" or not host:
        return False
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


class AttachmentController:
    """
    Loads the control UI into a surface, retrying while the gateway boots.

    Args:
        log: Log sink for load failures
        max_retries: Retry bound (default: 20)
        interval_ms: Fixed delay between retries (default: 500)
        scheduler: call_later-style callable; defaults to the running loop's
    """

    def __init__(
        self,
        log: Optional[LogSink] = None,
        max_retries: int = DEFAULT_UI_RETRY_MAX,
        interval_ms: int = DEFAULT_UI_RETRY_INTERVAL_MS,
        scheduler: Optional[Callable[[float, Callable[[], None]], Any]] = None,
    ):
        self._log = log
        self._max_retries = max_retries
        self._interval_ms = interval_ms
        self._scheduler = scheduler
        self.retry = RetryState(max=max_retries, interval_ms=interval_ms)
        self.url: Optional[str] = None
        self._surface: Optional[UISurface] = None
        self._on_failure: Optional[Callable[[LoadFailure], None]] = None
        self._pending: Optional[Any] = None

    @classmethod
    def from_settings(cls, settings, log: Optional[LogSink] = None) -> "AttachmentController":
        return cls(log=log, max_retries=settings.ui_retry_max, interval_ms=settings.ui_retry_interval_ms)

    def _write_log(self, level: str, message: str) -> None:
        if self._log is not None:
            self._log.write(level, message)
        else:
            logger.log(parse_level(level), message)

    def attach(
        self,
        surface: UISurface,
        url: str,
        on_failure: Optional[Callable[[LoadFailure], None]] = None,
    ) -> None:
        """Point the surface at url; a fresh retry budget applies to this load"""
        self.detach()
        self._surface = surface
        self.url = url
        self._on_failure = on_failure
        self.retry = RetryState(max=self._max_retries, interval_ms=self._interval_ms)

        surface.set_load_failed_handler(self.handle_load_failure)
        self._write_log("info", f"Loading UI: {url}")
        surface.load_url(url)

    def detach(self) -> None:
        """Drop the surface and cancel a pending retry"""
        if self._pending is not None and hasattr(self._pending, "cancel"):
            self._pending.cancel()
        self._pending = None
        self._surface = None

    def handle_load_failure(self, error_code: int, description: str, failing_url: str) -> None:
        """Surface load-failure hook (did-fail-load)"""
        self._write_log("error", f"UI failed to load: {error_code} {description} {failing_url}")

        if not is_loopback_url(failing_url):
            self._fail(LoadFailure(failing_url, error_code, description, self.retry.attempts, exhausted=False))
            return

        if self.retry.exhausted:
            self._fail(LoadFailure(failing_url, error_code, description, self.retry.attempts, exhausted=True))
            return

        self.retry.attempts += 1
        logger.debug(f"Scheduling UI retry {self.retry.attempts}/{self.retry.max}")
        self._pending = self._schedule(self.retry.interval_ms / 1000.0, self._reload)

    def _schedule(self, delay_s: float, callback: Callable[[], None]) -> Any:
        if self._scheduler is not None:
            return self._scheduler(delay_s, callback)
        return asyncio.get_running_loop().call_later(delay_s, callback)

    def _reload(self) -> None:
        self._pending = None
        surface = self._surface
        if surface is None or surface.closed or self.url is None:
            return
        surface.load_url(self.url)

    def _fail(self, failure: LoadFailure) -> None:
        self._write_log("error", failure.message)
        if self._on_failure is not None:
            self._on_failure(failure)
