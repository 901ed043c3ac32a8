"""Shell settings: where the gateway lives and how the UI attaches to it"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from tixbot.platform_utils import (
    find_executable,
    get_config_path,
    get_log_path,
    get_pid_path,
    get_state_dir,
    resolve_root_dir,
)

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_PORT = 18789
DEFAULT_UI_RETRY_MAX = 20
DEFAULT_UI_RETRY_INTERVAL_MS = 500
DEFAULT_ENTRY_NAME = "openclaw.mjs"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


@dataclass
class ShellSettings:
    """Resolved shell configuration"""

    state_dir: Path = field(default_factory=get_state_dir)
    root_dir: Path = field(default_factory=resolve_root_dir)
    gateway_executable: str = "node"
    gateway_entry: Optional[Path] = None
    # The port is fixed; the persisted config always carries this value.
    gateway_port: int = DEFAULT_GATEWAY_PORT
    ui_retry_max: int = DEFAULT_UI_RETRY_MAX
    ui_retry_interval_ms: int = DEFAULT_UI_RETRY_INTERVAL_MS
    log_level: str = "info"

    @property
    def config_path(self) -> Path:
        return get_config_path(self.state_dir)

    @property
    def log_path(self) -> Path:
        return get_log_path(self.state_dir)

    @property
    def pid_path(self) -> Path:
        return get_pid_path(self.state_dir)

    @classmethod
    def from_env(cls) -> "ShellSettings":
        """
        Build settings from TIXBOT_* environment variables.

        The gateway entry defaults to openclaw.mjs in the root directory when
        that file exists; otherwise the executable is invoked directly.
        """
        root_dir = resolve_root_dir()

        executable = os.getenv("TIXBOT_GATEWAY_EXECUTABLE") or find_executable("node") or "node"

        entry_raw = os.getenv("TIXBOT_GATEWAY_ENTRY")
        if entry_raw:
            entry: Optional[Path] = Path(entry_raw).expanduser()
        else:
            candidate = root_dir / DEFAULT_ENTRY_NAME
            entry = candidate if candidate.exists() else None

        return cls(
            state_dir=get_state_dir(),
            root_dir=root_dir,
            gateway_executable=executable,
            gateway_entry=entry,
            ui_retry_max=_env_int("TIXBOT_UI_RETRY_MAX", DEFAULT_UI_RETRY_MAX),
            ui_retry_interval_ms=_env_int("TIXBOT_UI_RETRY_INTERVAL_MS", DEFAULT_UI_RETRY_INTERVAL_MS),
            log_level=(os.getenv("TIXBOT_LOG_LEVEL") or "info").lower(),
        )

    def with_overrides(
        self,
        state_dir: Optional[Path] = None,
        root_dir: Optional[Path] = None,
        executable: Optional[str] = None,
        entry: Optional[Path] = None,
        log_level: Optional[str] = None,
    ) -> "ShellSettings":
        """Return a copy with CLI overrides applied (None keeps the current value)"""
        changes = {}
        if state_dir is not None:
            changes["state_dir"] = Path(state_dir)
        if root_dir is not None:
            changes["root_dir"] = Path(root_dir)
        if executable is not None:
            changes["gateway_executable"] = executable
        if entry is not None:
            changes["gateway_entry"] = Path(entry)
        if log_level is not None:
            changes["log_level"] = log_level.lower()
        return replace(self, **changes)
