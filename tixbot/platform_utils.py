"""
Cross-platform path utilities for the tixbot shell.

This module provides platform detection and the per-user locations the shell
reads and writes: the state directory holding the gateway config, the PID
file and the log file, plus the root directory the gateway is launched from.

Features:
- Platform detection (Windows/macOS/Linux)
- Per-user application data directory (cross-platform)
- Root directory resolution for source checkouts and frozen bundles
- Gateway executable lookup on PATH
"""

import os
import platform
import shutil
import sys
from pathlib import Path
from typing import Optional

APP_NAME = "tixbot"
CONFIG_FILENAME = "openclaw.json"
LOG_FILENAME = "tixbot.log"
PID_FILENAME = "gateway.pid"


def get_platform() -> str:
    """
    Detect the current operating system platform.

    Returns:
        str: Platform identifier - 'windows', 'macos', or 'linux'
    """
    system = platform.system()
    if system == 'Windows':
        return 'windows'
    elif system == 'Darwin':
        return 'macos'
    else:
        return 'linux'


def get_state_dir(app_name: str = APP_NAME) -> Path:
    """
    Get the per-user application data directory for the shell.

    TIXBOT_STATE_DIR takes precedence over the platform default.

    Returns:
        Path: State directory path
            - Windows: %APPDATA%\\tixbot
            - macOS: ~/Library/Application Support/tixbot
            - Linux: $XDG_CONFIG_HOME/tixbot (default ~/.config/tixbot)

    Examples:
        >>> get_state_dir()
        Path('/home/username/.config/tixbot')  # Linux
    """
    override = os.environ.get('TIXBOT_STATE_DIR')
    if override:
        return Path(override).expanduser()

    current = get_platform()
    if current == 'windows':
        appdata = os.environ.get('APPDATA')
        if appdata:
            return Path(appdata) / app_name
        # Fallback if APPDATA is not set
        return Path.home() / 'AppData' / 'Roaming' / app_name
    if current == 'macos':
        return Path.home() / 'Library' / 'Application Support' / app_name

    xdg = os.environ.get('XDG_CONFIG_HOME')
    if xdg:
        return Path(xdg) / app_name
    return Path.home() / '.config' / app_name


def get_config_path(state_dir: Path) -> Path:
    """Gateway config file inside a state directory"""
    return Path(state_dir) / CONFIG_FILENAME


def get_log_path(state_dir: Path) -> Path:
    """Shell log file inside a state directory"""
    return Path(state_dir) / LOG_FILENAME


def get_pid_path(state_dir: Path) -> Path:
    """Gateway PID file inside a state directory"""
    return Path(state_dir) / PID_FILENAME


def resolve_root_dir() -> Path:
    """
    Resolve the directory the gateway is launched from.

    Frozen builds (PyInstaller) ship the gateway next to the bundled
    resources, so the bundle directory is used. Source checkouts use
    TIXBOT_ROOT_DIR or the current working directory.

    Returns:
        Path: Root directory
    """
    if getattr(sys, 'frozen', False):
        bundle_dir = getattr(sys, '_MEIPASS', None)
        if bundle_dir:
            return Path(bundle_dir)
        return Path(sys.executable).resolve().parent

    override = os.environ.get('TIXBOT_ROOT_DIR')
    if override:
        return Path(override).expanduser()
    return Path.cwd()


def find_executable(name: str) -> Optional[str]:
    """
    Find an executable on PATH.

    Args:
        name: Executable name (e.g., "node")

    Returns:
        Optional[str]: Absolute path, or None if not found
    """
    return shutil.which(name)
