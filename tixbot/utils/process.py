"""
Cross-platform process helpers

Used outside the supervisor's own event loop: the CLI inspects and cleans up
a gateway left behind by a shell that was killed abruptly, using the PID file
the supervisor maintains next to the config.

Functions:
    - write_pid_file / read_pid_file / remove_pid_file: gateway PID tracking
    - is_process_running: liveness check (zombies count as not running)
    - terminate_process: graceful stop, escalating to kill after a timeout
"""

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import psutil

from tixbot.errors import ProcessError

logger = logging.getLogger(__name__)


def write_pid_file(pid_path: Path, pid: int, command: str) -> None:
    """
    Record the live gateway PID.

    PID file format:
    - pid: Process ID
    - command: Command line used to start the process
    - started_at: ISO 8601 timestamp
    """
    data = {
        "pid": pid,
        "command": command,
        "started_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        pid_path.parent.mkdir(parents=True, exist_ok=True)
        with open(pid_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.debug(f"Wrote pidfile: {pid_path}")
    except OSError as e:
        logger.error(f"Failed to write pidfile {pid_path}: {e}")


def read_pid_file(pid_path: Path) -> Optional[Dict[str, Any]]:
    """Read PID file data, or None if missing or invalid"""
    if not pid_path.exists():
        return None

    try:
        with open(pid_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to read pidfile {pid_path}: {e}")
        return None

    if not isinstance(data, dict) or not isinstance(data.get("pid"), int):
        return None
    return data


def remove_pid_file(pid_path: Path) -> None:
    """Remove the PID file if present"""
    try:
        pid_path.unlink(missing_ok=True)
        logger.debug(f"Removed pidfile: {pid_path}")
    except OSError as e:
        logger.error(f"Failed to remove pidfile {pid_path}: {e}")


def is_process_running(pid: int) -> bool:
    """
    Check whether a process is alive.

    Zombie processes have exited and are only waiting to be reaped, so they
    are reported as not running.
    """
    if pid <= 0:
        return False
    try:
        proc = psutil.Process(pid)
        if proc.status() == psutil.STATUS_ZOMBIE:
            logger.debug(f"Process {pid} is zombie (not running)")
            return False
        return proc.is_running()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


def terminate_process(pid: int, timeout: float = 5.0) -> bool:
    """
    Gracefully terminate a process, killing it if it outlives the timeout.

    Args:
        pid: Process ID
        timeout: Seconds to wait after the termination signal

    Returns:
        True: The process was terminated
        False: The process did not exist

    Raises:
        ProcessError: Permission denied or the process survived SIGKILL
    """
    try:
        proc = psutil.Process(pid)
        proc.terminate()
        logger.info(f"Sent terminate to process {pid}")
        try:
            proc.wait(timeout=timeout)
            return True
        except psutil.TimeoutExpired:
            logger.warning(f"Process {pid} did not terminate after {timeout}s, killing")

        proc.kill()
        deadline = time.time() + 1.0
        while time.time() < deadline:
            if not is_process_running(pid):
                return True
            time.sleep(0.05)
        raise ProcessError(f"Process {pid} survived kill")
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied as e:
        raise ProcessError(f"Permission denied to terminate process {pid}") from e
