"""
Gateway Process Supervisor

Manages the lifecycle of the locally-launched openclaw gateway.

Features:
- Single-instance start (a second start while a child is live is a no-op)
- Isolated child environment pinned to the config this shell just wrote
- Streaming stdout/stderr capture into the shell log sink
- Exit and spawn-error handling that always returns the supervisor to idle
- PID file tracking so an orphaned gateway can be found after a hard kill

State machine:

    idle -> starting -> running -> (exited | crashed) -> idle

The supervisor never restarts the gateway by itself; the shell decides when
to start again (for example on window re-activation).
"""

import asyncio
import logging
import os
import platform
import subprocess
import traceback
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from tixbot.gateway.config_store import ResolvedGateway
from tixbot.gateway.events import (
    Exited,
    ProcessEvent,
    SpawnFailed,
    StderrChunk,
    StdoutChunk,
    decode_chunk,
)
from tixbot.log_sink import LogSink, parse_level
from tixbot.platform_utils import get_pid_path
from tixbot.utils.process import (
    is_process_running,
    read_pid_file,
    remove_pid_file,
    write_pid_file,
)

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
# Output still buffered in the pipes when the child exits is drained for at most this long.
DRAIN_TIMEOUT_S = 1.0

Spawner = Callable[..., Awaitable[Any]]


class SupervisorState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    CRASHED = "crashed"


@dataclass(frozen=True)
class ExitStatus:
    """How the last gateway child ended"""

    pid: Optional[int]
    code: Optional[int]
    signal: Optional[str]
    outcome: SupervisorState


def build_gateway_command(
    executable: str,
    token: str,
    port: int,
    entry: Optional[Union[str, Path]] = None,
) -> List[str]:
    """
    Build the gateway command line.

    Example:
        build_gateway_command("node", "ab12", 18789, entry="/app/openclaw.mjs")
        -> ["node", "/app/openclaw.mjs", "gateway", "--allow-unconfigured",
            "--auth", "token", "--token", "ab12", "--port", "18789",
            "--bind", "loopback"]
    """
    cmd = [executable]
    if entry:
        cmd.append(str(entry))
    cmd.extend([
        "gateway",
        "--allow-unconfigured",
        "--auth", "token",
        "--token", token,
        "--port", str(port),
        "--bind", "loopback",
    ])
    return cmd


def build_gateway_env(
    resolved: ResolvedGateway,
    base_env: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Build the child environment.

    Inherits the ambient environment, then marks the child as managed (it
    must not respawn itself or start its channels/runtime guard) and pins
    its state dir, config path and token to the ones just written.
    """
    env = dict(os.environ if base_env is None else base_env)
    env.update({
        "OPENCLAW_NO_RESPAWN": "1",
        "OPENCLAW_SKIP_CHANNELS": "1",
        "OPENCLAW_SKIP_RUNTIME_GUARD": "1",
        "OPENCLAW_STATE_DIR": str(resolved.state_dir),
        "OPENCLAW_CONFIG_PATH": str(resolved.config_path),
        "OPENCLAW_GATEWAY_TOKEN": resolved.token,
        "NODE_ENV": "production",
    })
    return env


def gateway_status(state_dir: Path) -> Dict[str, Any]:
    """
    Report the gateway recorded in a state directory's PID file.

    Returns:
        dict with keys: pid, command, started_at, running
        (pid is None when no PID file exists)
    """
    data = read_pid_file(get_pid_path(state_dir))
    if not data:
        return {"pid": None, "command": None, "started_at": None, "running": False}
    pid = data["pid"]
    return {
        "pid": pid,
        "command": data.get("command"),
        "started_at": data.get("started_at"),
        "running": is_process_running(pid),
    }


class Supervisor:
    """
    Owns at most one gateway child process.

    All state is mutated on the event loop thread only; the handle, the
    in-memory token and the monitor task are plain fields.
    """

    def __init__(
        self,
        log: Optional[LogSink] = None,
        executable: str = "node",
        entry: Optional[Union[str, Path]] = None,
        spawner: Optional[Spawner] = None,
        base_env: Optional[Mapping[str, str]] = None,
    ):
        self._log = log
        self.executable = executable
        self.entry = entry
        self._spawner: Spawner = spawner or asyncio.create_subprocess_exec
        self._base_env = base_env

        self._state = SupervisorState.IDLE
        self._handle: Optional[Any] = None
        self._stopped: List[Any] = []
        self._stop_requested = False
        self._resolved: Optional[ResolvedGateway] = None
        self._pid_path: Optional[Path] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self.last_exit: Optional[ExitStatus] = None

    @classmethod
    def from_settings(cls, settings, log: Optional[LogSink] = None) -> "Supervisor":
        return cls(log=log, executable=settings.gateway_executable, entry=settings.gateway_entry)

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    @property
    def pid(self) -> Optional[int]:
        return self._handle.pid if self._handle is not None else None

    @property
    def token(self) -> Optional[str]:
        return self._resolved.token if self._resolved else None

    def _write_log(self, level: str, message: str) -> None:
        if self._log is not None:
            self._log.write(level, message)
        else:
            logger.log(parse_level(level), message)

    def _transition(self, new_state: SupervisorState) -> None:
        logger.debug(f"Supervisor state {self._state.value} -> {new_state.value}")
        self._state = new_state

    async def start(
        self,
        root_dir: Union[str, Path],
        resolved: ResolvedGateway,
        log: Optional[LogSink] = None,
    ) -> None:
        """
        Spawn the gateway unless one is already live.

        Spawn errors are logged and leave the supervisor idle; they are never
        raised to the caller.

        Args:
            root_dir: Working directory for the gateway
            resolved: Port/token/config written by the config store
            log: Log sink (defaults to the one given at construction)
        """
        if log is not None:
            self._log = log

        if self._handle is not None or self._state is SupervisorState.STARTING:
            logger.debug("Gateway already running, start ignored")
            return

        self._transition(SupervisorState.STARTING)
        self._stop_requested = False
        self._resolved = resolved
        self._pid_path = get_pid_path(resolved.state_dir)

        command = build_gateway_command(self.executable, resolved.token, resolved.port, entry=self.entry)
        env = build_gateway_env(resolved, self._base_env)

        self._write_log("info", f"Starting gateway: {self.executable} {self.entry or ''}".rstrip())
        self._write_log("info", f"Gateway config: {resolved.config_path}")

        spawn_kwargs: Dict[str, Any] = {
            "cwd": str(root_dir),
            "env": env,
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.PIPE,
            "stderr": subprocess.PIPE,
        }
        # Windows: Use CREATE_NO_WINDOW flag to prevent CMD window popup
        if platform.system() == 'Windows':
            spawn_kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

        try:
            process = await self._spawner(*command, **spawn_kwargs)
        except Exception as e:
            self._stop_requested = False
            self._handle_event(None, SpawnFailed(e))
            return

        if self._stop_requested:
            # stop() arrived while the spawn was in flight
            self._stop_requested = False
            self._write_log("info", f"Stop requested during startup, terminating gateway (PID {process.pid})")
            self._terminate(process)
            self._transition(SupervisorState.IDLE)
            self._monitor_task = asyncio.create_task(self._monitor(process))
            return

        self._handle = process
        self._transition(SupervisorState.RUNNING)
        write_pid_file(self._pid_path, process.pid, " ".join(command[:2]))
        self._monitor_task = asyncio.create_task(self._monitor(process))

    def stop(self) -> None:
        """
        Signal the gateway to terminate and release the handle.

        Best-effort: does not wait for the child to exit. Idempotent when idle.
        A stop while the spawn is still in flight is recorded, and the child
        is terminated as soon as the spawn returns.
        """
        process = self._handle
        if process is None:
            if self._state is SupervisorState.STARTING:
                self._stop_requested = True
            return

        self._write_log("info", f"Stopping gateway (PID {process.pid})")
        self._terminate(process)
        self._release(process)
        self._transition(SupervisorState.IDLE)

    def _terminate(self, process: Any) -> None:
        self._stopped.append(process)
        try:
            process.terminate()
        except ProcessLookupError:
            logger.debug(f"Gateway {process.pid} already gone")

    async def wait(self) -> Optional[ExitStatus]:
        """Wait until the current child's final event has been handled"""
        task = self._monitor_task
        if task is not None:
            await task
        return self.last_exit

    def _release(self, process: Any) -> None:
        if self._handle is not process:
            return
        self._handle = None
        if self._pid_path is not None:
            remove_pid_file(self._pid_path)

    async def _monitor(self, process: Any) -> None:
        """Consume the child's events until it has exited"""
        queue: "asyncio.Queue[ProcessEvent]" = asyncio.Queue()
        pumps = [
            asyncio.create_task(self._pump(process.stdout, StdoutChunk, queue)),
            asyncio.create_task(self._pump(process.stderr, StderrChunk, queue)),
        ]
        waiter = asyncio.create_task(self._wait_exit(process, pumps, queue))

        try:
            while True:
                event = await queue.get()
                self._handle_event(process, event)
                if isinstance(event, Exited):
                    break
        finally:
            if process in self._stopped:
                self._stopped.remove(process)
            for task in [*pumps, waiter]:
                if not task.done():
                    task.cancel()

    async def _pump(self, stream, kind, queue: "asyncio.Queue[ProcessEvent]") -> None:
        if stream is None:
            return
        try:
            while True:
                data = await stream.read(READ_CHUNK_SIZE)
                if not data:
                    break
                await queue.put(kind(data))
        except (ConnectionError, OSError) as e:
            logger.debug(f"{kind.__name__} reader stopped: {e}")

    async def _wait_exit(self, process: Any, pumps: List[asyncio.Task], queue: "asyncio.Queue[ProcessEvent]") -> None:
        returncode = await process.wait()
        await asyncio.wait(pumps, timeout=DRAIN_TIMEOUT_S)
        await queue.put(Exited.from_returncode(returncode))

    def _handle_event(self, process: Any, event: ProcessEvent) -> None:
        if isinstance(event, StdoutChunk):
            self._write_log("info", f"gateway stdout: {decode_chunk(event.data)}")

        elif isinstance(event, StderrChunk):
            self._write_log("error", f"gateway stderr: {decode_chunk(event.data)}")

        elif isinstance(event, Exited):
            code = "null" if event.code is None else event.code
            sig = "null" if event.signal is None else event.signal
            self._write_log("error", f"gateway exited: code={code} signal={sig}")

            stopped_by_us = process in self._stopped
            if stopped_by_us:
                self._stopped.remove(process)
            outcome = SupervisorState.EXITED if event.clean or stopped_by_us else SupervisorState.CRASHED
            # A stopped child exiting after a newer one started leaves last_exit alone.
            if self._handle is process or (stopped_by_us and self._handle is None):
                self.last_exit = ExitStatus(
                    pid=getattr(process, "pid", None),
                    code=event.code,
                    signal=event.signal,
                    outcome=outcome,
                )

            if self._handle is process:
                self._transition(outcome)
                self._release(process)
                self._transition(SupervisorState.IDLE)
            else:
                logger.debug("Exit of a released gateway; current handle untouched")

        elif isinstance(event, SpawnFailed):
            err = event.error
            detail = "".join(traceback.format_exception(type(err), err, err.__traceback__)).rstrip()
            self._write_log("error", f"gateway spawn error: {detail}")
            self.last_exit = ExitStatus(pid=None, code=None, signal=None, outcome=SupervisorState.CRASHED)
            self._transition(SupervisorState.CRASHED)
            self._handle = None
            self._transition(SupervisorState.IDLE)
