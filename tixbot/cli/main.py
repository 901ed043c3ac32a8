"""CLI main entry point"""

import asyncio
import logging
import signal
import webbrowser
from pathlib import Path
from typing import Optional

import click
from rich import print as rprint
from rich.table import Table

from tixbot import __version__
from tixbot.errors import ConfigWriteError, ProcessError, TokenGenerationError
from tixbot.gateway.config_store import ConfigStore
from tixbot.gateway.supervisor import SupervisorState, gateway_status
from tixbot.log_sink import LogSink
from tixbot.platform_utils import get_pid_path
from tixbot.settings import ShellSettings
from tixbot.shell.app import ShellApp
from tixbot.ui.attach import build_url
from tixbot.ui.browser_surface import BrowserSurface
from tixbot.utils.process import remove_pid_file, terminate_process

logger = logging.getLogger(__name__)


def _mask(token: str) -> str:
    if len(token) <= 8:
        return "*" * len(token)
    return f"{token[:4]}…{token[-4:]}"


@click.group()
@click.version_option(version=__version__, prog_name="tixbot")
@click.option("--state-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="State directory (default: per-user app data, or $TIXBOT_STATE_DIR)")
@click.option("--root-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory the gateway is launched from")
@click.option("--executable", default=None, help="Gateway executable (default: node)")
@click.option("--entry", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Gateway entry script passed before the gateway arguments")
@click.option("--verbose", "-v", is_flag=True, help="Debug-level logging")
@click.pass_context
def cli(ctx, state_dir, root_dir, executable, entry, verbose):
    """tixbot - desktop shell for the local openclaw gateway"""
    settings = ShellSettings.from_env().with_overrides(
        state_dir=state_dir,
        root_dir=root_dir,
        executable=executable,
        entry=entry,
        log_level="debug" if verbose else None,
    )
    ctx.obj = settings


def _bootstrap(settings: ShellSettings):
    try:
        log = LogSink(settings.log_path, level=settings.log_level)
    except OSError as e:
        raise click.ClickException(f"Cannot open log file {settings.log_path}: {e}") from e
    try:
        return ConfigStore(settings.state_dir, log=log, port=settings.gateway_port).ensure_config()
    except (TokenGenerationError, ConfigWriteError) as e:
        raise click.ClickException(str(e)) from e
    finally:
        log.close()


@cli.command("config")
@click.option("--show-token", is_flag=True, help="Print the full bearer token")
@click.pass_obj
def config_cmd(settings: ShellSettings, show_token: bool):
    """Ensure the gateway config exists and show it."""
    resolved = _bootstrap(settings)
    rprint(f"[green]config: {resolved.config_path}[/green]")
    rprint(f"port: {resolved.port}")
    rprint(f"token: {resolved.token if show_token else _mask(resolved.token)}")


@cli.command("url")
@click.pass_obj
def url_cmd(settings: ShellSettings):
    """Print the authenticated control UI URL."""
    resolved = _bootstrap(settings)
    click.echo(build_url(resolved.port, resolved.token))


@cli.command("status")
@click.pass_obj
def status_cmd(settings: ShellSettings):
    """Show the gateway recorded in the state directory."""
    status = gateway_status(settings.state_dir)
    if status["pid"] is None:
        rprint("[yellow]no gateway recorded[/yellow]")
        return

    table = Table(title="gateway")
    table.add_column("pid")
    table.add_column("running")
    table.add_column("started_at")
    table.add_column("command")
    table.add_row(
        str(status["pid"]),
        "yes" if status["running"] else "no",
        str(status["started_at"] or "-"),
        str(status["command"] or "-"),
    )
    rprint(table)


@cli.command("stop")
@click.option("--timeout", type=float, default=5.0, show_default=True,
              help="Seconds to wait before killing")
@click.pass_obj
def stop_cmd(settings: ShellSettings, timeout: float):
    """Stop a gateway left running by a shell that did not shut down cleanly."""
    status = gateway_status(settings.state_dir)
    pid = status["pid"]
    if pid is None or not status["running"]:
        remove_pid_file(get_pid_path(settings.state_dir))
        rprint("[cyan]gateway not running[/cyan]")
        return

    try:
        terminate_process(pid, timeout=timeout)
    except ProcessError as e:
        raise click.ClickException(str(e)) from e
    remove_pid_file(get_pid_path(settings.state_dir))
    rprint(f"[green]stopped gateway (PID {pid})[/green]")


async def _run_shell(settings: ShellSettings, open_browser: bool) -> Optional[SupervisorState]:
    opener = webbrowser.open if open_browser else (lambda url: None)
    app = ShellApp(settings, surface_factory=lambda: BrowserSurface(open_browser=opener))

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, app.quit)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handler support
            pass

    try:
        await app.ready()
        rprint(f"[green]gateway starting on port {app.resolved.port}[/green]")
        rprint(f"[dim]log file: {settings.log_path}[/dim]")

        quit_task = asyncio.create_task(app.wait_quit())
        gateway_task = asyncio.create_task(app.supervisor.wait())
        done, _ = await asyncio.wait({quit_task, gateway_task}, return_when=asyncio.FIRST_COMPLETED)

        if gateway_task in done and not quit_task.done():
            # Headless: nothing to show once the gateway is gone.
            quit_task.cancel()
            exit_status = gateway_task.result()
            app.quit()
            return exit_status.outcome if exit_status else SupervisorState.CRASHED
        gateway_task.cancel()
        return None
    finally:
        app.quit()
        app.log.close()


@cli.command("run")
@click.option("--no-browser", is_flag=True, help="Do not open the system browser")
@click.pass_obj
def run_cmd(settings: ShellSettings, no_browser: bool):
    """Start the gateway and attach the control UI until interrupted."""
    try:
        outcome = asyncio.run(_run_shell(settings, open_browser=not no_browser))
    except (TokenGenerationError, ConfigWriteError) as e:
        raise click.ClickException(str(e)) from e
    except KeyboardInterrupt:
        return

    if outcome is SupervisorState.CRASHED:
        rprint(f"[red]gateway stopped unexpectedly, see {settings.log_path}[/red]")
        raise SystemExit(1)
    if outcome is SupervisorState.EXITED:
        rprint("[yellow]gateway exited[/yellow]")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
