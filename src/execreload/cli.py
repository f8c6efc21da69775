"""execreload CLI: run a command and reload when its executable changes."""

import logging
import subprocess
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from execreload.config import (
    DEFAULT_MAX_ATTEMPTS,
    Option,
    with_change_source,
    with_command,
    with_max_attempts,
    with_on_reload,
)
from execreload.errors import ExecutableNotFoundError
from execreload.process import look_path
from execreload.reloader import Reloader
from execreload.watcher import PollingChangeSource

console = Console(stderr=True)
logger = logging.getLogger(__name__)

# Spawning the command can itself produce watch events, so the reloader is
# only started after this delay (seconds).
STARTUP_DELAY = 0.25


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )


def exit_status(returncode: int) -> int:
    """Map a child return code to the launcher's exit status.

    Children killed by a signal report a negative return code; they exit the
    launcher with 128 + signal number, as a shell would.
    """
    if returncode < 0:
        return 128 - returncode
    return returncode


def launch(
    command: Path,
    args: Sequence[str] = (),
    options: Sequence[Option] = (),
    startup_delay: float = STARTUP_DELAY,
    reloader_factory: Callable[..., Reloader] = Reloader,
) -> int:
    """Run command until it exits, reloading this process if it changes.

    When the executable changes, the child is killed and the launcher waits
    for the reloader to re-execute it, which starts a fresh child.

    Returns:
        The exit status to leave with: the child's own status when it exits
        on its own, 0 when it was killed for a reload.

    Raises:
        OSError: If the command cannot be spawned.
    """
    child = subprocess.Popen([str(command), *args])
    logger.debug(f"Spawned {command} (pid {child.pid})")

    time.sleep(startup_delay)

    reloading = threading.Event()

    def on_reload() -> None:
        logger.info("Killing spawned process")
        # Set before the kill so the main thread never sees a bare exit
        reloading.set()
        child.kill()

    reloader = reloader_factory(with_command(command), *options, with_on_reload(on_reload))
    reloader.start()

    try:
        returncode = child.wait()
    except KeyboardInterrupt:
        # The child got the same SIGINT
        returncode = child.wait()

    if reloading.is_set():
        # The reloader replaces this process; wait() only returns if stopped
        reloader.wait()
        return 0

    return exit_status(returncode)


@click.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.option(
    "--max-attempts",
    default=DEFAULT_MAX_ATTEMPTS,
    show_default=True,
    envvar="EXECRELOAD_MAX_ATTEMPTS",
    help="Attempts to re-execute while the executable is busy",
)
@click.option(
    "--watch",
    "watch_path",
    type=click.Path(),
    envvar="EXECRELOAD_WATCH",
    help="Executable to watch (defaults to COMMAND)",
)
@click.option("--poll", is_flag=True, help="Poll the executable instead of using file notifications")
@click.option(
    "--poll-interval",
    default=0.5,
    show_default=True,
    envvar="EXECRELOAD_POLL_INTERVAL",
    help="Seconds between polls with --poll",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.argument("command")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def main(
    max_attempts: int,
    watch_path: str | None,
    poll: bool,
    poll_interval: float,
    verbose: bool,
    command: str,
    args: tuple[str, ...],
) -> None:
    """Run COMMAND and restart it whenever its executable changes.

    Intended for local development only.
    """
    setup_logging(verbose)

    try:
        path = look_path(command)
    except ExecutableNotFoundError as e:
        console.print(f"[red]Cannot find executable: {command}[/red]")
        raise SystemExit(1) from e

    options: list[Option] = [with_max_attempts(max_attempts)]
    if watch_path:
        options.append(with_command(watch_path))
    if poll:
        options.append(with_change_source(PollingChangeSource(interval=poll_interval)))

    try:
        code = launch(path, args, options)
    except OSError as e:
        console.print(f"[red]Failed to spawn process: {e}[/red]")
        raise SystemExit(1) from e

    raise SystemExit(code)


if __name__ == "__main__":
    main()
