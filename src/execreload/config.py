"""Reloader configuration.

The configuration is an immutable dataclass. Options are plain functions
that take a configuration and return an updated copy; they are applied in
the order given, so the last option wins when two of them conflict. Invalid
values are normalized rather than rejected.
"""

import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace

from execreload.process import ExecReplacer, ProcessReplacer
from execreload.reporter import LoggingReporter, NoopReporter, Reporter
from execreload.watcher import ChangeSource, WatchfilesChangeSource

DEFAULT_MAX_ATTEMPTS = 10

# Quiet window before a burst of change events triggers a reload, and the
# delay before each replacement attempt (seconds).
DEFAULT_DEBOUNCE_INTERVAL = 0.25
DEFAULT_RETRY_DELAY = 0.25


def _noop() -> None:
    pass


@dataclass(frozen=True)
class ReloaderConfig:
    """Settings for a Reloader, fixed once the reloader is built."""

    # Executable to watch; None watches the running executable
    command: str | None = None
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    on_reload: Callable[[], None] = _noop
    reporter: Reporter = field(default_factory=LoggingReporter)

    # Running executable, argv and environment; None means "as started",
    # resolved once when supervision starts
    executable: str | None = None
    argv: Sequence[str] | None = None
    env: Mapping[str, str] | None = None

    debounce_interval: float = DEFAULT_DEBOUNCE_INTERVAL
    retry_delay: float = DEFAULT_RETRY_DELAY

    change_source: ChangeSource = field(default_factory=WatchfilesChangeSource)
    replacer: ProcessReplacer = field(default_factory=ExecReplacer)
    terminate: Callable[[int], object] = os._exit


Option = Callable[[ReloaderConfig], ReloaderConfig]


def build_config(*options: Option) -> ReloaderConfig:
    """Apply options, in order, to the default configuration."""
    config = ReloaderConfig()
    for option in options:
        config = option(config)
    return config


def with_command(command: str | os.PathLike[str]) -> Option:
    """Watch the given executable instead of the running one."""
    return lambda config: replace(config, command=os.fspath(command))


def with_max_attempts(max_attempts: int) -> Option:
    """Set how many replacement attempts a reload cycle makes (at least 1)."""
    max_attempts = max(1, max_attempts)
    return lambda config: replace(config, max_attempts=max_attempts)


def with_on_reload(on_reload: Callable[[], None] | None) -> Option:
    """Set the hook called once before the process is replaced.

    Typically used to shut down servers gracefully. None disables the hook.
    """
    hook = on_reload or _noop
    return lambda config: replace(config, on_reload=hook)


def with_reporter(reporter: Reporter | None) -> Option:
    """Set the reporter. None disables reporting."""
    reporter = reporter or NoopReporter()
    return lambda config: replace(config, reporter=reporter)


def with_executable(executable: str | os.PathLike[str]) -> Option:
    """Override the path of the running executable that gets re-executed."""
    return lambda config: replace(config, executable=os.fspath(executable))


def with_argv(argv: Sequence[str]) -> Option:
    """Override the argument vector, argv[0] included, passed on reload."""
    argv = tuple(argv)
    return lambda config: replace(config, argv=argv)


def with_env(env: Mapping[str, str]) -> Option:
    """Override the environment passed on reload."""
    env = dict(env)
    return lambda config: replace(config, env=env)


def with_debounce_interval(seconds: float) -> Option:
    seconds = max(0.0, seconds)
    return lambda config: replace(config, debounce_interval=seconds)


def with_retry_delay(seconds: float) -> Option:
    seconds = max(0.0, seconds)
    return lambda config: replace(config, retry_delay=seconds)


def with_change_source(change_source: ChangeSource) -> Option:
    return lambda config: replace(config, change_source=change_source)


def with_replacer(replacer: ProcessReplacer) -> Option:
    return lambda config: replace(config, replacer=replacer)


def with_terminate(terminate: Callable[[int], object]) -> Option:
    """Override how the process exits on a fatal error (default os._exit)."""
    return lambda config: replace(config, terminate=terminate)
