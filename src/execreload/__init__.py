"""execreload - re-execute a process when its executable changes.

A developer convenience: embed a Reloader in a program, or wrap any command
with the ``execreload`` launcher, and every rebuild of the executable
restarts the process in place with the same arguments and environment.
"""

from execreload.config import (
    ReloaderConfig,
    build_config,
    with_argv,
    with_change_source,
    with_command,
    with_debounce_interval,
    with_env,
    with_executable,
    with_max_attempts,
    with_on_reload,
    with_replacer,
    with_reporter,
    with_retry_delay,
    with_terminate,
)
from execreload.errors import (
    ExecReloadError,
    ExecutableBusyError,
    ExecutableNotFoundError,
    MaxAttemptsReachedError,
    ReplaceError,
    WatchError,
)
from execreload.process import ExecReplacer, look_path
from execreload.reloader import Reloader, ReloadState
from execreload.reporter import LoggingReporter, NoopReporter, Reporter
from execreload.watcher import PollingChangeSource, Subscription, WatchfilesChangeSource

__version__ = "0.1.0"

__all__ = [
    "ExecReloadError",
    "ExecReplacer",
    "ExecutableBusyError",
    "ExecutableNotFoundError",
    "LoggingReporter",
    "MaxAttemptsReachedError",
    "NoopReporter",
    "PollingChangeSource",
    "ReloadState",
    "Reloader",
    "ReloaderConfig",
    "ReplaceError",
    "Reporter",
    "Subscription",
    "WatchError",
    "WatchfilesChangeSource",
    "build_config",
    "look_path",
    "with_argv",
    "with_change_source",
    "with_command",
    "with_debounce_interval",
    "with_env",
    "with_executable",
    "with_max_attempts",
    "with_on_reload",
    "with_replacer",
    "with_reporter",
    "with_retry_delay",
    "with_terminate",
]
