"""Exception types raised by execreload."""

from pathlib import Path


class ExecReloadError(Exception):
    """Base class for execreload errors."""


class ExecutableNotFoundError(ExecReloadError):
    """Raised when a command cannot be resolved to an executable file."""

    def __init__(self, name: str, reason: str = "not found in PATH"):
        self.name = name
        self.reason = reason
        super().__init__(f"{name}: {reason}")


class WatchError(ExecReloadError):
    """Raised when the change source cannot watch a path."""


class ReplaceError(ExecReloadError):
    """Raised when the process image could not be replaced."""

    def __init__(self, path: str | Path, cause: OSError):
        self.path = str(path)
        self.cause = cause
        super().__init__(f"exec {self.path}: {cause.strerror or cause}")


class ExecutableBusyError(ReplaceError):
    """Raised when the executable is still open for writing (ETXTBSY).

    This is the only replacement failure worth retrying.
    """


class MaxAttemptsReachedError(ExecReloadError):
    """Raised when every reload attempt hit a busy executable."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__("max attempts reached")


class ReloadFatalError(ExecReloadError):
    """A condition that ends supervision and terminates the host process."""

    def __init__(self, message: str, cause: BaseException | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message if cause is None else f"{message}: {cause}")
