"""Reporters receive the supervisor's informational and fatal messages."""

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger("execreload")


@runtime_checkable
class Reporter(Protocol):
    """Capability used by the reloader to report what it is doing."""

    def info(self, message: str) -> None:
        """Log an informational message."""
        ...

    def error(self, message: str, cause: BaseException | None) -> None:
        """Log an error message immediately before the process terminates."""
        ...


class LoggingReporter:
    """Reporter writing to the standard logging package."""

    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logger

    def info(self, message: str) -> None:
        self.log.info(message)

    def error(self, message: str, cause: BaseException | None) -> None:
        self.log.error("%s: %s", message, cause)


class NoopReporter:
    """Reporter that discards everything."""

    def info(self, message: str) -> None:
        pass

    def error(self, message: str, cause: BaseException | None) -> None:
        pass
