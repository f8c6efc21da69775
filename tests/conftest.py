"""Pytest configuration and fixtures."""

import asyncio
import errno
from pathlib import Path

import pytest

from execreload.errors import ExecutableBusyError
from execreload.watcher import Subscription


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="run live tests that rely on real OS file notifications",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "live: mark test as requiring OS file notifications (deselect with '-m \"not live\"')",
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is specified."""
    if config.getoption("--run-live"):
        return

    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


class FakeSubscription(Subscription):
    """Subscription whose events are pushed by the test."""

    async def watch(self) -> None:
        await asyncio.Event().wait()


class FakeChangeSource:
    """Change source handing out FakeSubscriptions."""

    def __init__(self, fail: Exception | None = None):
        self.fail = fail
        self.subscriptions: list[FakeSubscription] = []

    def subscribe(self, path: Path) -> Subscription:
        if self.fail is not None:
            raise self.fail
        subscription = FakeSubscription(Path(path))
        self.subscriptions.append(subscription)
        return subscription

    @property
    def subscription(self) -> FakeSubscription:
        return self.subscriptions[-1]


BUSY = "busy"
OK = "ok"


class ScriptedReplacer:
    """Process replacer replaying a script of outcomes.

    Each outcome is BUSY (raise ExecutableBusyError), OK (return, as if the
    new image took over) or an exception to raise. Once the script runs out,
    the default outcome is used.
    """

    def __init__(self, *outcomes, default=BUSY):
        self.outcomes = list(outcomes)
        self.default = default
        self.calls: list[tuple[Path, tuple[str, ...], dict[str, str]]] = []

    def replace(self, path, argv, env):
        self.calls.append((path, tuple(argv), dict(env)))
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if outcome == BUSY:
            raise ExecutableBusyError(path, OSError(errno.ETXTBSY, "Text file busy"))
        if isinstance(outcome, BaseException):
            raise outcome


class RecordingReporter:
    """Reporter that keeps every message."""

    def __init__(self):
        self.infos: list[str] = []
        self.errors: list[tuple[str, BaseException | None]] = []

    def info(self, message: str) -> None:
        self.infos.append(message)

    def error(self, message: str, cause: BaseException | None) -> None:
        self.errors.append((message, cause))


class RecordingTerminate:
    """Stands in for os._exit."""

    def __init__(self):
        self.codes: list[int] = []

    def __call__(self, code: int) -> None:
        self.codes.append(code)


@pytest.fixture
def executable(tmp_path: Path) -> Path:
    """An executable file standing in for a built binary."""
    path = tmp_path / "bin" / "app"
    path.parent.mkdir()
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(0o755)
    return path


@pytest.fixture
def change_source() -> FakeChangeSource:
    return FakeChangeSource()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def terminate() -> RecordingTerminate:
    return RecordingTerminate()


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll predicate on the event loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)
