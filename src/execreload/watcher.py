"""Change sources for the watched executable.

A change source turns a path into a live subscription with two streams:
- ``events``: one entry per observed modification of the path
- ``errors``: failures of the underlying watch

Two implementations are provided:
- WatchfilesChangeSource uses OS notifications through watchfiles
- PollingChangeSource compares modification time and content hash
"""

import asyncio
import contextlib
import hashlib
import logging
import os
from pathlib import Path
from typing import Protocol

from watchfiles import Change, awatch

from execreload.errors import WatchError

logger = logging.getLogger(__name__)


class Subscription:
    """A live watch on a single path.

    Subclasses implement ``watch()``, which runs as a background task once
    the subscription is opened and feeds ``events``. Any exception escaping
    ``watch()`` is delivered on ``errors``.
    """

    def __init__(self, path: Path):
        self.path = path
        self.events: asyncio.Queue[Path] = asyncio.Queue()
        self.errors: asyncio.Queue[Exception] = asyncio.Queue()
        self._task: asyncio.Task | None = None

    async def open(self) -> None:
        """Start producing events. Must be called from the consuming loop."""
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"watch:{self.path}")

    async def close(self) -> None:
        """Unsubscribe and release the watch resources."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    @property
    def closed(self) -> bool:
        return self._task is None

    async def _run(self) -> None:
        try:
            await self.watch()
        except Exception as e:
            logger.debug(f"Watch on {self.path} failed: {e}")
            await self.errors.put(e)
        else:
            await self.errors.put(WatchError(f"watch on {self.path} ended"))

    async def watch(self) -> None:
        raise NotImplementedError


class ChangeSource(Protocol):
    """Anything that can subscribe to modifications of a path."""

    def subscribe(self, path: Path) -> Subscription:
        ...


class _WatchfilesSubscription(Subscription):
    def __init__(self, path: Path, debounce_ms: int, step_ms: int):
        super().__init__(path)
        self.debounce_ms = debounce_ms
        self.step_ms = step_ms
        # Notifications may carry the directory's real path
        self._targets = {path, Path(os.path.realpath(path.parent)) / path.name}

    def _is_target(self, change: Change, raw_path: str) -> bool:
        return Path(raw_path) in self._targets

    async def watch(self) -> None:
        # The parent directory is watched so that a toolchain replacing the
        # file through a rename is still seen.
        async for changes in awatch(
            self.path.parent,
            watch_filter=self._is_target,
            recursive=False,
            debounce=self.debounce_ms,
            step=self.step_ms,
        ):
            for change, raw_path in changes:
                logger.debug(f"{change.name}: {raw_path}")
                await self.events.put(Path(raw_path))


class WatchfilesChangeSource:
    """Change source backed by OS file notifications (inotify, FSEvents, ...)."""

    def __init__(self, debounce_ms: int = 50, step_ms: int = 50):
        self.debounce_ms = debounce_ms
        self.step_ms = step_ms

    def subscribe(self, path: Path) -> Subscription:
        path = Path(path)
        if not path.parent.is_dir():
            raise WatchError(f"cannot watch {path}: {path.parent} is not a directory")
        if not path.exists():
            raise WatchError(f"cannot watch {path}: no such file")
        # A symlinked executable (e.g. a virtualenv python) changes at its target
        return _WatchfilesSubscription(Path(os.path.realpath(path)), self.debounce_ms, self.step_ms)


class FileFingerprint:
    """Tracks the modification time of a file and, optionally, its content hash.

    A missing file is reported as unchanged; it is picked up again once it
    reappears with a new modification time.
    """

    def __init__(self, path: str | Path, use_hash: bool = True):
        self.path = Path(path)
        self.use_hash = use_hash
        self._last_stat: tuple[int, int] | None = None
        self._last_hash: str | None = None

        if self.path.exists():
            self._last_stat = self._stat()
            if self.use_hash:
                self._last_hash = self._compute_hash()

    def _stat(self) -> tuple[int, int]:
        st = self.path.stat()
        return st.st_mtime_ns, st.st_size

    def _compute_hash(self) -> str:
        """Compute SHA256 hash of file content."""
        digest = hashlib.sha256()
        with self.path.open("rb") as f:
            for chunk in iter(lambda: f.read(1 << 16), b""):
                digest.update(chunk)
        return digest.hexdigest()

    def check_changed(self) -> bool:
        """Check if the file has changed since the last check.

        Raises:
            OSError: If the file exists but cannot be read.
        """
        if not self.path.exists():
            return False

        stat = self._stat()
        if stat == self._last_stat:
            return False
        self._last_stat = stat

        if self.use_hash:
            new_hash = self._compute_hash()
            if new_hash == self._last_hash:
                return False
            self._last_hash = new_hash

        return True


class _PollingSubscription(Subscription):
    def __init__(self, path: Path, interval: float, use_hash: bool):
        super().__init__(path)
        self.interval = interval
        self.fingerprint = FileFingerprint(path, use_hash=use_hash)

    async def watch(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if await asyncio.to_thread(self.fingerprint.check_changed):
                logger.debug(f"Modified: {self.path}")
                await self.events.put(self.path)


class PollingChangeSource:
    """Change source that polls the file, for filesystems without notifications."""

    def __init__(self, interval: float = 0.5, use_hash: bool = True):
        self.interval = interval
        self.use_hash = use_hash

    def subscribe(self, path: Path) -> Subscription:
        path = Path(path)
        if not path.exists():
            raise WatchError(f"cannot watch {path}: no such file")
        return _PollingSubscription(path, self.interval, self.use_hash)
