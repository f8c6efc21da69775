"""Reload supervisor: re-executes the process when its executable changes.

Flow:
1. Subscribe to changes of the watched executable
2. Debounce bursts of change events into a single reload
3. Call the on_reload hook once
4. Replace the process image, retrying while the executable is busy

This is a developer convenience and is not meant for production use.
"""

import asyncio
import contextlib
import logging
import os
import sys
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from execreload.config import Option, build_config
from execreload.errors import (
    ExecutableBusyError,
    ExecutableNotFoundError,
    MaxAttemptsReachedError,
    ReloadFatalError,
    ReplaceError,
    WatchError,
)
from execreload.process import look_path
from execreload.watcher import Subscription

logger = logging.getLogger(__name__)


class ReloadState(Enum):
    """State of the watch loop."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    RELOADING = "reloading"
    CANCELLED = "cancelled"


class _Signal(Enum):
    CHANGE = "change"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass
class ReloadSession:
    """Runtime state of one supervision, resolved when it starts."""

    watch_path: Path
    exec_path: Path
    argv: tuple[str, ...]
    env: dict[str, str]
    subscription: Subscription


class Reloader:
    """Watches an executable and re-executes the current process when it changes.

    Example:
        reloader = Reloader(
            with_max_attempts(6),
            with_on_reload(server.shutdown),
        )
        reloader.start()

    Every fatal condition (unresolvable executable, broken watch, failed
    exec, exhausted attempts) is reported once through the reporter and then
    terminates the process.
    """

    def __init__(self, *options: Option):
        self.config = build_config(*options)
        self.state = ReloadState.IDLE

        self._cancelled = threading.Event()
        self._wakeup: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None

    @property
    def stopped(self) -> bool:
        return self._cancelled.is_set()

    def start(self) -> None:
        """Start watching in a background thread and return immediately."""
        if self._thread is not None:
            raise RuntimeError("Reloader already started")

        try:
            session = self._open_session()
        except ReloadFatalError as e:
            self._fatal(e)
            return

        self._thread = threading.Thread(
            target=self._run_thread,
            args=(session,),
            name="execreload",
            daemon=True,
        )
        self._thread.start()

    async def run(self) -> None:
        """Watch from the running event loop until stopped.

        Equivalent to start() for callers that own an event loop; schedule it
        with asyncio.create_task() to keep it in the background.
        """
        try:
            session = self._open_session()
        except ReloadFatalError as e:
            self._fatal(e)
            return
        await self._watch(session)

    def stop(self) -> None:
        """Stop watching. Safe to call from any thread, any number of times.

        A reload that is already in progress is not interrupted.
        """
        self._cancelled.set()
        loop, wakeup = self._loop, self._wakeup
        if loop is not None and wakeup is not None:
            # The loop may close between the check and the call
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(wakeup.set)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the background thread exits.

        Returns:
            True if the thread is not running anymore.
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _open_session(self) -> ReloadSession:
        config = self.config
        executable = config.executable or sys.executable
        watch_path = self._look_path(config.command or executable)
        exec_path = self._look_path(executable)

        argv = tuple(config.argv if config.argv is not None else sys.orig_argv)
        env = dict(config.env if config.env is not None else os.environ)

        try:
            subscription = config.change_source.subscribe(watch_path)
        except (WatchError, OSError) as e:
            raise ReloadFatalError("Failed to watch file", e) from e

        logger.debug(f"Watching {watch_path}, reloading {exec_path}")
        return ReloadSession(
            watch_path=watch_path,
            exec_path=exec_path,
            argv=argv,
            env=env,
            subscription=subscription,
        )

    @staticmethod
    def _look_path(name: str) -> Path:
        try:
            return look_path(name)
        except ExecutableNotFoundError as e:
            raise ReloadFatalError(f"Cannot find executable: {name}", e) from e

    def _run_thread(self, session: ReloadSession) -> None:
        asyncio.run(self._watch(session))

    async def _watch(self, session: ReloadSession) -> None:
        self._wakeup = asyncio.Event()
        self._loop = asyncio.get_running_loop()
        try:
            await session.subscription.open()
            await self._watch_loop(session)
        except ReloadFatalError as e:
            self._fatal(e)
        finally:
            self._loop = None
            await session.subscription.close()

    async def _watch_loop(self, session: ReloadSession) -> None:
        subscription = session.subscription
        while True:
            self._set_state(ReloadState.IDLE)
            if await self._next_signal(subscription) is _Signal.CANCELLED:
                break

            self._set_state(ReloadState.DEBOUNCING)
            if not await self._debounce(subscription):
                break

            await self._reload(session)
            return

        self._set_state(ReloadState.CANCELLED)

    async def _next_signal(
        self,
        subscription: Subscription,
        timeout: float | None = None,
    ) -> _Signal:
        """Wait for a change event, a watch error, cancellation or the timeout.

        Raises:
            ReloadFatalError: If the watch reported an error.
        """
        if self._cancelled.is_set():
            return _Signal.CANCELLED

        change = asyncio.ensure_future(subscription.events.get())
        error = asyncio.ensure_future(subscription.errors.get())
        cancel = asyncio.ensure_future(self._wakeup.wait())
        try:
            done, _ = await asyncio.wait(
                {change, error, cancel},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in (change, error, cancel):
                waiter.cancel()

        if cancel in done or self._cancelled.is_set():
            return _Signal.CANCELLED
        if error in done:
            raise ReloadFatalError("Error watching file", error.result())
        if change in done:
            logger.debug(f"Change event: {change.result()}")
            return _Signal.CHANGE
        return _Signal.TIMEOUT

    async def _debounce(self, subscription: Subscription) -> bool:
        """Absorb change events until the quiet window passes without one.

        Returns:
            False if supervision was cancelled meanwhile.
        """
        while True:
            signal = await self._next_signal(subscription, self.config.debounce_interval)
            if signal is _Signal.CANCELLED:
                return False
            if signal is _Signal.TIMEOUT:
                return not self._cancelled.is_set()

    async def _reload(self, session: ReloadSession) -> None:
        """Run one reload cycle. Only returns if the replacer returned."""
        config = self.config
        self._set_state(ReloadState.RELOADING)
        config.reporter.info("Executable changed; reloading process")

        attempts = 0
        while attempts < config.max_attempts:
            await self._sleep_discarding_events(session.subscription, config.retry_delay)
            if attempts == 0:
                self._call_on_reload()

            attempts += 1
            try:
                config.replacer.replace(session.exec_path, session.argv, session.env)
            except ExecutableBusyError:
                logger.debug(f"{session.exec_path} busy, attempt {attempts}/{config.max_attempts}")
                continue
            except ReplaceError as e:
                raise ReloadFatalError(f"Failed to exec {session.exec_path}", e) from e

            # A replacer that returns has handed control to the new image
            config.terminate(0)
            return

        raise ReloadFatalError("Failed to reload process", MaxAttemptsReachedError(attempts))

    async def _sleep_discarding_events(self, subscription: Subscription, delay: float) -> None:
        """Sleep for delay seconds, dropping change events that arrive meanwhile."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + delay
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(subscription.events.get(), remaining)

        while not subscription.events.empty():
            subscription.events.get_nowait()

    def _call_on_reload(self) -> None:
        try:
            self.config.on_reload()
        except Exception as e:
            raise ReloadFatalError("Reload hook failed", e) from e

    def _set_state(self, state: ReloadState) -> None:
        if state is not self.state:
            logger.debug(f"{self.state.value} -> {state.value}")
        self.state = state

    def _fatal(self, error: ReloadFatalError) -> None:
        self.config.reporter.error(error.message, error.cause)
        self.config.terminate(1)
