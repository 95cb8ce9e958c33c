"""History version counter, debounced tasks and the history feed.

Everything here runs on one event loop.  Ordering between overlapping
requests is never inferred from arrival order: each scheduled request gets
a token and only the holder of the current token may apply its result.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from omnichat.history.grouping import group_records
from omnichat.models.logs import ConversationSummary, LogRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

FetchFn = Callable[[Optional[str]], Awaitable[list[LogRecord]]]


class Debouncer(Generic[T]):
    """Run the latest scheduled call after ``delay`` seconds.

    Scheduling again cancels the pending (or in-flight) call.  A result or
    failure from a call whose token is no longer current is dropped.
    """

    def __init__(self, delay: float, name: str = "debounce") -> None:
        self.delay = delay
        self.name = name
        self._token = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def token(self) -> int:
        return self._token

    def schedule(
        self,
        call: Callable[[], Awaitable[T]],
        on_result: Callable[[T], Any],
        on_error: Callable[[Exception], Any] | None = None,
    ) -> int:
        """Cancel whatever is pending and schedule ``call``. Returns its token."""
        self.cancel()
        token = self._token
        self._task = asyncio.get_running_loop().create_task(
            self._run(token, call, on_result, on_error)
        )
        return token

    def cancel(self) -> None:
        """Drop the pending call, aborting it if it is already running."""
        self._token += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        """Wait until the current call has finished (or been cancelled)."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})

    async def _run(
        self,
        token: int,
        call: Callable[[], Awaitable[T]],
        on_result: Callable[[T], Any],
        on_error: Callable[[Exception], Any] | None,
    ) -> None:
        if self.delay > 0:
            await asyncio.sleep(self.delay)
        try:
            result = await call()
        except Exception as exc:
            if token != self._token:
                logger.debug("Dropping failure from superseded %s request: %s", self.name, exc)
                return
            if on_error is None:
                logger.warning("%s request failed: %s", self.name, exc)
                return
            on_error(exc)
            return
        if token != self._token:
            logger.debug("Discarding stale %s result (token %d)", self.name, token)
            return
        on_result(result)


class HistoryVersion:
    """Monotonic counter whose increments mean "re-fetch and re-group"."""

    def __init__(self) -> None:
        self._value = 0
        self._subscribers: list[Callable[[int], Any]] = []

    @property
    def value(self) -> int:
        return self._value

    def bump(self, reason: str = "") -> int:
        self._value += 1
        logger.debug("History version -> %d (%s)", self._value, reason or "unspecified")
        for callback in list(self._subscribers):
            callback(self._value)
        return self._value

    def subscribe(self, callback: Callable[[int], Any]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe


class FetchState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class HistoryFeed:
    """The single subscriber that re-runs fetch-then-group.

    Refreshes on every version change while open and whenever the view is
    (re)opened.  Version-driven refreshes are not debounced, but a newer
    refresh still supersedes an older in-flight one, and closing the view
    cancels whatever is in flight.
    """

    def __init__(self, fetch: FetchFn, version: HistoryVersion) -> None:
        self._fetch = fetch
        self._runner: Debouncer[list[LogRecord]] = Debouncer(0, name="history")
        self._unsubscribe = version.subscribe(self._on_version)
        self.is_open = False
        self.state = FetchState.IDLE
        self.error: Optional[str] = None
        self.records: list[LogRecord] = []
        self.conversations: list[ConversationSummary] = []

    @property
    def loading(self) -> bool:
        return self.state == FetchState.LOADING

    def open(self) -> None:
        self.is_open = True
        self.refresh()

    def close(self) -> None:
        self.is_open = False
        self._runner.cancel()

    def detach(self) -> None:
        self.close()
        self._unsubscribe()

    def refresh(self) -> None:
        # Background refreshes keep showing the current list.
        if self.state != FetchState.LOADED:
            self.state = FetchState.LOADING
        self.error = None
        self._runner.schedule(lambda: self._fetch(None), self._apply, self._failed)

    async def wait(self) -> None:
        await self._runner.wait()

    def _on_version(self, version: int) -> None:
        if self.is_open:
            self.refresh()

    def _apply(self, records: list[LogRecord]) -> None:
        self.records = list(records)
        self.conversations = group_records(self.records)
        self.state = FetchState.LOADED

    def _failed(self, exc: Exception) -> None:
        logger.warning("History fetch failed: %s", exc)
        self.error = "Failed to load history"
        self.state = FetchState.ERROR
