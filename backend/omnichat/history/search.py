"""Search view: text filter over records, then the normal grouping pass."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional

from omnichat.history.grouping import group_records
from omnichat.history.sync import Debouncer
from omnichat.models.logs import ConversationSummary, LogRecord

logger = logging.getLogger(__name__)

SEARCH_DEBOUNCE_SECONDS = 0.3

SearchFn = Callable[[str], Awaitable[list[LogRecord]]]


def matches(term: str, record: LogRecord) -> bool:
    needle = term.casefold()
    return needle in record.question.casefold() or needle in record.answer.casefold()


def filter_records(term: str, records: Iterable[LogRecord]) -> Optional[list[LogRecord]]:
    """Records whose question or answer contains ``term``, ignoring case.

    Returns ``None`` for a blank term: no search was performed, which is not
    the same thing as a search that matched nothing.
    """
    term = term.strip()
    if not term:
        return None
    return [record for record in records if matches(term, record)]


def search_conversations(
    term: str, records: Iterable[LogRecord]
) -> Optional[list[ConversationSummary]]:
    found = filter_records(term, records)
    if found is None:
        return None
    return group_records(found)


class SearchStatus(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    DONE = "done"
    ERROR = "error"


class SearchView:
    """Debounced search box state.

    Each keystroke cancels the pending search and restarts the delay
    window.  Only the most recent request may apply its results.
    """

    def __init__(self, search: SearchFn, delay: float = SEARCH_DEBOUNCE_SECONDS) -> None:
        self._search = search
        self._debouncer: Debouncer[list[LogRecord]] = Debouncer(delay, name="search")
        self.query = ""
        self.status = SearchStatus.IDLE
        self.results: list[ConversationSummary] = []
        self.error: Optional[str] = None

    @property
    def has_searched(self) -> bool:
        return self.status != SearchStatus.IDLE

    @property
    def searching(self) -> bool:
        return self.status == SearchStatus.SEARCHING

    def update(self, value: str) -> None:
        self.query = value
        term = value.strip()
        if not term:
            self._debouncer.cancel()
            self.results = []
            self.error = None
            self.status = SearchStatus.IDLE
            return
        self._debouncer.schedule(lambda: self._run(term), self._apply, self._failed)

    def cancel(self) -> None:
        """Abort the pending search.

        A search cut off mid-flight leaves no outcome: the box goes back to
        "no search performed" rather than showing the previous query's hits.
        """
        self._debouncer.cancel()
        if self.status == SearchStatus.SEARCHING:
            self.results = []
            self.error = None
            self.status = SearchStatus.IDLE

    async def wait(self) -> None:
        await self._debouncer.wait()

    async def _run(self, term: str) -> list[LogRecord]:
        self.status = SearchStatus.SEARCHING
        self.error = None
        logger.debug("Searching logs for %r", term)
        return await self._search(term)

    def _apply(self, records: list[LogRecord]) -> None:
        self.results = group_records(records)
        self.status = SearchStatus.DONE

    def _failed(self, exc: Exception) -> None:
        logger.warning("Search failed: %s", exc)
        self.error = "Search failed"
        self.status = SearchStatus.ERROR
