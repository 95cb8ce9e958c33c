"""Headless conversation sidebar.

Wires the history feed, search view, selection machine and deletion
coordinator together the way the chat UI uses them.  Rendering is left to
whoever drives this object.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from omnichat.history.deletion import ALL, DeleteFn, DeletionCoordinator
from omnichat.history.search import SEARCH_DEBOUNCE_SECONDS, SearchView
from omnichat.history.selection import SelectionMachine
from omnichat.history.session import ChatSession
from omnichat.history.sync import FetchFn, HistoryFeed, HistoryVersion
from omnichat.models.logs import ConversationSummary

logger = logging.getLogger(__name__)

NO_CONVERSATIONS = "No conversations yet."
NO_RESULTS = "No results found."
SEARCH_PROMPT = "Type to search conversations."


class Tab(str, Enum):
    HISTORY = "history"
    SEARCH = "search"


class Sidebar:
    def __init__(
        self,
        fetch: FetchFn,
        delete: DeleteFn,
        chat: ChatSession,
        version: HistoryVersion,
        *,
        search_delay: float = SEARCH_DEBOUNCE_SECONDS,
    ) -> None:
        self.chat = chat
        self.tab = Tab.HISTORY
        self.feed = HistoryFeed(fetch, version)
        self.search_view = SearchView(lambda term: fetch(term), delay=search_delay)
        self.selection = SelectionMachine()
        self.deletion = DeletionCoordinator(
            delete,
            selection=self.selection,
            active_session=chat,
            bump_history=version.bump,
        )

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def open(self) -> None:
        self.feed.open()

    def close(self) -> None:
        self.feed.close()
        self.search_view.cancel()

    def show(self, tab: Tab) -> None:
        self.tab = tab

    # ------------------------------------------------------------------
    # What to render
    # ------------------------------------------------------------------

    @property
    def conversations(self) -> list[ConversationSummary]:
        if self.tab == Tab.HISTORY:
            return self.feed.conversations
        return self.search_view.results

    @property
    def loading(self) -> bool:
        if self.tab == Tab.HISTORY:
            return self.feed.loading
        return self.search_view.searching

    @property
    def error(self) -> Optional[str]:
        if self.tab == Tab.HISTORY:
            return self.feed.error
        return self.search_view.error

    @property
    def empty_message(self) -> Optional[str]:
        if self.loading or self.error or self.conversations:
            return None
        if self.tab == Tab.HISTORY:
            return NO_CONVERSATIONS
        return NO_RESULTS if self.search_view.has_searched else SEARCH_PROMPT

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------

    def search(self, term: str) -> None:
        self.search_view.update(term)

    def click(self, summary: ConversationSummary) -> None:
        self.selection.click(summary, self.chat.load)

    async def delete_selected(self) -> bool:
        """Delete the selected session conversations.

        Keys are resolved against the rows on screen, so a session whose id
        happens to look like a legacy key is still deleted.  Legacy rows have
        no id to delete by and are skipped.  A selection made only of legacy
        rows matches nothing, which still counts as success and ends
        selection mode.
        """
        rendered = {s.key: s for s in self.feed.conversations + self.search_view.results}
        # The visible tab wins when both lists use the same key.
        rendered.update((s.key, s) for s in self.conversations)

        session_ids = []
        for key in sorted(self.selection.selected_keys):
            summary = rendered.get(key)
            if summary is None:
                # Not on screen any more; the store decides whether it exists.
                session_ids.append(key)
            elif summary.session_id is not None:
                session_ids.append(summary.session_id)

        if not session_ids:
            logger.info("Selection holds only legacy rows - nothing to delete")
            self.selection.deletion_succeeded()
            return True
        return await self.deletion.request_deletion(session_ids)

    async def delete_one(self, summary: ConversationSummary) -> bool:
        if summary.session_id is None:
            return False
        return await self.deletion.request_deletion([summary.session_id])

    async def delete_all(self) -> bool:
        return await self.deletion.request_deletion(ALL)
