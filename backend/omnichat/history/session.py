"""The conversation currently loaded in the chat view."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable, Optional
from uuid import uuid4

from omnichat.errors import OmniChatError
from omnichat.history.grouping import group_records
from omnichat.history.sync import HistoryVersion
from omnichat.models.api import ChatResponse, ChatStats
from omnichat.models.logs import ConversationSummary, LogRecord, recency_key

logger = logging.getLogger(__name__)

# (message, session_id) -> reply
ChatFn = Callable[[str, str], Awaitable[ChatResponse]]


class ChatSession:
    """Active session id plus the messages on screen.

    ``session_id`` is ``None`` for a fresh, unsaved conversation; the first
    send allocates one.
    """

    def __init__(
        self,
        chat: ChatFn,
        version: HistoryVersion,
        *,
        new_session_id: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        self._chat = chat
        self._version = version
        self._new_session_id = new_session_id
        self.session_id: Optional[str] = None
        self.messages: list[dict[str, str]] = []
        self.stats: Optional[ChatStats] = None
        self.loading = False

    def new_chat(self) -> None:
        self.messages = []
        self.session_id = None
        self.stats = None
        self._version.bump("new chat")

    def load(self, summary: ConversationSummary) -> None:
        self.messages = summary.to_messages()
        self.session_id = summary.session_id
        self.stats = None
        self._version.bump("session loaded")

    def is_active(self, summary: ConversationSummary) -> bool:
        return self.session_id is not None and summary.session_id == self.session_id

    def resume_latest(self, records: Iterable[LogRecord]) -> bool:
        """Load the most recently active session from a history fetch.

        Falls back to the single most recent record when no record carries a
        session id.  Returns False when there is nothing to resume.
        """
        records = list(records)
        if not records:
            return False
        with_session = [r for r in records if r.session_id]
        if with_session:
            latest = max(with_session, key=lambda r: recency_key(r.created_at))
            chosen = [r for r in with_session if r.session_id == latest.session_id]
        else:
            chosen = [max(records, key=lambda r: recency_key(r.created_at))]

        summary = group_records(chosen)[0]
        self.messages = summary.to_messages()
        self.session_id = summary.session_id
        logger.info(
            "Resumed session %s with %d exchanges",
            summary.session_id or "(legacy)",
            summary.message_count,
        )
        return True

    async def send(self, text: str) -> Optional[str]:
        """Send one message. Returns the answer, or None if nothing was sent
        or the call failed (the failure is shown as an assistant message).
        """
        message = text.strip()
        if not message or self.loading:
            return None

        self.messages.append({"role": "user", "content": message})
        if self.session_id is None:
            self.session_id = self._new_session_id()
        self.loading = True
        try:
            reply = await self._chat(message, self.session_id)
        except OmniChatError as exc:
            logger.warning("Chat request failed: %s", exc)
            self.messages.append({"role": "assistant", "content": f"Error: {exc}"})
            return None
        finally:
            self.loading = False

        answer = reply.answer or "(no answer)"
        self.stats = reply.stats
        self.messages.append({"role": "assistant", "content": answer})
        self._version.bump("message sent")
        return answer
