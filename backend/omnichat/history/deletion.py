"""Deletion coordinator.

Issues exactly one store delete per request and, only when that call
succeeds, reconciles local state: history version, active session and
selection mode.  A failed call leaves every piece of local state as it was.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, Union

from omnichat.errors import OmniChatError
from omnichat.history.selection import SelectionMachine

logger = logging.getLogger(__name__)


class DeleteAll(Enum):
    """Sentinel target meaning every conversation, legacy records included."""

    ALL = "all"


ALL = DeleteAll.ALL

DeletionTarget = Union[DeleteAll, Iterable[str]]

# Receives the session ids to delete, or None for everything.
DeleteFn = Callable[[Optional[list[str]]], Awaitable[int]]


class ActiveSession(Protocol):
    @property
    def session_id(self) -> Optional[str]: ...

    def new_chat(self) -> None: ...


def resolve_target(target: DeletionTarget) -> Optional[list[str]]:
    """``None`` for ALL, else the de-duplicated ids in first-seen order.

    Raises:
        ValueError: If an explicit target names no session.
    """
    if target is ALL:
        return None
    if isinstance(target, str):
        raise TypeError("Deletion target must be ALL or a collection of session ids")
    ids = list(dict.fromkeys(target))
    if not ids:
        raise ValueError("Deletion target must name at least one session")
    return ids


class DeletionCoordinator:
    def __init__(
        self,
        delete: DeleteFn,
        *,
        selection: SelectionMachine,
        active_session: ActiveSession,
        bump_history: Callable[[str], Any],
    ) -> None:
        self._delete = delete
        self._selection = selection
        self._active = active_session
        self._bump_history = bump_history
        self._busy = False
        self.last_error: Optional[str] = None
        self.last_deleted: Optional[int] = None

    @property
    def busy(self) -> bool:
        return self._busy

    async def request_deletion(self, target: DeletionTarget) -> bool:
        """Delete ``target`` (``ALL`` or session ids). Returns True on success.

        A request made while another is in flight is ignored and returns
        False.  Store failures return False without touching local state.
        """
        if self._busy:
            logger.warning("Deletion already in progress - ignoring request")
            return False

        session_ids = resolve_target(target)
        self._busy = True
        self.last_error = None
        try:
            deleted = await self._delete(session_ids)
        except OmniChatError as exc:
            logger.warning("Failed to delete chats: %s", exc)
            self.last_error = "Failed to delete chats"
            return False
        finally:
            self._busy = False

        self.last_deleted = deleted
        logger.info(
            "Deleted %d records for %s",
            deleted,
            "all conversations" if session_ids is None else f"{len(session_ids)} session(s)",
        )

        self._bump_history("deletion")
        active_id = self._active.session_id
        if session_ids is None or (active_id is not None and active_id in session_ids):
            self._active.new_chat()
        self._selection.deletion_succeeded()
        return True
