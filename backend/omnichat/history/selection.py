"""Selection mode for the conversation list.

The state is a tagged variant: ``Browsing`` carries no keys at all, so a
non-empty selection outside selection mode cannot be represented.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Union

from omnichat.models.logs import ConversationSummary

logger = logging.getLogger(__name__)


class SelectionMode(str, Enum):
    BROWSING = "browsing"
    SELECTING = "selecting"


@dataclass(frozen=True)
class Browsing:
    mode = SelectionMode.BROWSING

    @property
    def selected_keys(self) -> frozenset[str]:
        return frozenset()


@dataclass(frozen=True)
class Selecting:
    mode = SelectionMode.SELECTING
    selected_keys: frozenset[str] = field(default_factory=frozenset)


SelectionState = Union[Browsing, Selecting]


class SelectionMachine:
    def __init__(self) -> None:
        self._state: SelectionState = Browsing()

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def mode(self) -> SelectionMode:
        return self._state.mode

    @property
    def is_selecting(self) -> bool:
        return isinstance(self._state, Selecting)

    @property
    def selected_keys(self) -> frozenset[str]:
        return self._state.selected_keys

    def is_selected(self, key: str) -> bool:
        return key in self._state.selected_keys

    def enter_selection(self) -> None:
        if self.is_selecting:
            return
        self._state = Selecting()

    def toggle(self, key: str) -> bool:
        """Flip membership of ``key``. Returns whether it is now selected."""
        if not isinstance(self._state, Selecting):
            logger.debug("Ignoring toggle(%s) while browsing", key)
            return False
        keys = self._state.selected_keys
        if key in keys:
            self._state = Selecting(keys - {key})
            return False
        self._state = Selecting(keys | {key})
        return True

    def cancel(self) -> None:
        self._state = Browsing()

    def deletion_succeeded(self) -> None:
        self._state = Browsing()

    def click(
        self,
        summary: ConversationSummary,
        load: Callable[[ConversationSummary], Any],
    ) -> None:
        """Row click: loads the conversation when browsing, toggles it when selecting."""
        if self.is_selecting:
            self.toggle(summary.key)
        else:
            load(summary)
