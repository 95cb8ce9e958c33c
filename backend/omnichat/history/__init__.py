"""History module - session grouping, search, selection and deletion for the chat sidebar."""

from .deletion import ALL, DeletionCoordinator
from .grouping import group_records
from .search import SearchView, filter_records, search_conversations
from .selection import SelectionMachine, SelectionMode
from .session import ChatSession
from .sidebar import Sidebar
from .sync import Debouncer, HistoryFeed, HistoryVersion

__all__ = [
    "ALL",
    "ChatSession",
    "Debouncer",
    "DeletionCoordinator",
    "HistoryFeed",
    "HistoryVersion",
    "SearchView",
    "SelectionMachine",
    "SelectionMode",
    "Sidebar",
    "filter_records",
    "group_records",
    "search_conversations",
]
