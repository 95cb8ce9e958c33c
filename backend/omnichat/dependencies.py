"""Dependency injection providers for FastAPI."""

from __future__ import annotations

from typing import Callable

import httpx

from omnichat.agent.provider import ChatAgent
from omnichat.config import ClientSettings, StoreConnection, settings
from omnichat.memory.log_store import LogStore, StoreFactory

# Global singleton instances (safe within a single event loop)
_http_client: httpx.AsyncClient | None = None

AgentFactory = Callable[[ClientSettings], ChatAgent]


def build_log_store(connection: StoreConnection) -> LogStore:
    return LogStore(
        connection,
        session_limit=settings.history_session_limit,
        search_limit=settings.search_result_limit,
    )


def get_store_factory() -> StoreFactory:
    """Return the factory routes use to open the log store."""
    return build_log_store


def get_agent_factory() -> AgentFactory:
    return ChatAgent


def get_http_client() -> httpx.AsyncClient:
    """Return the shared HTTP client for upstream model-list lookups."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=30.0)
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
