"""Chat endpoint: one question in, one answer out, one log record written."""

from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from omnichat.config import Settings, StoreConnection, get_settings, resolve_store_connection
from omnichat.dependencies import AgentFactory, get_agent_factory, get_store_factory
from omnichat.errors import ProviderError, StoreUnconfigured, TransportFailure
from omnichat.memory.log_store import StoreFactory
from omnichat.models.api import ChatRequest, ChatResponse, ChatStats
from omnichat.models.logs import LogRecord

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    settings: Settings = Depends(get_settings),
    store_factory: StoreFactory = Depends(get_store_factory),
    agent_factory: AgentFactory = Depends(get_agent_factory),
) -> ChatResponse:
    """Answer ``message`` in the context of its session.

    Logging is best effort: without a configured store, or when the write
    fails, the answer is still returned with ``logged=false``.
    """
    message = body.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Missing 'message'")

    client_settings = body.client_settings()
    try:
        agent = agent_factory(client_settings)
    except ProviderError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    try:
        connection: Optional[StoreConnection] = resolve_store_connection(
            client_settings, settings
        )
    except StoreUnconfigured:
        logger.info("Log store not configured - exchange will not be logged")
        connection = None

    history: list[LogRecord] = []
    if connection is not None and body.session_id:
        history = await _load_history(store_factory, connection, body.session_id)

    try:
        completion = await agent.complete(message, history)
    except ProviderError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    db_ms: Optional[int] = None
    if connection is not None:
        record = LogRecord.create(
            question=message,
            answer=completion.answer,
            model=agent.model_name,
            session_id=body.session_id,
        )
        db_ms = await _log_exchange(store_factory, connection, record)

    return ChatResponse(
        answer=completion.answer,
        session_id=body.session_id,
        logged=db_ms is not None,
        stats=ChatStats(
            provider=agent.provider.value,
            model=agent.model_name,
            llm_ms=completion.llm_ms,
            db_ms=db_ms,
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
            total_tokens=completion.total_tokens,
        ),
    )


async def _load_history(
    store_factory: StoreFactory,
    connection: StoreConnection,
    session_id: str,
) -> list[LogRecord]:
    try:
        async with store_factory(connection) as store:
            return await store.session_records(session_id)
    except TransportFailure as exc:
        logger.warning("Could not load history for session %s: %s", session_id, exc)
        return []


async def _log_exchange(
    store_factory: StoreFactory,
    connection: StoreConnection,
    record: LogRecord,
) -> Optional[int]:
    """Write ``record``; returns the write time in ms, or None if it failed."""
    started = time.perf_counter()
    try:
        async with store_factory(connection) as store:
            await store.insert(record)
    except TransportFailure as exc:
        logger.warning("Failed to log exchange for session %s: %s", record.session_id, exc)
        return None
    return int((time.perf_counter() - started) * 1000)
