"""Conversation log endpoints: history fetch, search and deletion."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from omnichat.config import Settings, get_settings, resolve_store_connection
from omnichat.dependencies import get_store_factory
from omnichat.errors import StoreUnconfigured, TransportFailure
from omnichat.memory.log_store import StoreFactory
from omnichat.models.api import DeleteLogsRequest, DeleteLogsResponse, LogsRequest, LogsResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=LogsResponse)
async def recent_logs(
    settings: Settings = Depends(get_settings),
    store_factory: StoreFactory = Depends(get_store_factory),
) -> dict[str, Any]:
    """Return the newest records using only the environment's store connection.

    A flat list of the 50 most recent records, not grouped by session.  An
    unconfigured environment yields an empty list rather than an error.
    """
    try:
        connection = resolve_store_connection(None, settings)
    except StoreUnconfigured:
        return {"logs": []}

    try:
        async with store_factory(connection) as store:
            records = await store.recent()
    except TransportFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    return {"logs": [r.to_document() for r in records]}


@router.post("", response_model=LogsResponse)
async def fetch_logs(
    body: LogsRequest,
    settings: Settings = Depends(get_settings),
    store_factory: StoreFactory = Depends(get_store_factory),
) -> dict[str, Any]:
    """Return the records behind the history list, or search matches.

    Without ``search``: every record of the 50 most recently active
    sessions (plus legacy records).  With ``search``: up to 200 records
    whose question or answer contains the term.
    """
    try:
        connection = resolve_store_connection(body.client_settings(), settings)
    except StoreUnconfigured as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    try:
        async with store_factory(connection) as store:
            records = await store.fetch(body.search)
    except TransportFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    return {"logs": [r.to_document() for r in records]}


@router.post("/delete", response_model=DeleteLogsResponse)
async def delete_logs(
    body: DeleteLogsRequest,
    settings: Settings = Depends(get_settings),
    store_factory: StoreFactory = Depends(get_store_factory),
) -> dict[str, int]:
    """Delete the listed sessions, or every record when none are listed.

    Records without a session id are only removed by a delete-all.
    """
    try:
        connection = resolve_store_connection(body.client_settings(), settings)
    except StoreUnconfigured as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    session_ids = body.session_ids or None
    try:
        async with store_factory(connection) as store:
            deleted = await store.delete(session_ids)
    except TransportFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    return {"deleted": deleted}
