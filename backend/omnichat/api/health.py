"""Health check and connection test endpoints."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from fastapi import APIRouter, Depends, HTTPException

from omnichat.agent.catalog import fetch_lmstudio_payload
from omnichat.config import (
    DEFAULT_MONGO_DB,
    Settings,
    StoreConnection,
    get_settings,
    resolve_store_connection,
)
from omnichat.dependencies import get_http_client, get_store_factory
from omnichat.errors import StoreUnconfigured, TransportFailure
from omnichat.memory.log_store import StoreFactory
from omnichat.models.api import DbCheckRequest, ModelsRequest

logger = logging.getLogger(__name__)
router = APIRouter()


async def _check_store(connection: StoreConnection, store_factory: StoreFactory) -> dict[str, Any]:
    """Ping MongoDB and return status."""
    try:
        async with store_factory(connection) as store:
            await store.ping()
        return {"status": "healthy"}
    except TransportFailure as exc:
        logger.warning("MongoDB health check failed: %s", exc)
        return {"status": "unhealthy", "error": str(exc)}


@router.get("/health")
async def health_check(
    settings: Settings = Depends(get_settings),
    store_factory: StoreFactory = Depends(get_store_factory),
) -> dict[str, Any]:
    """Return aggregate health of the backing services.

    A store that is not configured in the environment is reported as such
    and does not degrade the overall status: clients may bring their own.
    """
    try:
        connection = resolve_store_connection(None, settings)
        mongo_status = await _check_store(connection, store_factory)
    except StoreUnconfigured:
        mongo_status = {"status": "unconfigured"}

    services = {"mongodb": mongo_status}
    overall = (
        "healthy"
        if all(s["status"] in ("healthy", "unconfigured") for s in services.values())
        else "degraded"
    )
    return {"status": overall, "services": services}


@router.post("/test-db")
async def check_db(
    body: DbCheckRequest,
    store_factory: StoreFactory = Depends(get_store_factory),
) -> dict[str, Any]:
    """Try a MongoDB connection from the settings form."""
    if not body.mongo_uri:
        raise HTTPException(status_code=400, detail="Missing 'mongoUri'")
    connection = StoreConnection(
        uri=body.mongo_uri,
        database=body.mongo_db or DEFAULT_MONGO_DB,
    )
    result = await _check_store(connection, store_factory)
    if result["status"] != "healthy":
        return {"ok": False, "error": result.get("error", "")}
    return {"ok": True}


@router.post("/lmstudio-models")
async def lmstudio_models(
    body: ModelsRequest,
    http: httpx.AsyncClient = Depends(get_http_client),
) -> dict[str, Any]:
    """Proxy an LM Studio ``/v1/models`` listing for the settings form."""
    if not body.url or not body.url.strip():
        raise HTTPException(status_code=400, detail="Missing 'url'")
    try:
        return await fetch_lmstudio_payload(http, body.url)
    except httpx.HTTPStatusError as exc:
        code = exc.response.status_code
        raise HTTPException(status_code=code, detail=f"LM Studio returned HTTP {code}")
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("LM Studio unreachable at %s: %s", body.url, exc)
        raise HTTPException(status_code=502, detail=str(exc) or "Failed to reach LM Studio")
