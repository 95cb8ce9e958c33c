"""Async client for the OmniChat HTTP API.

Its methods have the shapes the history engine consumes, so a headless
chat UI is wired up as::

    client = OmniChatClient("http://localhost:8000", settings_blob)
    version = HistoryVersion()
    chat = ChatSession(client.send_chat, version)
    sidebar = Sidebar(client.fetch_logs, client.delete_logs, chat, version)
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from omnichat.errors import StoreUnconfigured, TransportFailure
from omnichat.models.api import ChatResponse
from omnichat.models.logs import LogRecord

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"


class OmniChatClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        settings_blob: Optional[dict[str, Any]] = None,
        *,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings_blob = settings_blob or {}
        self._client = http or httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/api",
            headers={"Accept": "application/json"},
            timeout=60.0,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> OmniChatClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _post(self, path: str, body: dict[str, Any]) -> Any:
        try:
            resp = await self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            raise TransportFailure(f"POST {path} failed: {exc}", cause=exc) from exc

        if resp.status_code >= 400:
            detail = _detail(resp)
            if resp.status_code == 400 and "not configured" in detail:
                raise StoreUnconfigured(detail)
            raise TransportFailure(f"HTTP {resp.status_code}: {detail[:200]}")
        return resp.json()

    async def fetch_logs(self, search: Optional[str] = None) -> list[LogRecord]:
        body: dict[str, Any] = {"settings": self.settings_blob}
        if search:
            body["search"] = search
        data = await self._post("/logs", body)
        return [LogRecord.from_document(doc) for doc in data.get("logs") or []]

    async def delete_logs(self, session_ids: Optional[list[str]]) -> int:
        """Delete sessions by id, or everything when ``session_ids`` is None."""
        body: dict[str, Any] = {"settings": self.settings_blob}
        if session_ids is not None:
            body["sessionIds"] = list(session_ids)
        data = await self._post("/logs/delete", body)
        return int(data.get("deleted", 0))

    async def send_chat(self, message: str, session_id: str) -> ChatResponse:
        data = await self._post(
            "/chat",
            {"message": message, "sessionId": session_id, "settings": self.settings_blob},
        )
        return ChatResponse.model_validate(data)

    async def list_lmstudio_models(self, url: str) -> list[str]:
        data = await self._post("/lmstudio-models", {"url": url})
        return sorted(m["id"] for m in data.get("data") or [] if "id" in m)


def _detail(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text
    if isinstance(payload, dict):
        return str(payload.get("detail") or payload.get("error") or payload)
    return str(payload)
