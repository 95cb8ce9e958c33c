"""Request and response bodies for the HTTP API."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from omnichat.config import ClientSettings


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    settings: Optional[dict[str, Any]] = None

    def client_settings(self) -> ClientSettings:
        return ClientSettings.from_blob(self.settings or {})


class LogsRequest(_Body):
    search: Optional[str] = None


class LogsResponse(BaseModel):
    logs: list[dict[str, Any]]


class DeleteLogsRequest(_Body):
    session_ids: Optional[list[str]] = Field(default=None, alias="sessionIds")


class DeleteLogsResponse(BaseModel):
    deleted: int


class ChatRequest(_Body):
    message: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class ChatStats(BaseModel):
    """Timing and usage for one chat exchange."""

    model_config = ConfigDict(populate_by_name=True)

    provider: str
    model: str
    llm_ms: int = Field(alias="llmMs")
    db_ms: Optional[int] = Field(default=None, alias="dbMs")
    prompt_tokens: Optional[int] = Field(default=None, alias="promptTokens")
    completion_tokens: Optional[int] = Field(default=None, alias="completionTokens")
    total_tokens: Optional[int] = Field(default=None, alias="totalTokens")


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    answer: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    logged: bool = False
    stats: ChatStats


class ModelsRequest(BaseModel):
    url: Optional[str] = None


class DbCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mongo_uri: Optional[str] = Field(default=None, alias="mongoUri")
    mongo_db: Optional[str] = Field(default=None, alias="mongoDb")
