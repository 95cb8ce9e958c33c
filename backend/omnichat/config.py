"""Application configuration using pydantic-settings.

Two layers live here:

* ``Settings``: process configuration read from the environment / ``.env``.
* ``ClientSettings``: the settings blob a chat client keeps (LLM provider,
  store connection, system instruction).  It is parsed once at the request
  boundary and passed explicitly to whatever needs it.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from omnichat.errors import StoreUnconfigured

logger = logging.getLogger(__name__)

DEFAULT_MONGO_DB = "chat_logs"
DEFAULT_LMSTUDIO_URL = "http://localhost:1234"
DEFAULT_OPENAI_MODEL = "gpt-3.5-turbo"
DEFAULT_COPILOT_MODEL = "gpt-4.1"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "OmniChat"
    environment: str = "development"
    log_level: str = "info"
    debug: bool = True

    # MongoDB fallback (used when the client blob carries no connection)
    mongo_uri: str = ""
    mongo_db: str = DEFAULT_MONGO_DB

    # History fetch bounds
    history_session_limit: int = 50
    search_result_limit: int = 200

    # CORS
    frontend_url: str = "http://localhost:3000"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency for injecting settings."""
    return settings


# ----------------------------------------------------------------------
# Client settings blob
# ----------------------------------------------------------------------


class LlmProvider(str, Enum):
    """Chat completion backends the client can pick from."""

    OPENAI = "openai"
    LMSTUDIO = "lmstudio"
    COPILOT = "copilot"

    @property
    def label(self) -> str:
        return {
            LlmProvider.OPENAI: "OpenAI",
            LlmProvider.LMSTUDIO: "LM Studio",
            LlmProvider.COPILOT: "Copilot",
        }[self]


class OpenAISettings(BaseModel):
    api_key: str = ""
    model: str = DEFAULT_OPENAI_MODEL


class LmStudioSettings(BaseModel):
    url: str = DEFAULT_LMSTUDIO_URL
    model: str = ""


class CopilotSettings(BaseModel):
    github_token: str = ""
    model: str = DEFAULT_COPILOT_MODEL


class LlmSettings(BaseModel):
    provider: LlmProvider = LlmProvider.OPENAI
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    lmstudio: LmStudioSettings = Field(default_factory=LmStudioSettings)
    copilot: CopilotSettings = Field(default_factory=CopilotSettings)

    @property
    def active_model(self) -> str:
        if self.provider == LlmProvider.LMSTUDIO:
            return self.lmstudio.model
        if self.provider == LlmProvider.COPILOT:
            return self.copilot.model
        return self.openai.model


class DatabaseSettings(BaseModel):
    mongo_uri: str = ""
    mongo_db: str = ""


class ClientSettings(BaseModel):
    """Configuration a chat client hands to the backend with each request."""

    llm: LlmSettings = Field(default_factory=LlmSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    system_instruction: str = ""

    @property
    def llm_provider(self) -> LlmProvider:
        return self.llm.provider

    @classmethod
    def from_blob(cls, blob: Any) -> ClientSettings:
        """Parse a stored settings blob, accepting the legacy flat shapes.

        ``blob`` may be a dict or its JSON text.  Anything unreadable yields
        the defaults.
        """
        if isinstance(blob, (str, bytes)):
            try:
                blob = json.loads(blob)
            except ValueError:
                logger.warning("Ignoring unparsable settings blob")
                return cls()
        if not isinstance(blob, dict):
            return cls()

        llm = blob.get("llm") if isinstance(blob.get("llm"), dict) else {}
        openai = _section(llm, "openai")
        lmstudio = _section(llm, "lmstudio")
        copilot = _section(llm, "copilot")

        raw_provider = llm.get("provider")
        if raw_provider in {p.value for p in LlmProvider}:
            provider = LlmProvider(raw_provider)
        elif llm.get("selectedModel") == "local-model":
            provider = LlmProvider.LMSTUDIO
        else:
            provider = LlmProvider.OPENAI

        openai_model = openai.get("model") or llm.get("openaiModel") or DEFAULT_OPENAI_MODEL
        selected = llm.get("selectedModel")
        if not openai.get("model") and selected and selected != "local-model":
            openai_model = selected

        database = blob.get("database") if isinstance(blob.get("database"), dict) else {}

        return cls(
            llm=LlmSettings(
                provider=provider,
                openai=OpenAISettings(
                    api_key=openai.get("apiKey") or llm.get("openaiApiKey") or "",
                    model=openai_model,
                ),
                lmstudio=LmStudioSettings(
                    url=lmstudio.get("url") or llm.get("lmstudioUrl") or DEFAULT_LMSTUDIO_URL,
                    model=lmstudio.get("model") or llm.get("lmstudioModel") or "",
                ),
                copilot=CopilotSettings(
                    github_token=copilot.get("githubToken") or "",
                    model=copilot.get("model") or DEFAULT_COPILOT_MODEL,
                ),
            ),
            database=DatabaseSettings(
                mongo_uri=database.get("mongoUri") or "",
                mongo_db=database.get("mongoDb") or "",
            ),
            system_instruction=blob.get("systemInstruction") or "",
        )

    def to_blob(self) -> dict[str, Any]:
        """Serialise to the structured blob shape clients persist."""
        return {
            "llm": {
                "provider": self.llm.provider.value,
                "openai": {
                    "apiKey": self.llm.openai.api_key,
                    "model": self.llm.openai.model,
                },
                "lmstudio": {
                    "url": self.llm.lmstudio.url,
                    "model": self.llm.lmstudio.model,
                },
                "copilot": {
                    "githubToken": self.llm.copilot.github_token,
                    "model": self.llm.copilot.model,
                },
            },
            "database": {
                "mongoUri": self.database.mongo_uri,
                "mongoDb": self.database.mongo_db,
            },
            "systemInstruction": self.system_instruction,
        }


def _section(parent: dict[str, Any], name: str) -> dict[str, Any]:
    value = parent.get(name)
    return value if isinstance(value, dict) else {}


class StoreConnection(BaseModel):
    """Where the log collection lives."""

    uri: str
    database: str = DEFAULT_MONGO_DB


def resolve_store_connection(
    client_settings: Optional[ClientSettings],
    app_settings: Settings,
) -> StoreConnection:
    """Pick the store connection: client blob first, then the environment.

    Raises:
        StoreUnconfigured: If neither source names a MongoDB URI.
    """
    db = client_settings.database if client_settings else DatabaseSettings()
    uri = db.mongo_uri or app_settings.mongo_uri
    if not uri:
        raise StoreUnconfigured(
            "MongoDB is not configured. Set it in Settings (Database tab) or via MONGO_URI."
        )
    return StoreConnection(
        uri=uri,
        database=db.mongo_db or app_settings.mongo_db or DEFAULT_MONGO_DB,
    )
