"""Model-list lookups for the settings form.

The lookups are driven by continuous input (URL or API key typing), so
``ModelCatalog`` debounces them and cancels a lookup as soon as its input
changes again.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import httpx

from omnichat.agent.provider import clean_base_url
from omnichat.config import ClientSettings, LlmProvider
from omnichat.history.sync import Debouncer

logger = logging.getLogger(__name__)

OPENAI_MODELS_URL = "https://api.openai.com/v1/models"
LMSTUDIO_DEBOUNCE_SECONDS = 0.6
OPENAI_DEBOUNCE_SECONDS = 0.8
AUTOSAVE_DEBOUNCE_SECONDS = 0.5


def _model_ids(payload: dict[str, Any]) -> list[str]:
    return [m["id"] for m in payload.get("data") or [] if isinstance(m, dict) and "id" in m]


async def fetch_lmstudio_payload(client: httpx.AsyncClient, url: str) -> dict[str, Any]:
    response = await client.get(f"{clean_base_url(url)}/v1/models")
    response.raise_for_status()
    return response.json()


async def list_lmstudio_models(client: httpx.AsyncClient, url: str) -> list[str]:
    """Model ids served by an LM Studio instance, sorted."""
    return sorted(_model_ids(await fetch_lmstudio_payload(client, url)))


async def list_openai_models(client: httpx.AsyncClient, api_key: str) -> list[str]:
    """Chat model ids (those containing ``gpt``) visible to ``api_key``, sorted."""
    response = await client.get(
        OPENAI_MODELS_URL,
        headers={"Authorization": f"Bearer {api_key}"},
    )
    response.raise_for_status()
    return sorted(i for i in _model_ids(response.json()) if "gpt" in i)


class LookupState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class ModelLookup:
    """Fetch state for one provider's model list."""

    def __init__(self, name: str, delay: float) -> None:
        self.name = name
        self._debouncer: Debouncer[list[str]] = Debouncer(delay, name=f"{name} models")
        self.state = LookupState.IDLE
        self.error = ""
        self.models: list[str] = []
        self.reachable: Optional[bool] = None

    def reset(self) -> None:
        self._debouncer.cancel()
        self.state = LookupState.IDLE
        self.error = ""
        self.models = []
        self.reachable = None

    def cancel(self) -> None:
        self._debouncer.cancel()
        if self.state == LookupState.LOADING:
            self.state = LookupState.IDLE

    async def wait(self) -> None:
        await self._debouncer.wait()

    def schedule(
        self,
        lookup: Callable[[], Awaitable[list[str]]],
        on_models: Callable[[list[str]], Any],
    ) -> None:
        async def run() -> list[str]:
            self.state = LookupState.LOADING
            self.error = ""
            self.reachable = None
            return await lookup()

        def done(models: list[str]) -> None:
            self.models = models
            self.state = LookupState.SUCCESS
            self.reachable = True
            on_models(models)

        def failed(exc: Exception) -> None:
            logger.info("%s model lookup failed: %s", self.name, exc)
            self.state = LookupState.ERROR
            self.reachable = False
            self.error = _describe(exc)

        self._debouncer.schedule(run, done, failed)


def _describe(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    return str(exc) or "Failed to fetch models"


class ModelCatalog:
    """Keeps the model pickers of the settings form in sync with their inputs.

    ``update(settings)`` is called on every edit.  Only the active provider
    is looked up; switching away resets the other provider's state.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        lmstudio_delay: float = LMSTUDIO_DEBOUNCE_SECONDS,
        openai_delay: float = OPENAI_DEBOUNCE_SECONDS,
    ) -> None:
        self._client = client
        self.lmstudio = ModelLookup("LM Studio", lmstudio_delay)
        self.openai = ModelLookup("OpenAI", openai_delay)
        self.settings = ClientSettings()
        self._last_lmstudio_url: Optional[str] = None
        self._last_openai_key: Optional[str] = None

    def update(self, settings: ClientSettings) -> None:
        self.settings = settings
        llm = settings.llm

        if llm.provider != LlmProvider.LMSTUDIO:
            self.lmstudio.reset()
            self._last_lmstudio_url = None
        elif llm.lmstudio.url != self._last_lmstudio_url:
            self._last_lmstudio_url = llm.lmstudio.url
            url = llm.lmstudio.url
            self.lmstudio.schedule(
                lambda: list_lmstudio_models(self._client, url),
                self._autoselect_lmstudio,
            )

        if llm.provider != LlmProvider.OPENAI:
            self.openai.reset()
            self._last_openai_key = None
        elif llm.openai.api_key != self._last_openai_key:
            self._last_openai_key = llm.openai.api_key
            key = llm.openai.api_key
            if not key:
                self.openai.reset()
                return
            self.openai.schedule(
                lambda: list_openai_models(self._client, key),
                self._autoselect_openai,
            )

    def close(self) -> None:
        self.lmstudio.cancel()
        self.openai.cancel()

    def _autoselect_lmstudio(self, models: list[str]) -> None:
        if not self.settings.llm.lmstudio.model and models:
            self.settings.llm.lmstudio.model = models[0]

    def _autoselect_openai(self, models: list[str]) -> None:
        if not self.settings.llm.openai.model and models:
            self.settings.llm.openai.model = models[0]


class SettingsAutosave:
    """Debounced persistence of the settings form.

    The first change after ``open()`` is the form being populated and is
    not saved.  ``close()`` drops a save that has not fired yet.
    """

    def __init__(
        self,
        save: Callable[[dict[str, Any]], Awaitable[Any]],
        delay: float = AUTOSAVE_DEBOUNCE_SECONDS,
    ) -> None:
        self._save = save
        self._debouncer: Debouncer[Any] = Debouncer(delay, name="settings autosave")
        self._initial = True
        self.saved_count = 0

    def open(self) -> None:
        self._initial = True

    def close(self) -> None:
        self._debouncer.cancel()
        self._initial = True

    def changed(self, settings: ClientSettings) -> None:
        if self._initial:
            self._initial = False
            return
        blob = settings.to_blob()
        self._debouncer.schedule(lambda: self._save(blob), self._saved)

    async def wait(self) -> None:
        await self._debouncer.wait()

    def _saved(self, _result: Any) -> None:
        self.saved_count += 1
        logger.debug("Settings saved")
