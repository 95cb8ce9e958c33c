"""Tests for model-list lookups and settings autosave."""

import asyncio

import httpx
import pytest
import pytest_asyncio

from omnichat.agent.catalog import (
    LookupState,
    ModelCatalog,
    SettingsAutosave,
    list_lmstudio_models,
    list_openai_models,
)
from omnichat.config import ClientSettings, LlmProvider


class _Upstream:
    """MockTransport handler that records requests."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status)
        if request.url.host == "api.openai.com":
            models = [{"id": "gpt-4o"}, {"id": "whisper-1"}, {"id": "gpt-4.1"}]
        else:
            models = [{"id": "qwen"}, {"id": "llama"}]
        return httpx.Response(200, json={"data": models})


@pytest.fixture
def upstream() -> _Upstream:
    return _Upstream()


@pytest_asyncio.fixture
async def http(upstream):
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        yield client


def _lmstudio(url: str, model: str = "") -> ClientSettings:
    return ClientSettings.from_blob(
        {"llm": {"provider": "lmstudio", "lmstudio": {"url": url, "model": model}}}
    )


def _openai(key: str) -> ClientSettings:
    settings = ClientSettings.from_blob({"llm": {"provider": "openai", "openai": {"apiKey": key}}})
    settings.llm.openai.model = ""
    return settings


@pytest.mark.asyncio
async def test_list_lmstudio_models_is_sorted(http, upstream) -> None:
    assert await list_lmstudio_models(http, "http://box:1234/") == ["llama", "qwen"]
    assert str(upstream.requests[0].url) == "http://box:1234/v1/models"


@pytest.mark.asyncio
async def test_list_openai_models_keeps_gpt_models(http, upstream) -> None:
    assert await list_openai_models(http, "sk-1") == ["gpt-4.1", "gpt-4o"]
    assert upstream.requests[0].headers["Authorization"] == "Bearer sk-1"


@pytest.mark.asyncio
async def test_lmstudio_lookup_debounces_typing_and_autoselects(http, upstream) -> None:
    catalog = ModelCatalog(http, lmstudio_delay=0.02)

    for url in ("http://b", "http://bo", "http://box:1234"):
        catalog.update(_lmstudio(url))
    await catalog.lmstudio.wait()

    assert len(upstream.requests) == 1
    assert upstream.requests[0].url.host == "box"
    assert catalog.lmstudio.state == LookupState.SUCCESS
    assert catalog.lmstudio.reachable is True
    assert catalog.settings.llm.lmstudio.model == "llama"


@pytest.mark.asyncio
async def test_lookup_keeps_existing_model_choice(http) -> None:
    catalog = ModelCatalog(http, lmstudio_delay=0)

    catalog.update(_lmstudio("http://box:1234", model="qwen"))
    await catalog.lmstudio.wait()

    assert catalog.settings.llm.lmstudio.model == "qwen"


@pytest.mark.asyncio
async def test_unchanged_input_is_not_looked_up_again(http, upstream) -> None:
    catalog = ModelCatalog(http, lmstudio_delay=0)

    catalog.update(_lmstudio("http://box:1234"))
    await catalog.lmstudio.wait()
    catalog.update(_lmstudio("http://box:1234", model="llama"))
    await catalog.lmstudio.wait()

    assert len(upstream.requests) == 1


@pytest.mark.asyncio
async def test_failed_lookup_reports_status(http, upstream) -> None:
    upstream.status = 401
    catalog = ModelCatalog(http, openai_delay=0)

    catalog.update(_openai("sk-bad"))
    await catalog.openai.wait()

    assert catalog.openai.state == LookupState.ERROR
    assert catalog.openai.reachable is False
    assert catalog.openai.error == "HTTP 401"


@pytest.mark.asyncio
async def test_switching_provider_resets_the_other_lookup(http) -> None:
    catalog = ModelCatalog(http, lmstudio_delay=0, openai_delay=0)

    catalog.update(_openai("sk-1"))
    await catalog.openai.wait()
    assert catalog.openai.models == ["gpt-4.1", "gpt-4o"]
    assert catalog.settings.llm.openai.model == "gpt-4.1"

    catalog.update(_lmstudio("http://box:1234"))

    assert catalog.settings.llm_provider == LlmProvider.LMSTUDIO
    assert catalog.openai.state == LookupState.IDLE
    assert catalog.openai.models == []
    catalog.close()


@pytest.mark.asyncio
async def test_autosave_skips_initial_population_and_debounces() -> None:
    saved = []

    async def save(blob):
        saved.append(blob)

    autosave = SettingsAutosave(save, delay=0.02)
    autosave.open()

    autosave.changed(ClientSettings())
    assert not autosave._debouncer.pending

    for prompt in ("B", "Be", "Be brief."):
        autosave.changed(ClientSettings(system_instruction=prompt))
    await autosave.wait()

    assert [b["systemInstruction"] for b in saved] == ["Be brief."]
    assert autosave.saved_count == 1


@pytest.mark.asyncio
async def test_autosave_close_drops_pending_save() -> None:
    saved = []

    async def save(blob):
        saved.append(blob)

    autosave = SettingsAutosave(save, delay=0.02)
    autosave.open()
    autosave.changed(ClientSettings())
    autosave.changed(ClientSettings(system_instruction="x"))

    autosave.close()
    await autosave.wait()

    assert saved == []


@pytest.mark.asyncio
async def test_clearing_the_key_mid_lookup_returns_to_idle() -> None:
    release = asyncio.Event()
    requests = []

    async def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        await release.wait()
        return httpx.Response(200, json={"data": [{"id": "gpt-4o"}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        catalog = ModelCatalog(http, openai_delay=0)
        catalog.update(_openai("sk-1"))
        await asyncio.sleep(0.01)
        assert len(requests) == 1
        assert catalog.openai.state == LookupState.LOADING

        catalog.update(_openai(""))
        release.set()
        await catalog.openai.wait()

        assert catalog.openai.state == LookupState.IDLE
        assert catalog.openai.models == []
        assert catalog.settings.llm.openai.model == ""


@pytest.mark.asyncio
async def test_close_settles_a_loading_lookup() -> None:
    release = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        await release.wait()
        return httpx.Response(200, json={"data": [{"id": "qwen"}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        catalog = ModelCatalog(http, lmstudio_delay=0)
        catalog.update(_lmstudio("http://box:1234"))
        await asyncio.sleep(0.01)
        assert catalog.lmstudio.state == LookupState.LOADING

        catalog.close()
        release.set()
        await asyncio.sleep(0.01)

        assert catalog.lmstudio.state == LookupState.IDLE
        assert catalog.lmstudio.models == []
