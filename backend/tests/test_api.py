"""Tests for the HTTP API."""

import httpx
import pytest

from omnichat.agent.provider import ChatAgent
from omnichat.config import Settings, get_settings
from omnichat.dependencies import get_agent_factory, get_http_client
from omnichat.main import app

from .conftest import MONGO_SETTINGS, record


@pytest.fixture
def env_settings():
    """Pin the environment layer so tests never see a real MONGO_URI."""
    env = Settings(mongo_uri="")
    app.dependency_overrides[get_settings] = lambda: env
    return env


# ----------------------------------------------------------------------
# Health
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health_without_environment_store(client, env_settings) -> None:
    response = await client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["services"]["mongodb"]["status"] == "unconfigured"


@pytest.mark.asyncio
async def test_health_degrades_when_store_unreachable(client, mongo, env_settings) -> None:
    env_settings.mongo_uri = "mongodb://env"
    mongo.fail = True

    data = (await client.get("/api/health")).json()

    assert data["status"] == "degraded"
    assert data["services"]["mongodb"]["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_db_check(client, mongo) -> None:
    ok = await client.post("/api/test-db", json={"mongoUri": "mongodb://x", "mongoDb": "d"})
    assert ok.json() == {"ok": True}

    mongo.fail = True
    failed = (await client.post("/api/test-db", json={"mongoUri": "mongodb://x"})).json()
    assert failed["ok"] is False
    assert failed["error"]

    missing = await client.post("/api/test-db", json={})
    assert missing.status_code == 400


# ----------------------------------------------------------------------
# Logs
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_logs_require_a_store(client, env_settings) -> None:
    response = await client.post("/api/logs", json={})
    assert response.status_code == 400
    assert "not configured" in response.json()["detail"]


@pytest.mark.asyncio
async def test_env_only_history_is_empty_when_unconfigured(client, env_settings) -> None:
    response = await client.get("/api/logs")
    assert response.status_code == 200
    assert response.json() == {"logs": []}


@pytest.mark.asyncio
async def test_env_only_history_returns_newest_records(client, mongo, env_settings) -> None:
    env_settings.mongo_uri = "mongodb://env"
    mongo.seed(
        *(record("A", f"q{i}", f"2026-01-01T10:{i:02d}:00+00:00") for i in range(52))
    )

    logs = (await client.get("/api/logs")).json()["logs"]

    assert len(logs) == 50
    assert logs[0]["question"] == "q51"


@pytest.mark.asyncio
async def test_logs_history_and_search(client, mongo) -> None:
    mongo.seed(
        record("A", "hi", "2026-01-01T10:00:00+00:00", answer="hello"),
        record(None, "legacy question", "2026-01-01T09:00:00+00:00"),
        record("B", "Weather today?", "2026-01-01T11:00:00+00:00", answer="sunny"),
    )

    history = (await client.post("/api/logs", json={"settings": MONGO_SETTINGS})).json()["logs"]
    assert [d["question"] for d in history] == ["Weather today?", "hi", "legacy question"]
    assert history[0]["sessionId"] == "B"
    assert "sessionId" not in history[2]

    found = (
        await client.post("/api/logs", json={"settings": MONGO_SETTINGS, "search": "WEATHER"})
    ).json()["logs"]
    assert [d["sessionId"] for d in found] == ["B"]


@pytest.mark.asyncio
async def test_logs_store_failure_is_500(client, mongo) -> None:
    mongo.fail = True
    response = await client.post("/api/logs", json={"settings": MONGO_SETTINGS})
    assert response.status_code == 500


@pytest.mark.asyncio
async def test_delete_sessions_then_everything(client, mongo) -> None:
    mongo.seed(
        record("A", "a", "2026-01-01T10:00:00+00:00"),
        record("B", "b", "2026-01-01T10:01:00+00:00"),
        record(None, "legacy", "2026-01-01T09:00:00+00:00"),
    )

    response = await client.post(
        "/api/logs/delete", json={"settings": MONGO_SETTINGS, "sessionIds": ["A"]}
    )
    assert response.json() == {"deleted": 1}
    assert {d["question"] for d in mongo.logs.docs} == {"b", "legacy"}

    # An empty id list means delete everything.
    response = await client.post(
        "/api/logs/delete", json={"settings": MONGO_SETTINGS, "sessionIds": []}
    )
    assert response.json() == {"deleted": 2}
    assert mongo.logs.delete_queries[-1] == {}


# ----------------------------------------------------------------------
# Chat
# ----------------------------------------------------------------------

OPENAI_SETTINGS = {
    "llm": {"provider": "openai", "openai": {"apiKey": "sk-test", "model": "gpt-4.1"}},
    **MONGO_SETTINGS,
}


@pytest.mark.asyncio
async def test_chat_answers_and_logs(client, mongo) -> None:
    response = await client.post(
        "/api/chat",
        json={"message": " hi ", "sessionId": "S1", "settings": OPENAI_SETTINGS},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["answer"] == "Hello from the fake model"
    assert data["sessionId"] == "S1"
    assert data["logged"] is True
    assert data["stats"]["provider"] == "openai"
    assert data["stats"]["model"] == "gpt-4.1"
    assert data["stats"]["llmMs"] >= 0
    assert data["stats"]["dbMs"] >= 0

    (doc,) = mongo.logs.docs
    assert doc["sessionId"] == "S1"
    assert doc["question"] == "hi"
    assert doc["model"] == "gpt-4.1"


@pytest.mark.asyncio
async def test_chat_without_store_is_not_logged(client, mongo, env_settings) -> None:
    settings = {"llm": OPENAI_SETTINGS["llm"]}
    data = (
        await client.post("/api/chat", json={"message": "hi", "settings": settings})
    ).json()

    assert data["logged"] is False
    assert data["stats"]["dbMs"] is None
    assert mongo.logs.docs == []


@pytest.mark.asyncio
async def test_chat_store_failure_still_answers(client, mongo) -> None:
    mongo.fail = True
    data = (
        await client.post(
            "/api/chat", json={"message": "hi", "sessionId": "S1", "settings": OPENAI_SETTINGS}
        )
    ).json()

    assert data["answer"] == "Hello from the fake model"
    assert data["logged"] is False


@pytest.mark.asyncio
async def test_chat_rejects_blank_message(client) -> None:
    response = await client.post("/api/chat", json={"message": "   ", "settings": OPENAI_SETTINGS})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_chat_unconfigured_provider_is_400(client) -> None:
    app.dependency_overrides[get_agent_factory] = lambda: ChatAgent

    response = await client.post(
        "/api/chat", json={"message": "hi", "settings": {"llm": {"provider": "openai"}}}
    )

    assert response.status_code == 400
    assert "API key" in response.json()["detail"]


# ----------------------------------------------------------------------
# LM Studio proxy
# ----------------------------------------------------------------------


def _use_upstream(handler) -> None:
    upstream = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_http_client] = lambda: upstream


@pytest.mark.asyncio
async def test_lmstudio_models_proxy(client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/models"
        return httpx.Response(200, json={"data": [{"id": "qwen"}, {"id": "llama"}]})

    _use_upstream(handler)

    response = await client.post("/api/lmstudio-models", json={"url": "http://box:1234/"})

    assert response.status_code == 200
    assert [m["id"] for m in response.json()["data"]] == ["qwen", "llama"]


@pytest.mark.asyncio
async def test_lmstudio_models_errors(client) -> None:
    assert (await client.post("/api/lmstudio-models", json={})).status_code == 400

    _use_upstream(lambda request: httpx.Response(404))
    response = await client.post("/api/lmstudio-models", json={"url": "http://box:1234"})
    assert response.status_code == 404

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    _use_upstream(refuse)
    response = await client.post("/api/lmstudio-models", json={"url": "http://box:1234"})
    assert response.status_code == 502
