"""Shared test fixtures for the OmniChat backend."""

from __future__ import annotations

import re
from collections.abc import AsyncGenerator
from types import SimpleNamespace
from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from pymongo.errors import ServerSelectionTimeoutError

from omnichat.agent.provider import ChatAgent
from omnichat.config import StoreConnection
from omnichat.dependencies import get_agent_factory, get_store_factory
from omnichat.main import app
from omnichat.memory.log_store import LogStore
from omnichat.models.logs import LogRecord

MONGO_SETTINGS = {"database": {"mongoUri": "mongodb://fake:27017", "mongoDb": "chat_logs"}}


# ----------------------------------------------------------------------
# In-memory stand-in for the parts of motor the log store touches
# ----------------------------------------------------------------------


def _matches(doc: dict[str, Any], query: dict[str, Any]) -> bool:
    for field, condition in query.items():
        if field == "$or":
            if not any(_matches(doc, sub) for sub in condition):
                return False
            continue
        value = doc.get(field)
        if isinstance(condition, dict):
            if "$in" in condition and value not in condition["$in"]:
                return False
            if "$exists" in condition and (field in doc) != condition["$exists"]:
                return False
            if "$regex" in condition:
                flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
                if not isinstance(value, str) or not re.search(condition["$regex"], value, flags):
                    return False
        elif value != condition:
            return False
    return True


class FakeCursor:
    def __init__(self, docs: list[dict[str, Any]]) -> None:
        self._docs = docs

    def sort(self, field: str, direction: int) -> FakeCursor:
        present = [d for d in self._docs if d.get(field) is not None]
        missing = [d for d in self._docs if d.get(field) is None]
        present.sort(key=lambda d: d[field], reverse=direction < 0)
        self._docs = present + missing if direction < 0 else missing + present
        return self

    def limit(self, n: int) -> FakeCursor:
        self._docs = self._docs[:n]
        return self

    async def to_list(self, length: Optional[int] = None) -> list[dict[str, Any]]:
        return list(self._docs)


class FakeCollection:
    def __init__(self, mongo: FakeMongo) -> None:
        self._mongo = mongo
        self.docs: list[dict[str, Any]] = []
        self.delete_queries: list[dict[str, Any]] = []

    def find(self, query: dict[str, Any], projection: Optional[dict[str, Any]] = None) -> FakeCursor:
        self._mongo.check()
        return FakeCursor([dict(d) for d in self.docs if _matches(d, query)])

    def aggregate(self, pipeline: list[dict[str, Any]]) -> FakeCursor:
        self._mongo.check()
        groups: dict[Any, dict[str, Any]] = {}
        for stage in pipeline:
            if "$group" in stage:
                field = stage["$group"]["_id"].lstrip("$")
                for doc in self.docs:
                    key = doc.get(field)
                    created = doc.get("createdAt")
                    group = groups.setdefault(key, {"_id": key, "latestAt": created})
                    if created is not None and (group["latestAt"] is None or created > group["latestAt"]):
                        group["latestAt"] = created
        cursor = FakeCursor(list(groups.values()))
        for stage in pipeline:
            if "$sort" in stage:
                (field, direction), = stage["$sort"].items()
                cursor.sort(field, direction)
            if "$limit" in stage:
                cursor.limit(stage["$limit"])
        return cursor

    async def delete_many(self, query: dict[str, Any]) -> SimpleNamespace:
        self._mongo.check()
        self.delete_queries.append(query)
        keep = [d for d in self.docs if not _matches(d, query)]
        deleted = len(self.docs) - len(keep)
        self.docs = keep
        return SimpleNamespace(deleted_count=deleted)

    async def insert_one(self, doc: dict[str, Any]) -> SimpleNamespace:
        self._mongo.check()
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=len(self.docs))


class FakeMongo:
    """One shared 'server'; each LogStore gets its own client onto it."""

    def __init__(self) -> None:
        self.logs = FakeCollection(self)
        self.fail = False
        self.clients_opened = 0
        self.clients_closed = 0

    def check(self) -> None:
        if self.fail:
            raise ServerSelectionTimeoutError("fake server unreachable")

    def client(self, uri: str, **kwargs: Any) -> FakeClient:
        self.clients_opened += 1
        return FakeClient(self)

    def seed(self, *records: LogRecord) -> None:
        self.logs.docs.extend(r.to_document() for r in records)


class FakeClient:
    def __init__(self, mongo: FakeMongo) -> None:
        self._mongo = mongo
        self.admin = SimpleNamespace(command=self._command)

    async def _command(self, name: str) -> dict[str, Any]:
        self._mongo.check()
        return {"ok": 1}

    def __getitem__(self, database: str) -> dict[str, FakeCollection]:
        return {"logs": self._mongo.logs}

    def close(self) -> None:
        self._mongo.clients_closed += 1


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------


def record(
    session_id: Optional[str],
    question: str,
    created_at: str,
    answer: str = "",
    model: str = "gpt-4.1",
) -> LogRecord:
    return LogRecord(
        session_id=session_id,
        question=question,
        answer=answer or f"answer to {question}",
        model=model,
        created_at=created_at,
    )


@pytest.fixture
def mongo() -> FakeMongo:
    return FakeMongo()


@pytest.fixture
def store(mongo: FakeMongo) -> LogStore:
    log_store = LogStore(
        StoreConnection(uri="mongodb://fake:27017"),
        client_factory=mongo.client,
    )
    log_store.open()
    return log_store


@pytest.fixture
def chat_replies() -> list[str]:
    return ["Hello from the fake model"]


@pytest_asyncio.fixture
async def client(mongo: FakeMongo, chat_replies: list[str]) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints against the fake store."""

    def store_factory(connection: StoreConnection) -> LogStore:
        return LogStore(connection, client_factory=mongo.client)

    # One model per test so replies advance across requests.
    model = FakeListChatModel(responses=chat_replies)

    def agent_factory(client_settings):
        return ChatAgent(client_settings, model_factory=lambda llm: model)

    app.dependency_overrides[get_store_factory] = lambda: store_factory
    app.dependency_overrides[get_agent_factory] = lambda: agent_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
