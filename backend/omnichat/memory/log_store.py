"""MongoDB log store: one document per question/answer exchange.

Document schema (collection ``logs``)::

    {
        "sessionId": "3f2a...",            # absent on legacy records
        "question": "What is a monad?",
        "answer": "A monad is ...",
        "model": "gpt-4.1",
        "createdAt": "2026-02-08T10:30:00+00:00"
    }

The engine never updates a record.  It appends one per exchange and deletes
sets of them; reads always come back as fresh lists (no local splicing).
"""

from __future__ import annotations

import logging
import re
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Sequence

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from omnichat.config import StoreConnection
from omnichat.errors import TransportFailure
from omnichat.models.logs import LogRecord

logger = logging.getLogger(__name__)

COLLECTION_NAME = "logs"
SESSION_LIMIT = 50
SEARCH_LIMIT = 200
RECENT_LIMIT = 50

_PROJECTION = {"_id": 0}


# ----------------------------------------------------------------------
# Query builders
# ----------------------------------------------------------------------


def search_filter(term: str) -> dict[str, Any]:
    """Case-insensitive literal substring match on question or answer."""
    pattern = re.escape(term)
    return {
        "$or": [
            {"question": {"$regex": pattern, "$options": "i"}},
            {"answer": {"$regex": pattern, "$options": "i"}},
        ]
    }


def history_pipeline(limit: int = SESSION_LIMIT) -> list[dict[str, Any]]:
    """Aggregation yielding the ``limit`` most recently active session ids.

    Records without a ``sessionId`` collapse into a single ``None`` group.
    """
    return [
        {"$group": {"_id": "$sessionId", "latestAt": {"$max": "$createdAt"}}},
        {"$sort": {"latestAt": -1}},
        {"$limit": limit},
    ]


def history_filter(session_ids: Sequence[str], include_legacy: bool) -> dict[str, Any]:
    """Filter for every record of the given sessions, plus legacy ones if asked."""
    by_session: dict[str, Any] = {"sessionId": {"$in": list(session_ids)}}
    if not include_legacy:
        return by_session
    return {
        "$or": [
            by_session,
            {"sessionId": None},
            {"sessionId": {"$exists": False}},
        ]
    }


def delete_filter(session_ids: Optional[Sequence[str]]) -> dict[str, Any]:
    """``None`` deletes everything; a sequence deletes by ``sessionId`` only.

    Legacy records carry no ``sessionId`` and therefore never match a
    by-id delete.

    Raises:
        ValueError: If ``session_ids`` is an empty sequence.
    """
    if session_ids is None:
        return {}
    ids = list(session_ids)
    if not ids:
        raise ValueError("delete_filter needs at least one session id (use None for all)")
    return {"sessionId": {"$in": ids}}


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as exc:
        logger.error("Log store %s failed: %s", operation, exc)
        raise TransportFailure(f"Log store {operation} failed: {exc}", cause=exc) from exc


# ----------------------------------------------------------------------
# Store
# ----------------------------------------------------------------------


class LogStore:
    """Async adapter over the ``logs`` collection.

    Lifecycle::

        async with LogStore(connection) as store:
            records = await store.fetch()
    """

    def __init__(
        self,
        connection: StoreConnection,
        *,
        session_limit: int = SESSION_LIMIT,
        search_limit: int = SEARCH_LIMIT,
        client_factory: Callable[..., Any] = AsyncIOMotorClient,
    ) -> None:
        self.connection = connection
        self.session_limit = session_limit
        self.search_limit = search_limit
        self._client_factory = client_factory
        self._client: Any = None
        self._collection: AsyncIOMotorCollection | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        if self._client is not None:
            return
        self._client = self._client_factory(
            self.connection.uri,
            serverSelectionTimeoutMS=5_000,
        )
        self._collection = self._client[self.connection.database][COLLECTION_NAME]

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._collection = None

    async def __aenter__(self) -> LogStore:
        self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def collection(self) -> AsyncIOMotorCollection:
        if self._collection is None:
            raise RuntimeError("LogStore not open - use 'async with' or call open() first")
        return self._collection

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch(self, search: Optional[str] = None) -> list[LogRecord]:
        """Return records for the history list, or the matches for ``search``.

        Without a term: every record of the most recently active sessions
        (plus legacy records if their group made the cut).  With a term: up
        to ``search_limit`` matching records regardless of session.
        Both come back newest first.
        """
        term = search.strip() if isinstance(search, str) else ""
        started = time.perf_counter()

        with _store_errors("fetch"):
            if term:
                cursor = (
                    self.collection.find(search_filter(term), _PROJECTION)
                    .sort("createdAt", -1)
                    .limit(self.search_limit)
                )
                docs = await cursor.to_list(length=None)
            else:
                groups = await self.collection.aggregate(
                    history_pipeline(self.session_limit)
                ).to_list(length=None)
                session_ids = [g["_id"] for g in groups if isinstance(g.get("_id"), str)]
                has_legacy = any(g.get("_id") is None for g in groups)
                cursor = self.collection.find(
                    history_filter(session_ids, has_legacy), _PROJECTION
                ).sort("createdAt", -1)
                docs = await cursor.to_list(length=None)

        records = [LogRecord.from_document(doc) for doc in docs]
        logger.info(
            "Fetched %d log records (search=%r) in %.0fms",
            len(records),
            term or None,
            (time.perf_counter() - started) * 1000,
        )
        return records

    async def recent(self, limit: int = RECENT_LIMIT) -> list[LogRecord]:
        """The newest ``limit`` records across all sessions, newest first."""
        with _store_errors("recent read"):
            cursor = (
                self.collection.find({}, _PROJECTION).sort("createdAt", -1).limit(limit)
            )
            docs = await cursor.to_list(length=None)
        return [LogRecord.from_document(doc) for doc in docs]

    async def session_records(self, session_id: str) -> list[LogRecord]:
        """All records of one session, oldest first."""
        with _store_errors("session read"):
            cursor = self.collection.find({"sessionId": session_id}, _PROJECTION).sort(
                "createdAt", 1
            )
            docs = await cursor.to_list(length=None)
        return [LogRecord.from_document(doc) for doc in docs]

    async def ping(self) -> None:
        with _store_errors("ping"):
            await self._client_or_raise().admin.command("ping")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, record: LogRecord) -> None:
        with _store_errors("insert"):
            await self.collection.insert_one(record.to_document())
        logger.debug("Logged exchange for session %s", record.session_id)

    async def delete(self, session_ids: Optional[Sequence[str]]) -> int:
        """Delete the given sessions' records, or everything when ``None``.

        Returns:
            Number of records removed.  Zero is not an error.
        """
        query = delete_filter(session_ids)
        with _store_errors("delete"):
            result = await self.collection.delete_many(query)
        logger.info(
            "Deleted %d log records (%s)",
            result.deleted_count,
            "all" if session_ids is None else f"{len(query['sessionId']['$in'])} sessions",
        )
        return result.deleted_count

    def _client_or_raise(self) -> Any:
        if self._client is None:
            raise RuntimeError("LogStore not open - use 'async with' or call open() first")
        return self._client


StoreFactory = Callable[[StoreConnection], LogStore]
