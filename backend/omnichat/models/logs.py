"""Log record and conversation models.

A ``LogRecord`` is one persisted question/answer exchange in the ``logs``
collection.  A ``ConversationSummary`` is the derived, never-persisted view
the sidebar renders; it is rebuilt on every grouping pass.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from omnichat.errors import MalformedRecord

UNKNOWN_TIME = "Unknown time"
TITLE_MAX_CHARS = 80


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, returning ``None`` when unparsable.

    Naive values are read as UTC so that every parsed value is comparable.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def recency_key(value: Optional[str]) -> tuple[int, float]:
    """Total sort key for timestamps: unknown values rank below every valid one."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return (0, 0.0)
    return (1, parsed.timestamp())


def display_time(value: Optional[str]) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        return UNKNOWN_TIME
    return parsed.strftime("%Y-%m-%d %H:%M")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class LogRecord(BaseModel):
    """One question/answer exchange. Immutable once written."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    session_id: Optional[str] = Field(default=None, alias="sessionId")
    question: str
    answer: str
    model: str
    created_at: str = Field(alias="createdAt")

    @field_validator("session_id", mode="before")
    @classmethod
    def _blank_session_is_legacy(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def _timestamp_as_text(cls, value: Any) -> str:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.isoformat()
        return value

    @property
    def is_legacy(self) -> bool:
        return self.session_id is None

    @classmethod
    def create(
        cls,
        question: str,
        answer: str,
        model: str,
        session_id: Optional[str] = None,
    ) -> LogRecord:
        """Build a new record stamped with the current UTC time."""
        return cls(
            session_id=session_id,
            question=question,
            answer=answer,
            model=model,
            created_at=_now_iso(),
        )

    @classmethod
    def parse_strict(cls, doc: dict[str, Any]) -> LogRecord:
        """Parse a store document, rejecting missing fields or bad timestamps."""
        try:
            record = cls.model_validate(doc)
        except ValidationError as exc:
            raise MalformedRecord(str(exc), details={"document": doc}) from exc
        if parse_timestamp(record.created_at) is None:
            raise MalformedRecord(
                f"Unparsable createdAt: {record.created_at!r}",
                details={"document": doc},
            )
        return record

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> LogRecord:
        """Parse a store document leniently.

        Missing or non-text fields degrade to empty strings so the record
        still groups and displays.
        """
        created = doc.get("createdAt")
        if not isinstance(created, datetime):
            created = "" if created is None else str(created)
        return cls(
            session_id=doc.get("sessionId"),
            question=_text(doc.get("question")),
            answer=_text(doc.get("answer")),
            model=_text(doc.get("model")),
            created_at=created,
        )

    def to_document(self) -> dict[str, Any]:
        doc = self.model_dump(by_alias=True)
        if doc["sessionId"] is None:
            del doc["sessionId"]
        return doc


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class ConversationSummary(BaseModel):
    """A conversation as shown in the history list."""

    model_config = ConfigDict(frozen=True)

    key: str
    session_id: Optional[str] = None
    title: str
    latest_timestamp: str
    model: str
    message_count: int = Field(ge=1)
    records: tuple[LogRecord, ...]

    @property
    def is_legacy(self) -> bool:
        return self.session_id is None

    @property
    def display_time(self) -> str:
        return display_time(self.latest_timestamp)

    @property
    def display_title(self) -> str:
        if len(self.title) > TITLE_MAX_CHARS:
            return self.title[:TITLE_MAX_CHARS] + "…"
        return self.title

    def to_messages(self) -> list[dict[str, str]]:
        """Replay the conversation as alternating user/assistant turns."""
        messages: list[dict[str, str]] = []
        for record in self.records:
            messages.append({"role": "user", "content": record.question})
            messages.append({"role": "assistant", "content": record.answer})
        return messages
