"""Grouping pass: flat log records to ordered conversation summaries.

Records sharing a ``sessionId`` form one conversation.  Each legacy record
(no ``sessionId``) becomes its own conversation keyed ``legacy-<index>``,
where ``index`` is its position in the input sequence.  Those keys are only
meaningful for the fetch they were computed from: a re-fetch can hand the
same record a different key.
"""

from __future__ import annotations

from typing import Iterable

from omnichat.models.logs import ConversationSummary, LogRecord, recency_key

LEGACY_PREFIX = "legacy-"


def legacy_key(index: int) -> str:
    return f"{LEGACY_PREFIX}{index}"


def is_legacy_key(key: str) -> bool:
    return key.startswith(LEGACY_PREFIX)


def _chronological(records: Iterable[LogRecord]) -> list[LogRecord]:
    return sorted(records, key=lambda r: recency_key(r.created_at))


def _summarise(key: str, session_id: str | None, records: list[LogRecord]) -> ConversationSummary:
    ordered = _chronological(records)
    first, last = ordered[0], ordered[-1]
    return ConversationSummary(
        key=key,
        session_id=session_id,
        title=first.question,
        latest_timestamp=last.created_at,
        model=last.model,
        message_count=len(ordered),
        records=tuple(ordered),
    )


def group_records(records: Iterable[LogRecord]) -> list[ConversationSummary]:
    """Group records into conversations, most recently active first.

    Ties on the latest timestamp keep input order (sessions by first
    appearance, then legacy records), since ``sorted`` is stable even with
    ``reverse=True``.
    """
    by_session: dict[str, list[LogRecord]] = {}
    legacy: list[tuple[int, LogRecord]] = []

    for index, record in enumerate(records):
        if record.session_id:
            by_session.setdefault(record.session_id, []).append(record)
        else:
            legacy.append((index, record))

    summaries = [
        _summarise(session_id, session_id, session_records)
        for session_id, session_records in by_session.items()
    ]
    summaries.extend(_summarise(legacy_key(index), None, [record]) for index, record in legacy)

    return sorted(
        summaries,
        key=lambda s: recency_key(s.latest_timestamp),
        reverse=True,
    )
