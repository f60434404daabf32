"""Insight stores — persistence for generated artifacts.

Two interchangeable backends with the same API:

    store = MemoryInsightStore()                       # tests, ephemeral runs
    store = SqliteInsightStore("~/.journal-insights/insights.db")

    store.store(JobKind.SUMMARY, artifact)
    store.exists(JobKind.SUMMARY, timedelta(days=1))   # fresh enough?
    store.latest(JobKind.SUMMARY)

Both are safe to call from several threads at once.
"""

from __future__ import annotations
import sqlite3
import threading
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol

from .types import InsightArtifact, JobKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InsightStore(Protocol):
    def store(self, kind: JobKind, artifact: InsightArtifact) -> None: ...
    def exists(self, kind: JobKind, freshness_window: timedelta,
               now: datetime | None = None) -> bool: ...
    def latest(self, kind: JobKind) -> InsightArtifact | None: ...


def _is_fresh(artifact: InsightArtifact | None, window: timedelta, now: datetime | None) -> bool:
    if artifact is None:
        return False
    return (now or utcnow()) - artifact.generated_at < window


class MemoryInsightStore:
    """In-memory store, newest artifact last per kind."""

    __slots__ = ("_artifacts", "_lock")

    def __init__(self) -> None:
        self._artifacts: dict[JobKind, list[InsightArtifact]] = defaultdict(list)
        self._lock = threading.Lock()

    def store(self, kind: JobKind, artifact: InsightArtifact) -> None:
        with self._lock:
            self._artifacts[kind].append(artifact)

    def exists(self, kind: JobKind, freshness_window: timedelta,
               now: datetime | None = None) -> bool:
        return _is_fresh(self.latest(kind), freshness_window, now)

    def latest(self, kind: JobKind) -> InsightArtifact | None:
        with self._lock:
            artifacts = self._artifacts.get(kind)
            if not artifacts:
                return None
            return max(artifacts, key=lambda a: a.generated_at)


_SCHEMA = """
CREATE TABLE IF NOT EXISTS insights (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    generated_at TEXT NOT NULL,
    payload TEXT NOT NULL,
    period_start TEXT,
    period_end TEXT
);
CREATE INDEX IF NOT EXISTS idx_insights_kind
    ON insights(kind, generated_at);
"""


class SqliteInsightStore:
    """Persistent store backed by SQLite — survives process restarts."""

    __slots__ = ("_db", "_lock")

    def __init__(self, db_path: str | Path = "insights.db") -> None:
        if str(db_path) != ":memory:":
            db_path = Path(db_path).expanduser()
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(str(db_path), check_same_thread=False)
        self._db.executescript(_SCHEMA)
        self._lock = threading.Lock()

    def store(self, kind: JobKind, artifact: InsightArtifact) -> None:
        with self._lock:
            self._db.execute(
                "INSERT INTO insights (kind, generated_at, payload, period_start, period_end) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    kind.value,
                    artifact.generated_at.isoformat(),
                    artifact.payload,
                    _iso(artifact.period_start),
                    _iso(artifact.period_end),
                ),
            )
            self._db.commit()

    def exists(self, kind: JobKind, freshness_window: timedelta,
               now: datetime | None = None) -> bool:
        return _is_fresh(self.latest(kind), freshness_window, now)

    def latest(self, kind: JobKind) -> InsightArtifact | None:
        with self._lock:
            row = self._db.execute(
                "SELECT generated_at, payload, period_start, period_end FROM insights "
                "WHERE kind = ? ORDER BY generated_at DESC, id DESC LIMIT 1",
                (kind.value,),
            ).fetchone()
        if row is None:
            return None
        generated_at, payload, period_start, period_end = row
        return InsightArtifact(
            kind=kind,
            generated_at=datetime.fromisoformat(generated_at),
            payload=payload,
            period_start=_parse(period_start),
            period_end=_parse(period_end),
        )

    def clear(self, kind: JobKind | None = None) -> int:
        """Delete stored insights, all kinds unless ``kind`` is given.

        Returns the number of rows removed.
        """
        with self._lock:
            if kind is None:
                cur = self._db.execute("DELETE FROM insights")
            else:
                cur = self._db.execute("DELETE FROM insights WHERE kind = ?", (kind.value,))
            self._db.commit()
        return cur.rowcount

    def close(self) -> None:
        self._db.close()


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
