"""Insight generators — weekly summary, mood trend, recommendations.

Each generator is idempotent: ``generate_if_needed`` does no external work
when a fresh artifact already exists or no entry is newer than the last
one.  Entry text is redacted before it is put into a prompt; an entry the
redactor cannot process is withheld from the prompt.

Errors from the text-generation service, result validation or the store
propagate to the caller (the orchestrator absorbs them).
"""

from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, ClassVar, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from . import prompts
from .errors import RedactionFailed
from .llm import TextGenerator, strip_json_fences
from .redactor import Redactor
from .store import InsightStore, utcnow
from .types import Entry, InsightArtifact, JobKind

logger = logging.getLogger(__name__)

WITHHELD = "[WITHHELD]"


class InsightGenerator(Protocol):
    kind: JobKind

    async def generate_if_needed(self, entries: Sequence[Entry]) -> InsightArtifact | None:
        ...


# ── Result models ────────────────────────────────────────────────────

class _Result(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WeeklySummaryResult(_Result):
    main_summary: str = ""
    key_themes: list[str] = Field(default_factory=list)
    mood_trend: str = ""
    notable_quote: str = ""


class MoodTrendResult(_Result):
    overall_trend: str = ""
    dominant_mood: str = ""
    mood_shifts: list[str] = Field(default_factory=list)
    analysis: str = ""


class Recommendation(_Result):
    title: str
    description: str
    category: str = ""
    rationale: str = ""


class RecommendationResult(_Result):
    recommendations: list[Recommendation] = Field(default_factory=list)


# ── Generators ───────────────────────────────────────────────────────

class BaseInsightGenerator:
    """Shared generate → validate → persist flow.

    Subclasses pick the entries, build the prompt context and name the
    result model.
    """

    kind: ClassVar[JobKind]
    result_model: ClassVar[type[_Result]]
    user_message: ClassVar[str]
    regeneration_threshold: ClassVar[timedelta] = timedelta(days=1)
    min_entries: ClassVar[int] = 1

    def __init__(
        self,
        llm: TextGenerator,
        store: InsightStore,
        redactor: Redactor,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._llm = llm
        self._store = store
        self._redactor = redactor
        self._clock = clock

    async def generate_if_needed(self, entries: Sequence[Entry]) -> InsightArtifact | None:
        name = self.kind.value
        now = self._clock()

        try:
            if await asyncio.to_thread(
                self._store.exists, self.kind, self.regeneration_threshold, now
            ):
                logger.info("%s: skipping, last insight is newer than %s",
                            name, self.regeneration_threshold)
                return None
            latest = await asyncio.to_thread(self._store.latest, self.kind)
        except Exception:
            logger.warning("%s: could not load latest insight, generating anyway",
                           name, exc_info=True)
            latest = None

        selected = self.select_entries(entries, now)
        if latest is not None and not any(
            _as_utc(e.timestamp) > _as_utc(latest.generated_at) for e in selected
        ):
            logger.info("%s: skipping, no new entries since %s",
                        name, latest.generated_at.isoformat())
            return None
        if len(selected) < self.min_entries:
            logger.info("%s: skipping, %d entries (need %d)",
                        name, len(selected), self.min_entries)
            return None

        logger.info("%s: generating from %d entries", name, len(selected))
        context = await asyncio.to_thread(self.build_context, selected)
        raw = await self._llm.complete(self.system_prompt(context), self.user_message)
        result = self.result_model.model_validate_json(strip_json_fences(raw))
        if self.is_empty(result):
            logger.info("%s: empty result, nothing saved", name)
            return None

        period_start, period_end = self.period(now)
        artifact = InsightArtifact(
            kind=self.kind,
            generated_at=now,
            payload=result.model_dump_json(by_alias=True, indent=2),
            period_start=period_start,
            period_end=period_end,
        )
        await asyncio.to_thread(self._store.store, self.kind, artifact)
        logger.info("%s: saved insight", name)
        return artifact

    # Hooks

    def select_entries(self, entries: Sequence[Entry], now: datetime) -> list[Entry]:
        raise NotImplementedError

    def build_context(self, entries: Sequence[Entry]) -> str:
        raise NotImplementedError

    def system_prompt(self, context: str) -> str:
        raise NotImplementedError

    def period(self, now: datetime) -> tuple[datetime | None, datetime | None]:
        return None, None

    def is_empty(self, result: _Result) -> bool:
        return False

    # Helpers

    def snippet(self, entry: Entry, limit: int) -> str:
        """Redacted entry text, truncated to ``limit`` characters.

        Text the redactor would pass through for its length is cut below
        the limit first, so only redacted text reaches the prompt.
        """
        text = entry.text
        max_length = self._redactor.policy.max_input_length
        if len(text) >= max_length:
            text = text[:max_length - 1]
        try:
            text = self._redactor.redact(text)
        except RedactionFailed:
            logger.warning("Entry %s withheld from prompt: redaction failed", entry.id)
            return WITHHELD
        return text if len(text) <= limit else text[:limit] + "..."


class SummaryGenerator(BaseInsightGenerator):
    kind = JobKind.SUMMARY
    result_model = WeeklySummaryResult
    user_message = prompts.SUMMARY_USER_MESSAGE
    window = timedelta(days=7)
    snippet_length = 200

    def select_entries(self, entries, now):
        since = _start_of_day(now) - self.window
        return [e for e in entries if _as_utc(e.timestamp) >= since]

    def build_context(self, entries):
        return "\n\n".join(
            f"Date: {_day(e)}, Mood: {e.mood.label}\n{self.snippet(e, self.snippet_length)}"
            for e in entries
        )

    def system_prompt(self, context):
        return prompts.weekly_summary_prompt(context)

    def period(self, now):
        today = _start_of_day(now)
        return today - self.window, today


class MoodTrendGenerator(BaseInsightGenerator):
    kind = JobKind.MOOD_TREND
    result_model = MoodTrendResult
    user_message = prompts.MOOD_TREND_USER_MESSAGE
    min_entries = 3
    fetch_window = timedelta(days=21)
    trend_window = timedelta(days=14)

    def select_entries(self, entries, now):
        since = _start_of_day(now) - self.fetch_window
        selected = [e for e in entries if _as_utc(e.timestamp) >= since]
        return sorted(selected, key=lambda e: _as_utc(e.timestamp))

    def build_context(self, entries):
        # Moods only, no entry text
        return "\n".join(f"Date: {_day(e)}, Mood: {e.mood.label}" for e in entries)

    def system_prompt(self, context):
        return prompts.mood_trend_prompt(context)

    def period(self, now):
        today = _start_of_day(now)
        return today - self.trend_window, today


class RecommendationGenerator(BaseInsightGenerator):
    kind = JobKind.RECOMMENDATION
    result_model = RecommendationResult
    user_message = prompts.RECOMMENDATION_USER_MESSAGE
    regeneration_threshold = timedelta(days=3)
    min_entries = 3
    max_entries = 15
    snippet_length = 150

    def select_entries(self, entries, now):
        recent = sorted(entries, key=lambda e: _as_utc(e.timestamp), reverse=True)
        return recent[: self.max_entries]

    def build_context(self, entries):
        return "\n\n".join(
            f"Date: {_day(e)}, Mood: {e.mood.label}\n{self.snippet(e, self.snippet_length)}"
            for e in entries
        )

    def system_prompt(self, context):
        return prompts.recommendation_prompt(context)

    def is_empty(self, result):
        return not result.recommendations


def default_generators(
    llm: TextGenerator,
    store: InsightStore,
    redactor: Redactor,
    *,
    clock: Callable[[], datetime] = utcnow,
) -> list[BaseInsightGenerator]:
    return [
        cls(llm, store, redactor, clock=clock)
        for cls in (SummaryGenerator, MoodTrendGenerator, RecommendationGenerator)
    ]


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _start_of_day(value: datetime) -> datetime:
    return _as_utc(value).replace(hour=0, minute=0, second=0, microsecond=0)


def _day(entry: Entry) -> str:
    return _as_utc(entry.timestamp).date().isoformat()
