"""Tests for insight generators, stores and the text-generation adapter."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import asyncio
import json
import re
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest
from pydantic import ValidationError

from journal_insights import (
    Entry,
    JobKind,
    MemoryInsightStore,
    Mood,
    MoodTrendGenerator,
    RecommendationGenerator,
    RedactionPolicy,
    Redactor,
    Span,
    SqliteInsightStore,
    SummaryGenerator,
)
from journal_insights.errors import LLMError
from journal_insights.generators import WITHHELD, default_generators
from journal_insights.llm import AnthropicTextGenerator, resolve_model, strip_json_fences
from journal_insights.types import InsightArtifact, PERSONAL_NAME, PLACE_NAME

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

SUMMARY_JSON = json.dumps({
    "mainSummary": "A busy but good week.",
    "keyThemes": ["Work", "Friends"],
    "moodTrend": "Mostly positive",
    "notableQuote": "",
})
TREND_JSON = json.dumps({
    "overallTrend": "Improving",
    "dominantMood": "Happy",
    "moodShifts": ["Sad to Happy"],
    "analysis": "Things are looking up.",
})
RECS_JSON = json.dumps({"recommendations": [
    {"title": "Walk", "description": "Take a walk.", "category": "Activity", "rationale": "Fresh air."},
]})


class FakeLLM:
    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    async def complete(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        return self.reply


class WordTagger:
    def __init__(self, words):
        self.words = words

    def tag(self, text, categories):
        for word, category in self.words.items():
            for m in re.finditer(re.escape(word), text):
                yield Span(category, m.start(), m.end())


class BrokenTagger:
    def tag(self, text, categories):
        raise OSError("model missing")
        yield  # pragma: no cover


def _redactor(tagger=None):
    policy = RedactionPolicy(placeholders={PERSONAL_NAME: "[NAME]", PLACE_NAME: "[PLACE]"})
    return Redactor(tagger or WordTagger({"Alice": PERSONAL_NAME, "Paris": PLACE_NAME}), policy)


def _entry(n, days_ago, text="Lunch with Alice in Paris", mood=Mood.HAPPY):
    return Entry(f"e{n}", text, NOW - timedelta(days=days_ago), mood)


def _run(generator, entries):
    return asyncio.run(generator.generate_if_needed(entries))


# ── Summary ──────────────────────────────────────────────────────────

def test_summary_generates_and_stores():
    llm, store = FakeLLM(SUMMARY_JSON), MemoryInsightStore()
    gen = SummaryGenerator(llm, store, _redactor(), clock=lambda: NOW)

    artifact = _run(gen, [_entry(1, 1), _entry(2, 30)])

    assert artifact is not None
    assert artifact.kind is JobKind.SUMMARY
    assert artifact.generated_at == NOW
    assert json.loads(artifact.payload)["mainSummary"] == "A busy but good week."
    assert artifact.period_end - artifact.period_start == timedelta(days=7)
    assert store.latest(JobKind.SUMMARY) == artifact

    system_prompt, user_prompt = llm.calls[0]
    assert "Lunch with [NAME] in [PLACE]" in system_prompt
    assert "Alice" not in system_prompt and "Paris" not in system_prompt
    assert "2026-10-16" in system_prompt
    assert "2026-09-17" not in system_prompt          # outside the week
    assert user_prompt.startswith("Generate the weekly summary")


def test_summary_skips_when_fresh():
    llm, store = FakeLLM(SUMMARY_JSON), MemoryInsightStore()
    store.store(JobKind.SUMMARY, InsightArtifact(JobKind.SUMMARY, NOW - timedelta(hours=2), "{}"))
    gen = SummaryGenerator(llm, store, _redactor(), clock=lambda: NOW)

    assert _run(gen, [_entry(1, 0)]) is None
    assert llm.calls == []


def test_summary_skips_without_new_entries():
    llm, store = FakeLLM(SUMMARY_JSON), MemoryInsightStore()
    store.store(JobKind.SUMMARY, InsightArtifact(JobKind.SUMMARY, NOW - timedelta(days=2), "{}"))
    gen = SummaryGenerator(llm, store, _redactor(), clock=lambda: NOW)

    assert _run(gen, [_entry(1, 3)]) is None
    assert llm.calls == []
    assert _run(gen, [_entry(1, 3), _entry(2, 1)]) is not None


def test_summary_without_recent_entries():
    llm = FakeLLM(SUMMARY_JSON)
    gen = SummaryGenerator(llm, MemoryInsightStore(), _redactor(), clock=lambda: NOW)
    assert _run(gen, [_entry(1, 20)]) is None
    assert llm.calls == []


def test_summary_truncates_long_text():
    llm = FakeLLM(SUMMARY_JSON)
    gen = SummaryGenerator(llm, MemoryInsightStore(), _redactor(), clock=lambda: NOW)
    _run(gen, [_entry(1, 1, text="x" * 500)])
    assert "x" * 200 + "..." in llm.calls[0][0]
    assert "x" * 201 not in llm.calls[0][0]


def test_withheld_text_when_redaction_fails():
    llm = FakeLLM(SUMMARY_JSON)
    gen = SummaryGenerator(llm, MemoryInsightStore(), _redactor(BrokenTagger()), clock=lambda: NOW)
    _run(gen, [_entry(1, 1)])
    prompt = llm.calls[0][0]
    assert WITHHELD in prompt
    assert "Alice" not in prompt


def test_oversized_entry_is_still_redacted():
    llm = FakeLLM(SUMMARY_JSON)
    gen = SummaryGenerator(llm, MemoryInsightStore(), _redactor(), clock=lambda: NOW)
    text = "Dinner with Alice. " + "la " * 2000
    assert len(text) > 5000

    _run(gen, [_entry(1, 1, text=text)])

    prompt = llm.calls[0][0]
    assert "Alice" not in prompt
    assert "Dinner with [NAME]. la la" in prompt
    assert "..." in prompt


def test_fenced_reply_is_accepted():
    llm = FakeLLM(f"Here you go:\n```json\n{SUMMARY_JSON}\n```")
    gen = SummaryGenerator(llm, MemoryInsightStore(), _redactor(), clock=lambda: NOW)
    assert _run(gen, [_entry(1, 1)]) is not None


def test_invalid_reply_propagates():
    store = MemoryInsightStore()
    gen = SummaryGenerator(FakeLLM("not json at all"), store, _redactor(), clock=lambda: NOW)
    with pytest.raises(ValidationError):
        _run(gen, [_entry(1, 1)])
    assert store.latest(JobKind.SUMMARY) is None


def test_store_lookup_error_does_not_block_generation():
    store = MagicMock()
    store.exists.side_effect = OSError("disk gone")
    gen = SummaryGenerator(FakeLLM(SUMMARY_JSON), store, _redactor(), clock=lambda: NOW)
    assert _run(gen, [_entry(1, 1)]) is not None
    store.store.assert_called_once()


# ── Mood trend ───────────────────────────────────────────────────────

def test_mood_trend_needs_three_entries():
    llm = FakeLLM(TREND_JSON)
    gen = MoodTrendGenerator(llm, MemoryInsightStore(), _redactor(), clock=lambda: NOW)
    assert _run(gen, [_entry(1, 1), _entry(2, 2)]) is None
    assert llm.calls == []


def test_mood_trend_uses_moods_only_oldest_first():
    llm = FakeLLM(TREND_JSON)
    gen = MoodTrendGenerator(llm, MemoryInsightStore(), _redactor(), clock=lambda: NOW)
    entries = [_entry(1, 1, mood=Mood.HAPPY), _entry(2, 5, mood=Mood.SAD),
               _entry(3, 10, mood=Mood.ANXIOUS), _entry(4, 40)]

    artifact = _run(gen, entries)

    prompt = llm.calls[0][0]
    assert "Lunch" not in prompt
    assert prompt.index("Mood: Anxious") < prompt.index("Mood: Sad") < prompt.index("Mood: Happy")
    assert "2026-09-07" not in prompt                   # 40 days back
    assert artifact.period_end - artifact.period_start == timedelta(days=14)
    assert json.loads(artifact.payload)["dominantMood"] == "Happy"


# ── Recommendations ──────────────────────────────────────────────────

def test_recommendations_use_fifteen_most_recent():
    llm = FakeLLM(RECS_JSON)
    store = MemoryInsightStore()
    gen = RecommendationGenerator(llm, store, _redactor(), clock=lambda: NOW)
    entries = [_entry(i, i, text=f"note-{i:02d}") for i in range(20)]

    artifact = _run(gen, entries)

    prompt = llm.calls[0][0]
    assert "note-14" in prompt and "note-15" not in prompt
    assert artifact.period_start is None
    assert store.latest(JobKind.RECOMMENDATION) == artifact


def test_empty_recommendations_are_not_saved():
    store = MemoryInsightStore()
    gen = RecommendationGenerator(FakeLLM('{"recommendations": []}'), store, _redactor(),
                                  clock=lambda: NOW)
    assert _run(gen, [_entry(i, i) for i in range(3)]) is None
    assert store.latest(JobKind.RECOMMENDATION) is None


def test_recommendations_regenerate_every_three_days():
    store = MemoryInsightStore()
    store.store(JobKind.RECOMMENDATION,
                InsightArtifact(JobKind.RECOMMENDATION, NOW - timedelta(days=2), "{}"))
    llm = FakeLLM(RECS_JSON)
    gen = RecommendationGenerator(llm, store, _redactor(), clock=lambda: NOW)
    assert _run(gen, [_entry(i, 0) for i in range(3)]) is None
    assert llm.calls == []


def test_default_generators_cover_all_kinds():
    gens = default_generators(FakeLLM("{}"), MemoryInsightStore(), _redactor())
    assert [g.kind for g in gens] == [JobKind.SUMMARY, JobKind.MOOD_TREND, JobKind.RECOMMENDATION]


# ── Stores ───────────────────────────────────────────────────────────

def test_memory_store_latest_and_exists():
    store = MemoryInsightStore()
    old = InsightArtifact(JobKind.SUMMARY, NOW - timedelta(days=3), "{}")
    new = InsightArtifact(JobKind.SUMMARY, NOW - timedelta(hours=1), "{}")
    store.store(JobKind.SUMMARY, new)
    store.store(JobKind.SUMMARY, old)
    assert store.latest(JobKind.SUMMARY) == new
    assert store.exists(JobKind.SUMMARY, timedelta(days=1), now=NOW)
    assert not store.exists(JobKind.SUMMARY, timedelta(minutes=30), now=NOW)
    assert not store.exists(JobKind.MOOD_TREND, timedelta(days=1), now=NOW)


def test_sqlite_store_persists(tmp_path):
    path = tmp_path / "nested" / "insights.db"
    store = SqliteInsightStore(path)
    artifact = InsightArtifact(JobKind.MOOD_TREND, NOW, TREND_JSON,
                               NOW - timedelta(days=14), NOW)
    store.store(JobKind.MOOD_TREND, artifact)
    store.close()

    reopened = SqliteInsightStore(path)
    assert reopened.latest(JobKind.MOOD_TREND) == artifact
    assert reopened.exists(JobKind.MOOD_TREND, timedelta(days=1), now=NOW + timedelta(hours=1))
    assert reopened.latest(JobKind.SUMMARY) is None
    reopened.store(JobKind.SUMMARY, InsightArtifact(JobKind.SUMMARY, NOW, SUMMARY_JSON))
    assert reopened.clear(JobKind.MOOD_TREND) == 1
    assert reopened.latest(JobKind.MOOD_TREND) is None
    assert reopened.latest(JobKind.SUMMARY) is not None
    assert reopened.clear() == 1
    assert reopened.latest(JobKind.SUMMARY) is None
    reopened.close()


# ── Text generation ──────────────────────────────────────────────────

def test_strip_json_fences():
    assert strip_json_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_json_fences('Sure! {"a": 1} Hope that helps') == '{"a": 1}'
    assert strip_json_fences('[1, 2]') == '[1, 2]'
    assert strip_json_fences("plain") == "plain"


def test_resolve_model():
    assert resolve_model("haiku").startswith("claude-haiku")
    assert resolve_model("custom-model") == "custom-model"


def _response(text):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


def _client(*effects):
    create = AsyncMock(side_effect=list(effects))
    return SimpleNamespace(messages=SimpleNamespace(create=create)), create


def _timeout():
    return anthropic.APITimeoutError(
        request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    )


def test_anthropic_returns_text():
    client, create = _client(_response("  hello  "))
    gen = AnthropicTextGenerator(model="haiku", client=client)
    assert asyncio.run(gen.complete("system", "user")) == "hello"
    kwargs = create.call_args.kwargs
    assert kwargs["system"] == "system"
    assert kwargs["messages"] == [{"role": "user", "content": "user"}]


def test_anthropic_retries_api_errors():
    client, create = _client(_timeout(), _response("ok"))
    gen = AnthropicTextGenerator(client=client, retry_delay=0)
    assert asyncio.run(gen.complete("s", "u")) == "ok"
    assert create.call_count == 2


def test_anthropic_gives_up_after_max_attempts():
    client, create = _client(_timeout(), _timeout())
    gen = AnthropicTextGenerator(client=client, max_attempts=2, retry_delay=0)
    with pytest.raises(LLMError):
        asyncio.run(gen.complete("s", "u"))
    assert create.call_count == 2


def test_anthropic_empty_response_is_not_retried():
    client, create = _client(_response("   "), _response("late"))
    gen = AnthropicTextGenerator(client=client, retry_delay=0)
    with pytest.raises(LLMError):
        asyncio.run(gen.complete("s", "u"))
    assert create.call_count == 1


def test_anthropic_requires_api_key(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(LLMError):
        asyncio.run(AnthropicTextGenerator().complete("s", "u"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
