"""Journal Insights — PII-safe, fire-and-forget insight generation for journals."""

from .errors import (
    GeneratorFailed,
    JournalInsightsError,
    LLMError,
    RedactionFailed,
    SinkUnavailable,
    TaggingFailed,
)
from .events import INSIGHTS_UPDATED, EventSink
from .generators import (
    MoodTrendGenerator,
    RecommendationGenerator,
    SummaryGenerator,
    default_generators,
)
from .orchestrator import GenerationOrchestrator
from .redactor import RedactionPolicy, Redactor, redact
from .store import MemoryInsightStore, SqliteInsightStore
from .tagger import EntityTagger, LayeredTagger, PresidioTagger
from .patterns import RegexTagger
from .types import (
    CompletionEvent,
    EntitlementTier,
    Entry,
    GenerationJob,
    InsightArtifact,
    JobKind,
    JobState,
    Mood,
    Span,
)

__all__ = [
    "Redactor", "RedactionPolicy", "redact",
    "EntityTagger", "RegexTagger", "PresidioTagger", "LayeredTagger",
    "GenerationOrchestrator", "EventSink", "INSIGHTS_UPDATED",
    "SummaryGenerator", "MoodTrendGenerator", "RecommendationGenerator", "default_generators",
    "MemoryInsightStore", "SqliteInsightStore",
    "Entry", "Mood", "Span", "EntitlementTier", "JobKind", "JobState",
    "GenerationJob", "CompletionEvent", "InsightArtifact",
    "JournalInsightsError", "RedactionFailed", "TaggingFailed",
    "GeneratorFailed", "SinkUnavailable", "LLMError",
]
__version__ = "0.1.0"
