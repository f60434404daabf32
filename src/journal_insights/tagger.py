"""Entity taggers — the pluggable recognition capability behind the Redactor.

A tagger yields ``Span`` objects for one pass over a text.  Spans within
a pass never overlap but are not guaranteed to be sorted.

Names, places and organizations come from Presidio NER (spaCy under the
hood); structured PII comes from ``RegexTagger``.  ``LayeredTagger`` runs
several taggers as one pass.
"""

from __future__ import annotations
import logging
import threading
from typing import TYPE_CHECKING, Collection, Iterator, Protocol, Sequence

from .patterns import overlaps, resolve_overlaps
from .types import GROUP, ORGANIZATION_NAME, PERSONAL_NAME, PLACE_NAME, Span

if TYPE_CHECKING:
    from presidio_analyzer import AnalyzerEngine

logger = logging.getLogger(__name__)


class EntityTagger(Protocol):
    def tag(self, text: str, categories: Collection[str]) -> Iterator[Span]:
        ...


# Presidio entity type → category
PRESIDIO_CATEGORIES: dict[str, str] = {
    "PERSON": PERSONAL_NAME,
    "LOCATION": PLACE_NAME,
    "ORGANIZATION": ORGANIZATION_NAME,
    "NRP": GROUP,
}

# Shared engine; spaCy loads on first use
_engine: AnalyzerEngine | None = None
_engine_lang: str = ""
_engine_lock = threading.Lock()


def _get_engine(language: str = "en") -> AnalyzerEngine:
    """Lazy-init the Presidio analyzer engine.

    Redaction runs in worker threads, so the build is serialized and
    concurrent first callers share one engine.
    """
    global _engine, _engine_lang
    engine = _engine
    if engine is not None and _engine_lang == language:
        return engine
    with _engine_lock:
        if _engine is None or _engine_lang != language:
            from presidio_analyzer import AnalyzerEngine
            from presidio_analyzer.nlp_engine import NlpEngineProvider

            logger.info("Loading Presidio analyzer (spaCy %s_core_web_sm)", language)
            provider = NlpEngineProvider(nlp_configuration={
                "nlp_engine_name": "spacy",
                "models": [{"lang_code": language, "model_name": f"{language}_core_web_sm"}],
            })
            nlp_engine = provider.create_engine()
            _engine = AnalyzerEngine(nlp_engine=nlp_engine, supported_languages=[language])
            _engine_lang = language
        return _engine


class PresidioTagger:
    """NER tagger backed by a Presidio ``AnalyzerEngine``."""

    def __init__(
        self,
        *,
        language: str = "en",
        score_threshold: float = 0.35,
        engine: AnalyzerEngine | None = None,
    ) -> None:
        self.language = language
        self.score_threshold = score_threshold
        self._engine = engine

    def tag(self, text: str, categories: Collection[str]) -> Iterator[Span]:
        wanted = [etype for etype, cat in PRESIDIO_CATEGORIES.items() if cat in categories]
        if not wanted:
            return
        engine = self._engine or _get_engine(self.language)
        results = engine.analyze(
            text=text,
            language=self.language,
            entities=wanted,
            score_threshold=self.score_threshold,
        )
        # Presidio can return the same range under several recognizers
        scored = [
            (Span(PRESIDIO_CATEGORIES[r.entity_type], r.start, r.end), r.score)
            for r in results
            if r.entity_type in PRESIDIO_CATEGORIES
        ]
        yield from resolve_overlaps(scored)


class LayeredTagger:
    """Runs taggers in order as a single pass.

    A span overlapping one already yielded by an earlier layer is dropped,
    so structured matches from the regex layer win over NER guesses.
    """

    def __init__(self, taggers: Sequence[EntityTagger]) -> None:
        self.taggers = list(taggers)

    def tag(self, text: str, categories: Collection[str]) -> Iterator[Span]:
        accepted: list[Span] = []
        for tagger in self.taggers:
            for span in tagger.tag(text, categories):
                if any(overlaps(span, a) for a in accepted):
                    continue
                accepted.append(span)
                yield span
