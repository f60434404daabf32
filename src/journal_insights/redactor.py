"""Redactor — strips PII spans from journal text before it leaves the device.

Usage:
    from journal_insights import Redactor, RedactionPolicy

    redactor = Redactor()                 # regex + Presidio layers
    redactor.redact("Lunch with Alice in Paris")
    # "Lunch with [NAME] in [PLACE]"

Texts that are empty or at least ``policy.max_input_length`` characters
long are returned unmodified.  That pass-through is deliberate: the NER
layer is slow on large inputs.  A tagger error is a different matter and
surfaces as ``RedactionFailed``.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from .errors import RedactionFailed
from .patterns import RegexTagger
from .tagger import EntityTagger, LayeredTagger, PresidioTagger
from .types import (
    API_KEY,
    CREDIT_CARD,
    EMAIL_ADDRESS,
    IP_ADDRESS,
    ORGANIZATION_NAME,
    PERSONAL_NAME,
    PHONE_NUMBER,
    PLACE_NAME,
    SSN,
    URL_WITH_SECRET,
    Span,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_INPUT_LENGTH = 5000

DEFAULT_PLACEHOLDERS: dict[str, str] = {
    PERSONAL_NAME: "[NAME]",
    PLACE_NAME: "[PLACE]",
    ORGANIZATION_NAME: "[ORG]",
    EMAIL_ADDRESS: "[EMAIL]",
    PHONE_NUMBER: "[PHONE]",
    CREDIT_CARD: "[CARD]",
    SSN: "[SSN]",
    IP_ADDRESS: "[IP]",
    URL_WITH_SECRET: "[URL]",
    API_KEY: "[SECRET]",
}


@dataclass(frozen=True)
class RedactionPolicy:
    """Which categories to filter and what to put in their place."""
    max_input_length: int = DEFAULT_MAX_INPUT_LENGTH
    placeholders: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_PLACEHOLDERS))

    def __post_init__(self) -> None:
        if self.max_input_length <= 0:
            raise ValueError("max_input_length must be positive")
        object.__setattr__(self, "placeholders", MappingProxyType(dict(self.placeholders)))

    @property
    def categories(self) -> frozenset[str]:
        return frozenset(self.placeholders)


def default_tagger(*, use_presidio: bool = True, language: str = "en",
                   score_threshold: float = 0.35) -> EntityTagger:
    layers: list[EntityTagger] = [RegexTagger()]
    if use_presidio:
        layers.append(PresidioTagger(language=language, score_threshold=score_threshold))
    return LayeredTagger(layers)


class Redactor:
    """Replaces tagged spans with category placeholders.

    Pure and synchronous; safe to share between threads as long as the
    tagger is.
    """

    def __init__(
        self,
        tagger: EntityTagger | None = None,
        policy: RedactionPolicy | None = None,
    ) -> None:
        self.tagger = tagger or default_tagger()
        self.policy = policy or RedactionPolicy()

    def redact(self, text: str) -> str:
        """Return ``text`` with every filtered span replaced.

        Raises:
            RedactionFailed: the tagger raised while processing the text.
        """
        if not text or len(text) >= self.policy.max_input_length:
            return text

        placeholders = self.policy.placeholders
        try:
            spans = [
                s for s in self.tagger.tag(text, self.policy.categories)
                if s.category in placeholders
            ]
        except RedactionFailed:
            raise
        except Exception as exc:
            raise RedactionFailed(f"entity tagging failed: {exc}") from exc

        if not spans:
            return text

        # Right-to-left: a replacement only shifts offsets after it
        result = text
        for span in _descending(spans):
            start, end = _clamp(span, len(result))
            result = result[:start] + placeholders[span.category] + result[end:]

        logger.debug("Redacted %d span(s)", len(spans))
        return result


def redact(text: str, policy: RedactionPolicy, tagger: EntityTagger | None = None) -> str:
    """Functional form of ``Redactor(tagger, policy).redact(text)``."""
    return Redactor(tagger, policy).redact(text)


def _descending(spans: list[Span]) -> list[Span]:
    # Ties on start (malformed tagger output) break on end so the order is total
    return sorted(spans, key=lambda s: (s.start, s.end, s.category), reverse=True)


def _clamp(span: Span, length: int) -> tuple[int, int]:
    start = min(max(span.start, 0), length)
    end = min(max(span.end, start), length)
    return start, end
