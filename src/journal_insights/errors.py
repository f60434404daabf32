"""Error taxonomy."""

from __future__ import annotations

from .types import JobKind


class JournalInsightsError(Exception):
    """Base error for the package."""


class RedactionFailed(JournalInsightsError):
    """The entity tagger could not process the text.

    Callers must withhold the text rather than send it unredacted.
    """


TaggingFailed = RedactionFailed


class GeneratorFailed(JournalInsightsError):
    """An insight generator raised inside an orchestrated job."""

    def __init__(self, kind: JobKind, cause: BaseException) -> None:
        super().__init__(f"{kind.value} generator failed: {cause!r}")
        self.kind = kind
        self.cause = cause


class SinkUnavailable(JournalInsightsError):
    """An event could not be handed to any subscriber."""


class LLMError(JournalInsightsError):
    """Base error for text-generation calls."""


class ConfigError(JournalInsightsError):
    """Invalid configuration value."""
