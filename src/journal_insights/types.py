"""Core types."""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


# Entity categories produced by taggers
PERSONAL_NAME = "PersonalName"
PLACE_NAME = "PlaceName"
ORGANIZATION_NAME = "OrganizationName"
GROUP = "Group"                   # nationality, religious, political group
EMAIL_ADDRESS = "EmailAddress"
PHONE_NUMBER = "PhoneNumber"
CREDIT_CARD = "CreditCard"
SSN = "SSN"
IP_ADDRESS = "IPAddress"
URL_WITH_SECRET = "UrlWithSecret"
API_KEY = "ApiKey"


class Mood(str, Enum):
    HAPPY = "happy"
    NEUTRAL = "neutral"
    SAD = "sad"
    ANXIOUS = "anxious"
    EXCITED = "excited"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class EntitlementTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


class JobKind(str, Enum):
    """Insight kinds; values double as persistence identifiers."""
    SUMMARY = "weeklySummary"
    MOOD_TREND = "moodTrend"
    RECOMMENDATION = "recommendation"


class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Entry:
    """A journal entry, read-only to this package."""
    id: str
    text: str
    timestamp: datetime
    mood: Mood


@dataclass(frozen=True, slots=True)
class Span:
    """A tagged half-open range ``[start, end)`` over a text buffer."""
    category: str
    start: int
    end: int


@dataclass(frozen=True, slots=True)
class InsightArtifact:
    """A generated insight as persisted by a store."""
    kind: JobKind
    generated_at: datetime
    payload: str                               # JSON document
    period_start: datetime | None = None
    period_end: datetime | None = None


@dataclass(slots=True)
class GenerationJob:
    """One generator run inside a single trigger invocation."""
    kind: JobKind
    invocation_id: str
    state: JobState = JobState.PENDING

    def start(self) -> None:
        self._advance(JobState.PENDING, JobState.RUNNING)

    def complete(self) -> None:
        self._advance(JobState.RUNNING, JobState.COMPLETED)

    def fail(self) -> None:
        self._advance(JobState.RUNNING, JobState.FAILED)

    def _advance(self, expected: JobState, new: JobState) -> None:
        if self.state is not expected:
            raise RuntimeError(
                f"{self.kind.value} job cannot move {self.state.value} -> {new.value}"
            )
        self.state = new


@dataclass(frozen=True, slots=True)
class CompletionEvent:
    """Signal that an artifact of ``job_kind`` may have changed."""
    job_kind: JobKind
    occurred_at: datetime
    invocation_id: str = ""
