"""
Domain models for browsing-history candidate detection.

HistoryEntry is what the browser agent hands over, ScoreBreakdown is what the
scorer computes from it, Candidate is what gets persisted for user review, and
ClassificationResult is the subject label attached to a Candidate later.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def now_ms() -> float:
    """Current wall-clock time in epoch milliseconds (browser history units)."""
    return utc_now().timestamp() * 1000


class Subject(str, Enum):
    """Closed set of subject labels a candidate can be classified into."""

    LANGUAGE_ARTS = "language_arts"
    MATHEMATICS = "mathematics"
    HISTORY = "history"
    PHYSICS = "physics"
    BIOLOGY = "biology"
    CHEMISTRY = "chemistry"
    GEOGRAPHY = "geography"
    ENGLISH = "english"
    MUSIC = "music"
    ART = "art"
    TECHNOLOGY = "technology"
    HOME_ECONOMICS = "home_economics"
    OTHER = "other"  # Catch-all


class CandidateCategory(str, Enum):
    """Coarse label assigned by the scorer (see categorize())."""

    ACADEMIC = "academic"
    RESEARCH = "research"
    ARTICLE = "article"
    REFERENCE = "reference"


class HistoryEntry(BaseModel):
    """One raw navigation-history record as supplied by the browser agent.

    Accepts the agent's camelCase keys (visitCount, typedCount, lastVisitTime).
    lastVisitTime is required; entries without it are dropped before scoring.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str
    title: str = ""
    visit_count: int = Field(default=0, ge=0, alias="visitCount")
    typed_count: int = Field(default=0, ge=0, alias="typedCount")
    last_visit_time: float = Field(alias="lastVisitTime")  # epoch ms
    favicon: str | None = None

    @field_validator("title", mode="before")
    @classmethod
    def title_not_none(cls, v: Any) -> str:
        return v or ""

    @property
    def visited_at(self) -> datetime:
        try:
            return datetime.fromtimestamp(self.last_visit_time / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return utc_now()


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-signal sub-scores (each in [0, 1]) and their weighted total."""

    domain: float = 0.0
    url: float = 0.0
    title: float = 0.0
    behavior: float = 0.0
    total: float = 0.0


class ClassificationResult(BaseModel):
    """Subject label for a candidate, from the model, the cache, or the fallback."""

    subject: Subject
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    tokens_used: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=utc_now)
    source: str = Field(default="model", description="model, cache, or fallback")


class Candidate(BaseModel):
    """
    A scored history entry kept for user review.

    Identity is (user_id, url). `id` and `user_id` are unset until the store
    persists the candidate.
    """

    id: str | None = None
    user_id: str | None = None

    url: str
    title: str = ""
    favicon: str | None = None
    domain: str = ""
    visited_at: datetime = Field(default_factory=utc_now)
    visit_count: int = 0

    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    suggested_reason: str = ""
    category: CandidateCategory = CandidateCategory.REFERENCE
    is_academic: bool = False

    dismissed: bool = False
    dismissed_at: datetime | None = None

    subject: Subject | None = None
    subject_confidence: float | None = None
    ai_classified: bool = False
    classification_result: ClassificationResult | None = None
    classified_at: datetime | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_entry(
        cls,
        entry: HistoryEntry,
        score: ScoreBreakdown,
        *,
        category: CandidateCategory,
        suggested_reason: str,
        threshold: float,
    ) -> Candidate:
        try:
            domain = urlsplit(entry.url).hostname or ""
        except ValueError:
            domain = ""
        return cls(
            url=entry.url,
            title=entry.title,
            favicon=entry.favicon,
            domain=domain,
            visited_at=entry.visited_at,
            visit_count=entry.visit_count,
            confidence_score=score.total,
            suggested_reason=suggested_reason,
            category=category,
            is_academic=score.total >= threshold,
        )

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to dict for database storage."""

        def iso(val: datetime | None) -> str | None:
            return val.isoformat() if val else None

        return {
            "id": self.id,
            "user_id": self.user_id,
            "url": self.url,
            "title": self.title,
            "favicon": self.favicon,
            "domain": self.domain,
            "visited_at": iso(self.visited_at),
            "visit_count": self.visit_count,
            "confidence_score": self.confidence_score,
            "suggested_reason": self.suggested_reason,
            "category": self.category.value,
            "is_academic": int(self.is_academic),
            "dismissed": int(self.dismissed),
            "dismissed_at": iso(self.dismissed_at),
            "subject": self.subject.value if self.subject else None,
            "subject_confidence": self.subject_confidence,
            "ai_classified": int(self.ai_classified),
            "classification_result": (
                self.classification_result.model_dump_json() if self.classification_result else None
            ),
            "classified_at": iso(self.classified_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> Candidate:
        """Create Candidate from database row."""

        def parse_dt(val: str | None) -> datetime | None:
            if val is None:
                return None
            return datetime.fromisoformat(val)

        result = (
            ClassificationResult.model_validate(json.loads(row["classification_result"]))
            if row.get("classification_result")
            else None
        )

        return cls(
            id=row["id"],
            user_id=row["user_id"],
            url=row["url"],
            title=row.get("title") or "",
            favicon=row.get("favicon"),
            domain=row.get("domain") or "",
            visited_at=parse_dt(row.get("visited_at")) or utc_now(),
            visit_count=row.get("visit_count") or 0,
            confidence_score=row.get("confidence_score") or 0.0,
            suggested_reason=row.get("suggested_reason") or "",
            category=CandidateCategory(row.get("category") or CandidateCategory.REFERENCE.value),
            is_academic=bool(row.get("is_academic")),
            dismissed=bool(row.get("dismissed")),
            dismissed_at=parse_dt(row.get("dismissed_at")),
            subject=Subject(row["subject"]) if row.get("subject") else None,
            subject_confidence=row.get("subject_confidence"),
            ai_classified=bool(row.get("ai_classified")),
            classification_result=result,
            classified_at=parse_dt(row.get("classified_at")),
            created_at=parse_dt(row.get("created_at")) or utc_now(),
            updated_at=parse_dt(row.get("updated_at")) or utc_now(),
        )
