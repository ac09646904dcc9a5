"""
Academic-relevance scoring for browsing-history entries.

Each entry gets four sub-scores in [0, 1]:
- domain: allow-listed host (1.0) or institutional suffix (0.7)
- url: +0.3 per academic path pattern, -0.3 per negative pattern
- title: +0.4 per high-value keyword, +0.2 per medium-value keyword,
  +0.1 for a structured title, +0.1 for a 4-digit year
- behavior: repeat visits, typed visits and recency

The weighted total decides whether an entry becomes a Candidate.

Side Effects: None. Every function here is pure and never raises on
malformed entries; a URL that cannot be parsed just scores domain=0.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from urllib.parse import urlsplit

from researchvault.config import (
    DETECTION_THRESHOLD,
    SCORE_WEIGHT_BEHAVIOR,
    SCORE_WEIGHT_DOMAIN,
    SCORE_WEIGHT_TITLE,
    SCORE_WEIGHT_URL,
)
from researchvault.detection import patterns
from researchvault.detection.models import (
    Candidate,
    CandidateCategory,
    HistoryEntry,
    ScoreBreakdown,
    now_ms,
)

_MS_PER_DAY = 1000 * 60 * 60 * 24


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class ScoreWeights:
    domain: float = SCORE_WEIGHT_DOMAIN
    url: float = SCORE_WEIGHT_URL
    title: float = SCORE_WEIGHT_TITLE
    behavior: float = SCORE_WEIGHT_BEHAVIOR

    def __post_init__(self) -> None:
        weights = (self.domain, self.url, self.title, self.behavior)
        if any(w < 0 for w in weights):
            raise ValueError(f"Score weights must be non-negative: {weights}")
        if abs(sum(weights) - 1.0) > 1e-6:
            raise ValueError(f"Score weights must sum to 1.0, got {sum(weights):.4f}")


def _hostname(url: str) -> str | None:
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not host:
        return None
    return host


def is_academic_domain(host: str) -> bool:
    for domain in patterns.ACADEMIC_DOMAINS:
        if domain.startswith("."):
            if host.endswith(domain):
                return True
        elif host == domain or host.endswith("." + domain):
            return True
    return False


def has_academic_suffix(host: str) -> bool:
    return host.endswith(patterns.ACADEMIC_SUFFIXES)


def domain_score(url: str) -> float:
    host = _hostname(url)
    if host is None:
        return 0.0
    if is_academic_domain(host):
        return 1.0
    if has_academic_suffix(host):
        return 0.7
    return 0.0


def url_score(url: str) -> float:
    score = 0.0
    for pattern in patterns.URL_POSITIVE_PATTERNS:
        if pattern.search(url):
            score += 0.3
    for pattern in patterns.URL_NEGATIVE_PATTERNS:
        if pattern.search(url):
            score -= 0.3
    return _clamp(score)


def title_score(title: str) -> float:
    if not title:
        return 0.0

    lowered = title.lower()
    score = 0.0
    for keyword in patterns.TITLE_KEYWORDS_HIGH:
        if keyword in lowered:
            score += 0.4
    for keyword in patterns.TITLE_KEYWORDS_MEDIUM:
        if keyword in lowered:
            score += 0.2

    if any(delim in title for delim in patterns.TITLE_DELIMITERS):
        score += 0.1
    if patterns.TITLE_YEAR_PATTERN.search(title):
        score += 0.1

    return _clamp(score)


def behavior_score(
    visit_count: int, typed_count: int, last_visit_time: float, now: float
) -> float:
    score = 0.0

    if visit_count > 1:
        score += min(0.3, visit_count * 0.05)

    if typed_count > 0:
        score += 0.2

    days_since = (now - last_visit_time) / _MS_PER_DAY
    if days_since < 7:
        score += 0.2
    elif days_since < 30:
        score += 0.1

    return _clamp(score)


def categorize(score: ScoreBreakdown) -> CandidateCategory:
    """First match wins: domain, then total, then title."""
    if score.domain >= 0.8:
        return CandidateCategory.ACADEMIC
    if score.total >= 0.7:
        return CandidateCategory.RESEARCH
    if score.title >= 0.6:
        return CandidateCategory.ARTICLE
    return CandidateCategory.REFERENCE


def suggested_reason(score: ScoreBreakdown) -> str:
    """Human-readable explanation shown next to a candidate."""
    reasons = []
    if score.domain >= 0.7:
        reasons.append("academic domain")
    if score.url >= 0.5:
        reasons.append("academic URL pattern")
    if score.title >= 0.5:
        reasons.append("research-related title")
    if score.behavior >= 0.3:
        reasons.append("repeat visits")
    if not reasons:
        reasons.append("possible reference")
    return ", ".join(reasons)


def should_skip(url: str) -> bool:
    """Browser-internal pages, local servers and search result pages."""
    return any(pattern.search(url) for pattern in patterns.SKIP_URL_PATTERNS)


class ScoreEngine:
    """
    Weighted academic-relevance scorer.

    Args:
        weights: Sub-score weights (must sum to 1.0)
        clock: Returns "now" in epoch milliseconds; injectable for tests
    """

    def __init__(
        self,
        weights: ScoreWeights | None = None,
        clock: Callable[[], float] = now_ms,
    ):
        self.weights = weights or ScoreWeights()
        self.clock = clock

    def score(self, entry: HistoryEntry) -> ScoreBreakdown:
        domain = domain_score(entry.url)
        url = url_score(entry.url)
        title = title_score(entry.title)
        behavior = behavior_score(
            entry.visit_count, entry.typed_count, entry.last_visit_time, self.clock()
        )

        w = self.weights
        total = (
            domain * w.domain + url * w.url + title * w.title + behavior * w.behavior
        )
        return ScoreBreakdown(
            domain=domain, url=url, title=title, behavior=behavior, total=_clamp(total)
        )

    def categorize(self, score: ScoreBreakdown) -> CandidateCategory:
        return categorize(score)

    def detect_batch(
        self,
        entries: Iterable[HistoryEntry],
        threshold: float = DETECTION_THRESHOLD,
    ) -> list[Candidate]:
        """
        Score entries and keep those at or above threshold, best first.

        Ties keep their input order (sorted() is stable).
        """
        kept: list[Candidate] = []
        for entry in entries:
            if should_skip(entry.url):
                continue
            breakdown = self.score(entry)
            if breakdown.total < threshold:
                continue
            kept.append(
                Candidate.from_entry(
                    entry,
                    breakdown,
                    category=categorize(breakdown),
                    suggested_reason=suggested_reason(breakdown),
                    threshold=threshold,
                )
            )

        return sorted(kept, key=lambda c: c.confidence_score, reverse=True)
