"""
Subject label taxonomy and the keyword fallback classifier.

The fallback is deterministic: the same title and URL always produce the same
label, so it is safe to use whenever the model is unavailable.
"""

from __future__ import annotations

import re
from datetime import datetime

from researchvault.detection.models import Candidate, ClassificationResult, Subject, utc_now

CATCH_ALL = Subject.OTHER
FALLBACK_MATCH_CONFIDENCE = 0.6
FALLBACK_NO_MATCH_CONFIDENCE = 0.3
INVALID_SUBJECT_CONFIDENCE = 0.3

# Labels the model sometimes answers with instead of the enum values
SUBJECT_ALIASES: dict[str, Subject] = {
    "国語": Subject.LANGUAGE_ARTS,
    "数学": Subject.MATHEMATICS,
    "歴史": Subject.HISTORY,
    "物理": Subject.PHYSICS,
    "生物": Subject.BIOLOGY,
    "化学": Subject.CHEMISTRY,
    "地理": Subject.GEOGRAPHY,
    "英語": Subject.ENGLISH,
    "音楽": Subject.MUSIC,
    "美術": Subject.ART,
    "技術": Subject.TECHNOLOGY,
    "家庭科": Subject.HOME_ECONOMICS,
    "その他": Subject.OTHER,
    "math": Subject.MATHEMATICS,
    "maths": Subject.MATHEMATICS,
    "literature": Subject.LANGUAGE_ARTS,
    "japanese": Subject.LANGUAGE_ARTS,
}

# Checked in order, first match wins
FALLBACK_PATTERNS: tuple[tuple[Subject, re.Pattern[str]], ...] = tuple(
    (subject, re.compile(pattern, re.IGNORECASE))
    for subject, pattern in (
        (Subject.MATHEMATICS, r"math|algebra|calculus|geometry|数学|計算|方程式"),
        (Subject.PHYSICS, r"physics|mechanics|quantum|物理|力学|電磁気"),
        (Subject.CHEMISTRY, r"chemistry|chemical|molecule|化学|分子|反応"),
        (Subject.BIOLOGY, r"biology|cell|dna|gene|生物|細胞|遺伝"),
        (Subject.HISTORY, r"history|historical|histor|歴史|戦争|文化"),
        (Subject.GEOGRAPHY, r"geography|地理|地図|気候"),
        (Subject.ENGLISH, r"english|英語|grammar|vocabulary"),
        (Subject.LANGUAGE_ARTS, r"japanese|literature|国語|文学|古典"),
        (Subject.MUSIC, r"music|musical|音楽|楽譜"),
        (Subject.ART, r"art|painting|美術|絵画|デザイン"),
        (Subject.TECHNOLOGY, r"technology|programming|engineering|技術|プログラミング|工学"),
        (Subject.HOME_ECONOMICS, r"cooking|sewing|家庭科|料理|裁縫"),
    )
)


def normalize_subject(value: object) -> Subject | None:
    """Map a model-supplied label onto the closed Subject set, or None."""
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if raw in SUBJECT_ALIASES:
        return SUBJECT_ALIASES[raw]
    key = raw.lower().replace(" ", "_").replace("-", "_")
    try:
        return Subject(key)
    except ValueError:
        return SUBJECT_ALIASES.get(key)


def fallback_classify(
    candidate: Candidate, timestamp: datetime | None = None
) -> ClassificationResult:
    """
    Keyword classifier over the lowercased title and URL.

    Side Effects: None (pure function; pass `timestamp` for fully
    reproducible output)
    """
    combined = f"{candidate.title or ''} {candidate.url or ''}".lower()
    stamp = timestamp or utc_now()

    for subject, pattern in FALLBACK_PATTERNS:
        if pattern.search(combined):
            return ClassificationResult(
                subject=subject,
                confidence=FALLBACK_MATCH_CONFIDENCE,
                reasoning="keyword match",
                tokens_used=0,
                timestamp=stamp,
                source="fallback",
            )

    return ClassificationResult(
        subject=CATCH_ALL,
        confidence=FALLBACK_NO_MATCH_CONFIDENCE,
        reasoning="unclassifiable",
        tokens_used=0,
        timestamp=stamp,
        source="fallback",
    )
