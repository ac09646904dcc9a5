"""Unit tests for the subject taxonomy and keyword fallback classifier"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from researchvault.classification.subjects import (
    CATCH_ALL,
    FALLBACK_MATCH_CONFIDENCE,
    FALLBACK_NO_MATCH_CONFIDENCE,
    fallback_classify,
    normalize_subject,
)
from researchvault.detection.models import Subject

STAMP = datetime(2025, 1, 1, tzinfo=UTC)


class TestNormalizeSubject:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("mathematics", Subject.MATHEMATICS),
            ("  Physics ", Subject.PHYSICS),
            ("Home Economics", Subject.HOME_ECONOMICS),
            ("language-arts", Subject.LANGUAGE_ARTS),
            ("数学", Subject.MATHEMATICS),
            ("家庭科", Subject.HOME_ECONOMICS),
            ("その他", Subject.OTHER),
            ("Math", Subject.MATHEMATICS),
        ],
    )
    def test_known_labels(self, raw, expected):
        assert normalize_subject(raw) is expected

    @pytest.mark.parametrize("raw", ["astrology", "", None, 42, ["math"]])
    def test_unknown_labels(self, raw):
        assert normalize_subject(raw) is None


class TestFallbackClassify:
    def test_keyword_in_title(self, make_candidate):
        result = fallback_classify(make_candidate("https://example.org/x", "Intro to Calculus"), STAMP)
        assert result.subject is Subject.MATHEMATICS
        assert result.confidence == FALLBACK_MATCH_CONFIDENCE
        assert result.reasoning == "keyword match"
        assert result.source == "fallback"
        assert result.tokens_used == 0

    def test_keyword_in_url(self, make_candidate):
        result = fallback_classify(make_candidate("https://example.org/chemistry/lab", ""), STAMP)
        assert result.subject is Subject.CHEMISTRY

    def test_japanese_keyword(self, make_candidate):
        result = fallback_classify(make_candidate("https://example.jp/a", "日本の歴史"), STAMP)
        assert result.subject is Subject.HISTORY

    def test_first_pattern_wins(self, make_candidate):
        # Matches both mathematics and physics; mathematics is checked first
        result = fallback_classify(make_candidate("https://example.org/", "Math for quantum physics"), STAMP)
        assert result.subject is Subject.MATHEMATICS

    def test_no_match_is_catch_all(self, make_candidate):
        result = fallback_classify(make_candidate("https://example.org/zzz", "Weekly notes"), STAMP)
        assert result.subject is CATCH_ALL
        assert result.confidence == FALLBACK_NO_MATCH_CONFIDENCE
        assert result.reasoning == "unclassifiable"

    def test_deterministic(self, make_candidate):
        candidate = make_candidate("https://example.org/genes", "DNA replication")
        assert fallback_classify(candidate, STAMP) == fallback_classify(candidate, STAMP)

    def test_subject_always_in_label_set(self, make_candidate):
        titles = ["", "???", "Cooking basics", "Painting", "ヘンな題名", "Programming in Rust"]
        for title in titles:
            result = fallback_classify(make_candidate("https://example.org/p", title), STAMP)
            assert result.subject in set(Subject)
