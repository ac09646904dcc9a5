"""
Declarative signal tables for academic-relevance scoring.

This module is the ONE home for the taxonomy the scorer uses: allow-listed
hosts, institutional suffixes, URL path patterns and title keywords. Extend the
tables here; scorer.py holds no literals.
"""

from __future__ import annotations

import re

# Hosts scored 1.0. Entries starting with "." match as suffixes; others match
# the exact host or any subdomain of it.
ACADEMIC_DOMAINS: frozenset[str] = frozenset(
    {
        # Scholarly databases and publishers
        "scholar.google.com",
        "pubmed.ncbi.nlm.nih.gov",
        "jstor.org",
        "sciencedirect.com",
        "springer.com",
        "wiley.com",
        "nature.com",
        "science.org",
        "ieee.org",
        "acm.org",
        "arxiv.org",
        "researchgate.net",
        # Japanese scholarly sources
        "jstage.jst.go.jp",
        "ci.nii.ac.jp",
        "ndl.go.jp",
        "kaken.nii.ac.jp",
        "researchmap.jp",
        "cinii.ac.jp",
        # Universities
        ".ac.jp",
        ".edu",
        ".ac.uk",
        ".edu.au",
        # News
        "nytimes.com",
        "washingtonpost.com",
        "bbc.com",
        "cnn.com",
        "reuters.com",
        "apnews.com",
        "nhk.or.jp",
        "nikkei.com",
        "asahi.com",
        "mainichi.jp",
        "yomiuri.co.jp",
        # Encyclopedias and dictionaries
        "wikipedia.org",
        "britannica.com",
        "merriam-webster.com",
        "dictionary.com",
        "kotobank.jp",
        "weblio.jp",
        # Government and public bodies
        ".gov",
        ".go.jp",
        ".gov.uk",
        "who.int",
        "un.org",
        # Technical references
        "stackoverflow.com",
        "github.com",
        "medium.com",
        "qiita.com",
        "zenn.dev",
    }
)

# Institutional suffixes scored 0.7 when the host is not allow-listed
ACADEMIC_SUFFIXES: tuple[str, ...] = (".edu", ".ac.jp", ".ac.uk", ".gov", ".go.jp")

URL_POSITIVE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"/doi/",
        r"/pdf/",
        r"/article/",
        r"/papers?/",
        r"/research/",
        r"/publications?/",
        r"/journal/",
        r"/abstract",
        r"\.pdf$",
        r"/scholar",
        r"/academic",
    )
)

URL_NEGATIVE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"/tag/",
        r"/category/",
        r"/search",
        r"/login",
        r"/cart",
        r"/checkout",
        r"/(ad|ads|advertisement)",
        r"youtube\.com/watch",
        r"twitter\.com",
        r"facebook\.com",
        r"instagram\.com",
        r"tiktok\.com",
    )
)

TITLE_KEYWORDS_HIGH: tuple[str, ...] = (
    "research",
    "study",
    "analysis",
    "paper",
    "journal",
    "abstract",
    "methodology",
    "conclusion",
    "hypothesis",
    "citation",
    "reference",
    "bibliography",
    "doi:",
    "研究",
    "論文",
    "考察",
    "調査",
    "分析",
    "学会",
    "報告書",
    "白書",
    "統計",
    "pdf",
    "学術",
    "査読",
)

TITLE_KEYWORDS_MEDIUM: tuple[str, ...] = (
    "report",
    "review",
    "survey",
    "data",
    "statistics",
    "findings",
    "results",
    "evidence",
    "theory",
    "レポート",
    "データ",
    "結果",
    "理論",
    "実験",
    "文献",
)

TITLE_DELIMITERS: tuple[str, ...] = ("|", "-", ":")
TITLE_YEAR_PATTERN = re.compile(r"\d{4}")

# Entries the browser agent may hand over that are never worth scoring
SKIP_URL_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p)
    for p in (
        r"^chrome(-extension)?://",
        r"^moz-extension://",
        r"^about:",
        r"^file://",
        r"^https?://localhost\b",
        r"^https?://127\.0\.0\.1\b",
        r"google\.[a-z.]+/search",
    )
)
