"""
Helpers for keeping browsing data out of logs and prompts.

Provides:
- redact(): Hash sensitive strings for correlation without exposure
- redact_title(): Partially redact page titles for debugging
- redact_url(): Keep only scheme and host of a URL
- sanitize_for_prompt(): Remove potential prompt injection patterns
"""

from __future__ import annotations

import re
from hashlib import sha256
from urllib.parse import urlsplit

# Patterns that could be used for prompt injection
INJECTION_PATTERNS = [
    r"ignore\s+(previous|above|all)\s+instructions?",
    r"disregard\s+(previous|above|all)\s+instructions?",
    r"forget\s+(previous|above|all)\s+instructions?",
    r"new\s+instructions?:",
    r"system\s*:",
    r"assistant\s*:",
    r"\[INST\]",
    r"\[/INST\]",
    r"<\|im_start\|>",
    r"<\|im_end\|>",
]
INJECTION_REGEX = re.compile("|".join(INJECTION_PATTERNS), re.IGNORECASE)


def redact(value: str | None) -> str:
    """
    Return a stable hash representation of a sensitive string.
    """
    if not value:
        return "hash:missing"
    digest = sha256(value.encode("utf-8")).hexdigest()[:12]
    return f"hash:{digest}"


def redact_title(title: str | None, max_length: int = 30) -> str:
    """
    Partially redact a page title for logging while preserving debuggability.

    Shows first N characters + hash suffix for correlation.

    Example:
        "A Study on Sleep and Memory Consolidation (2023)" ->
        "A Study on Sleep and Memory Co... (h:1f3a9c)"
    """
    if not title:
        return "(no title)"

    visible = title[:max_length] + "..." if len(title) > max_length else title
    digest = sha256(title.encode("utf-8")).hexdigest()[:6]
    return f"{visible} (h:{digest})"


def redact_url(url: str | None) -> str:
    """Reduce a URL to scheme://host so paths and query strings never reach logs."""
    if not url:
        return "(no url)"
    try:
        parts = urlsplit(url)
    except ValueError:
        return redact(url)
    if not parts.netloc:
        return redact(url)
    return f"{parts.scheme}://{parts.hostname or ''}/..."


def sanitize_for_prompt(text: str | None, max_length: int = 500) -> str:
    """
    Sanitize page-provided text before including it in LLM prompts.

    Page titles come from arbitrary websites, so known injection phrases are
    removed and characters that could break the JSON answer format are stripped.
    """
    if not text:
        return ""

    text = text[:max_length]
    text = INJECTION_REGEX.sub("[REDACTED]", text)
    text = re.sub(r"[<>{}\\]", "", text)

    return text.strip()
