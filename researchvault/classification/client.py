"""
Subject classification for candidates via Gemini.

Lookup order for every candidate:
  1. In-process cache keyed by (url, title)
  2. Gemini, bounded by a per-call timeout, the circuit breaker and the
     daily LLM budget
  3. Keyword fallback (subjects.fallback_classify)

classify() never raises: any failure on the model path resolves to the
fallback result, and fallback results are never cached.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, field_validator

from researchvault.classification.subjects import (
    CATCH_ALL,
    INVALID_SUBJECT_CONFIDENCE,
    fallback_classify,
    normalize_subject,
)
from researchvault.config import (
    CLASSIFY_CALL_TIMEOUT_SECONDS,
    LLM_CIRCUIT_FAIL_MAX,
    LLM_CIRCUIT_RESET_SECONDS,
)
from researchvault.detection.models import Candidate, ClassificationResult, Subject
from researchvault.infrastructure.circuitbreaker import CircuitBreaker
from researchvault.infrastructure.llm_budget import check_budget, record_llm_call
from researchvault.infrastructure.settings import GEMINI_MODEL
from researchvault.llm.retry import ClassificationAPIError, LLMResponse, call_llm
from researchvault.observability.logging import get_logger
from researchvault.observability.telemetry import counter, log_event
from researchvault.utils.redaction import redact_title, redact_url, sanitize_for_prompt

logger = get_logger(__name__)

Generate = Callable[[str], Awaitable[LLMResponse]]

DEFAULT_REASONING = "no reasoning provided"


def _use_llm() -> bool:
    """Check LLM feature flag at call time (not import time)."""
    return os.getenv("RESEARCHVAULT_USE_LLM", "true").lower() == "true"


async def _default_generate(prompt: str) -> LLMResponse:
    return await call_llm(prompt, counter_prefix="classifier")


class SubjectPayload(BaseModel):
    """Lenient schema for the model's JSON answer."""

    subject: Any = None
    confidence: float | None = None
    reasoning: str | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def coerce_confidence(cls, v: Any) -> float | None:
        if isinstance(v, bool):
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    @field_validator("reasoning", mode="before")
    @classmethod
    def coerce_reasoning(cls, v: Any) -> str | None:
        if v is None:
            return None
        return str(v)[:200]


class ClassificationCache:
    """
    Process-lifetime cache of model results keyed by (url, title).

    No eviction; it is rebuilt when the process restarts. Pass a shared or
    pre-populated instance to ClassificationClient to control its scope.
    """

    def __init__(self, entries: dict[tuple[str, str], ClassificationResult] | None = None):
        self._entries: dict[tuple[str, str], ClassificationResult] = dict(entries or {})

    @staticmethod
    def key(url: str, title: str | None) -> tuple[str, str]:
        return (url, title or "")

    def get(self, url: str, title: str | None) -> ClassificationResult | None:
        return self._entries.get(self.key(url, title))

    def set(self, url: str, title: str | None, result: ClassificationResult) -> None:
        self._entries[self.key(url, title)] = result

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class ClassificationClient:
    """
    Assigns a Subject to a candidate.

    Args:
        generate: Async prompt -> LLMResponse callable (defaults to Gemini)
        cache: Result cache; a fresh empty cache when omitted
        breaker: Circuit breaker guarding the model
        call_timeout: Upper bound in seconds for one model call, retries included
    """

    SUBJECT_CHOICES = "\n".join(f"- {s.value}" for s in Subject)

    PROMPT_TEMPLATE = """Classify the following web page into one school subject.

Title: {title}
URL: {url}
{extra}
Choose exactly one subject from this list:
{choices}

Answer with JSON only, no other text:
{{"subject": "<one value from the list>", "confidence": <0.0-1.0>, "reasoning": "<short reason, 50 characters max>"}}"""

    def __init__(
        self,
        generate: Generate | None = None,
        cache: ClassificationCache | None = None,
        breaker: CircuitBreaker | None = None,
        call_timeout: float = CLASSIFY_CALL_TIMEOUT_SECONDS,
    ):
        self._generate = generate or _default_generate
        self.cache = cache if cache is not None else ClassificationCache()
        self.breaker = breaker or CircuitBreaker(
            stage="classifier",
            fail_max=LLM_CIRCUIT_FAIL_MAX,
            reset_timeout=LLM_CIRCUIT_RESET_SECONDS,
        )
        self.call_timeout = call_timeout

    async def classify(
        self, candidate: Candidate, metadata: dict[str, str] | None = None
    ) -> ClassificationResult:
        """
        Classify a candidate. Never raises.

        Side Effects:
            - May call Gemini (counts against the daily LLM budget)
            - Writes successful model results to the cache
            - Increments telemetry counters
        """
        cached = self.cache.get(candidate.url, candidate.title)
        if cached is not None:
            counter("classifier.cache_hit")
            return cached.model_copy(update={"source": "cache"})

        if not _use_llm():
            counter("classifier.llm_disabled")
            return fallback_classify(candidate)

        if not self.breaker.allow_request():
            logger.info("Classifier circuit open, using keyword fallback")
            return fallback_classify(candidate)

        if candidate.user_id:
            budget = check_budget(candidate.user_id)
            if not budget.is_allowed:
                counter("classifier.budget_exceeded")
                logger.warning("LLM budget exceeded for user %s: %s", candidate.user_id, budget.reason)
                return fallback_classify(candidate)
            record_llm_call(candidate.user_id, call_type="classifier")

        prompt = self.build_prompt(candidate, metadata)

        try:
            logger.info(
                "LLM CLASSIFIER: Calling %s for title='%s' url=%s",
                GEMINI_MODEL,
                redact_title(candidate.title),
                redact_url(candidate.url),
            )
            response = await asyncio.wait_for(self._generate(prompt), timeout=self.call_timeout)
            result = self.parse_response(response)
        except Exception as e:
            self.breaker.record_failure()
            counter("classifier.error")
            logger.warning("LLM CLASSIFIER ERROR: %s: %s (model=%s)", type(e).__name__, e, GEMINI_MODEL)
            log_event("classifier.error", error=type(e).__name__, model=GEMINI_MODEL)
            return fallback_classify(candidate)

        self.breaker.record_success()
        self.cache.set(candidate.url, candidate.title, result)
        counter("classifier.success")
        log_event(
            "classifier.result",
            subject=result.subject.value,
            confidence=result.confidence,
            tokens=result.tokens_used,
            model=GEMINI_MODEL,
        )
        return result

    def build_prompt(self, candidate: Candidate, metadata: dict[str, str] | None = None) -> str:
        """Build classification prompt with sanitized inputs."""
        title = sanitize_for_prompt(candidate.title, max_length=300) or "(untitled)"
        url = sanitize_for_prompt(candidate.url, max_length=500)

        extra_lines = []
        if metadata:
            if metadata.get("description"):
                extra_lines.append(
                    f"Description: {sanitize_for_prompt(metadata['description'], max_length=500)}"
                )
            if metadata.get("keywords"):
                extra_lines.append(
                    f"Keywords: {sanitize_for_prompt(metadata['keywords'], max_length=200)}"
                )
        extra = "\n".join(extra_lines) + ("\n" if extra_lines else "")

        return self.PROMPT_TEMPLATE.format(
            title=title, url=url, extra=extra, choices=self.SUBJECT_CHOICES
        )

    @staticmethod
    def extract_json(text: str) -> dict[str, Any]:
        """
        Return the first well-formed JSON object embedded in text.

        Handles markdown code fences and surrounding prose.

        Raises:
            ClassificationAPIError: If no JSON object can be decoded
        """
        decoder = json.JSONDecoder()
        start = text.find("{")
        while start != -1:
            try:
                obj, _ = decoder.raw_decode(text, start)
            except json.JSONDecodeError:
                pass
            else:
                if isinstance(obj, dict):
                    return obj
            start = text.find("{", start + 1)
        raise ClassificationAPIError("No JSON object found in response")

    def parse_response(self, response: LLMResponse) -> ClassificationResult:
        """Validate the model's answer and coerce it onto the Subject set."""
        payload = SubjectPayload.model_validate(self.extract_json(response.text))

        subject = normalize_subject(payload.subject)
        if subject is None:
            counter("classifier.invalid_subject")
            logger.warning("Invalid subject from model: %r", payload.subject)
            subject = CATCH_ALL
            confidence = INVALID_SUBJECT_CONFIDENCE
        else:
            confidence = 0.5 if payload.confidence is None else payload.confidence
            confidence = max(0.0, min(1.0, confidence))

        return ClassificationResult(
            subject=subject,
            confidence=confidence,
            reasoning=payload.reasoning or DEFAULT_REASONING,
            tokens_used=max(0, response.tokens_used),
            source="model",
        )

    async def validate_api_key(self) -> dict[str, Any]:
        """Send a trivial prompt to check that credentials work."""
        try:
            await asyncio.wait_for(
                self._generate("This is a connectivity test. Reply with OK."),
                timeout=self.call_timeout,
            )
            return {"valid": True}
        except Exception as e:
            return {"valid": False, "error": str(e)}
