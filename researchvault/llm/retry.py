"""Shared async LLM call with retry logic.

Retries transient Gemini failures up to LLM_MAX_RETRIES times with exponential
backoff. Vertex AI / google-api-core exceptions are converted to builtin
exception types so callers only need to know about TimeoutError,
ConnectionError and OSError (retryable) versus everything else.
"""

from __future__ import annotations

from typing import NamedTuple

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from researchvault.config import LLM_MAX_RETRIES
from researchvault.infrastructure.settings import GEMINI_MAX_TOKENS, GEMINI_TEMPERATURE
from researchvault.llm.gemini import get_gemini_model
from researchvault.observability.logging import get_logger
from researchvault.observability.telemetry import counter

logger = get_logger(__name__)


class LLMResponse(NamedTuple):
    """Raw model output plus token accounting."""

    text: str
    tokens_used: int


class ClassificationAPIError(RuntimeError):
    """The model call completed but produced nothing usable."""


def _total_tokens(response: object) -> int:
    usage = getattr(response, "usage_metadata", None)
    return int(getattr(usage, "total_token_count", 0) or 0)


@retry(
    stop=stop_after_attempt(LLM_MAX_RETRIES),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((TimeoutError, ConnectionError, OSError)),
    reraise=True,
)
async def call_llm(
    prompt: str,
    counter_prefix: str = "llm",
    temperature: float = GEMINI_TEMPERATURE,
    max_output_tokens: int = GEMINI_MAX_TOKENS,
) -> LLMResponse:
    """Call Gemini with retry and exception conversion.

    Args:
        prompt: The prompt to send to the model.
        counter_prefix: Telemetry counter prefix (e.g., "classifier").
        temperature: Sampling temperature; keep low for labeling tasks.
        max_output_tokens: Output ceiling.

    Returns:
        LLMResponse with the response text and total token count.

    Raises:
        TimeoutError: On deadline exceeded (retryable).
        ConnectionError: On service unavailable or internal error (retryable).
        OSError: On resource exhausted / rate limited (retryable).
        ClassificationAPIError: On an empty or blocked response (not retried).
    """
    from google.api_core.exceptions import (
        DeadlineExceeded,
        InternalServerError,
        ResourceExhausted,
        ServiceUnavailable,
    )

    model = get_gemini_model()

    generation_config = {
        "temperature": temperature,
        "max_output_tokens": max_output_tokens,
        "top_k": 1,
        "top_p": 1.0,
        "candidate_count": 1,
    }

    try:
        response = await model.generate_content_async(
            prompt, generation_config=generation_config
        )
    except DeadlineExceeded as e:
        counter(f"{counter_prefix}.timeout")
        logger.warning("LLM call deadline exceeded: %s", e)
        raise TimeoutError(f"LLM call timed out: {e}") from e
    except ServiceUnavailable as e:
        counter(f"{counter_prefix}.service_unavailable")
        logger.warning("LLM service unavailable, will retry: %s", e)
        raise ConnectionError(f"LLM service unavailable: {e}") from e
    except ResourceExhausted as e:
        counter(f"{counter_prefix}.rate_limited")
        logger.warning("LLM rate limited (429), will retry: %s", e)
        raise OSError(f"LLM rate limited: {e}") from e
    except InternalServerError as e:
        counter(f"{counter_prefix}.internal_error")
        logger.warning("LLM internal error (500), will retry: %s", e)
        raise ConnectionError(f"LLM internal error: {e}") from e

    # .text raises ValueError when the candidate was blocked or empty
    try:
        text = response.text
    except ValueError as e:
        counter(f"{counter_prefix}.empty_response")
        raise ClassificationAPIError(f"No usable candidate in response: {e}") from e

    return LLMResponse(text=text, tokens_used=_total_tokens(response))
