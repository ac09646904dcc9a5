"""
Batch subject classification with bounded concurrency and pacing.

Candidates are processed in fixed-size chunks: the members of one chunk are
classified concurrently, chunks run strictly one after another, and a pacing
delay separates consecutive chunks to stay within the model's rate limits.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from researchvault.classification.client import ClassificationClient
from researchvault.classification.subjects import fallback_classify
from researchvault.config import CLASSIFY_CHUNK_SIZE, CLASSIFY_PACING_SECONDS
from researchvault.detection.models import Candidate, ClassificationResult
from researchvault.observability.logging import get_logger
from researchvault.observability.telemetry import counter, log_event, time_block

logger = get_logger(__name__)


@dataclass
class BatchResult:
    """Outcome for one candidate.

    `success` is True only when the result came from the model (directly or via
    the cache); fallback results still populate `classification`.
    """

    candidate: Candidate
    classification: ClassificationResult
    success: bool


@dataclass
class BatchProgress:
    processed: int
    total: int
    current_batch: list[BatchResult] = field(default_factory=list)


ProgressCallback = Callable[[BatchProgress], None]


class BatchClassifier:
    def __init__(
        self,
        client: ClassificationClient,
        chunk_size: int = CLASSIFY_CHUNK_SIZE,
        pacing_seconds: float = CLASSIFY_PACING_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.client = client
        self.chunk_size = chunk_size
        self.pacing_seconds = pacing_seconds
        self._sleep = sleep

    async def classify_batch(
        self,
        candidates: Sequence[Candidate],
        on_progress: ProgressCallback | None = None,
    ) -> list[BatchResult]:
        """
        Classify candidates; results come back in input order.

        A failure for one candidate never affects the others.

        Side Effects:
            - Calls the classification client (may hit Gemini)
            - Invokes on_progress after every chunk
            - Sleeps between chunks
        """
        total = len(candidates)
        results: list[BatchResult] = []

        with time_block("classifier.batch.latency"):
            for start in range(0, total, self.chunk_size):
                chunk = candidates[start : start + self.chunk_size]
                outcomes = await asyncio.gather(
                    *(self.client.classify(c) for c in chunk), return_exceptions=True
                )

                chunk_results = [
                    self._to_result(candidate, outcome)
                    for candidate, outcome in zip(chunk, outcomes, strict=True)
                ]
                results.extend(chunk_results)

                if on_progress is not None:
                    try:
                        on_progress(
                            BatchProgress(
                                processed=start + len(chunk),
                                total=total,
                                current_batch=chunk_results,
                            )
                        )
                    except Exception as e:
                        logger.warning("Progress callback failed: %s", e)

                if start + self.chunk_size < total:
                    await self._sleep(self.pacing_seconds)

        succeeded = sum(1 for r in results if r.success)
        counter("classifier.batch.completed")
        log_event("classifier.batch", total=total, succeeded=succeeded)
        return results

    @staticmethod
    def _to_result(
        candidate: Candidate, outcome: ClassificationResult | BaseException
    ) -> BatchResult:
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            counter("classifier.batch.item_error")
            logger.warning("Classification raised for candidate %s: %s", candidate.id, outcome)
            return BatchResult(
                candidate=candidate, classification=fallback_classify(candidate), success=False
            )
        return BatchResult(
            candidate=candidate,
            classification=outcome,
            success=outcome.source != "fallback",
        )
