"""
Detection pipeline coordinator for one user session.

State machine: IDLE -> PROBING -> (NOT_AVAILABLE | ANALYZING) -> IDLE

Two independent guards protect analysis runs:
- an in-progress flag, set before the first await, so at most one analysis
  is ever active per orchestrator
- a minimum interval since the last completed run, applied to timer ticks only

Every public coroutine converts failures into an outcome object. Nothing here
raises into the API layer for an agent or model failure.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ValidationError

from researchvault.bridge.agent_bridge import AgentProtocolError, AgentTimeoutError, HistoryAgent
from researchvault.bridge.messages import AnalyzeHistoryRequest
from researchvault.classification.batch import BatchClassifier, BatchProgress
from researchvault.config import (
    DETECTION_AGENT_SAVES,
    DETECTION_LIMIT,
    DETECTION_LOOKBACK_DAYS,
    DETECTION_THRESHOLD,
    MIN_RUN_INTERVAL_SECONDS,
    SCHEDULER_TICK_SECONDS,
)
from researchvault.detection.models import HistoryEntry, utc_now
from researchvault.detection.scorer import ScoreEngine
from researchvault.observability.logging import get_logger
from researchvault.observability.telemetry import counter, log_event, time_block
from researchvault.storage.candidates import CandidateStore, StoreError

logger = get_logger(__name__)


class OrchestratorState(str, Enum):
    IDLE = "idle"
    PROBING = "probing"
    NOT_AVAILABLE = "not_available"  # Agent did not answer the probe
    ANALYZING = "analyzing"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED_BUSY = "skipped_busy"
    SKIPPED_INTERVAL = "skipped_interval"
    AGENT_UNAVAILABLE = "agent_unavailable"
    FAILED = "failed"


@dataclass
class AnalysisOutcome:
    status: RunStatus
    new_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status.value, "new_count": self.new_count, "error": self.error}


@dataclass
class ClassificationSummary:
    status: RunStatus
    classified: int = 0
    total: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "classified": self.classified,
            "total": self.total,
            "error": self.error,
        }


Notifier = Callable[[AnalysisOutcome], None]
ProgressSubscriber = Callable[[BatchProgress], None]


@dataclass
class DetectionSettings:
    lookback_days: int = DETECTION_LOOKBACK_DAYS
    limit: int = DETECTION_LIMIT
    threshold: float = DETECTION_THRESHOLD
    agent_saves: bool = DETECTION_AGENT_SAVES
    min_run_interval: float = MIN_RUN_INTERVAL_SECONDS
    classify_limit: int = 500


class DetectionOrchestrator:
    """
    Runs history analysis and subject classification for a single user.

    Args:
        user_id: Owner of every candidate this orchestrator touches
        agent: Browser-agent transport (probe + request_analysis)
        store: Candidate persistence
        engine: Scorer applied to the entries the agent returns
        classifier: Batch subject classifier
        settings: Detection parameters (defaults from config)
        clock: Returns the current UTC datetime; injectable for tests
        notify: Called with the outcome when a run saves new candidates
    """

    def __init__(
        self,
        user_id: str,
        agent: HistoryAgent,
        store: CandidateStore,
        engine: ScoreEngine,
        classifier: BatchClassifier,
        settings: DetectionSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
        notify: Notifier | None = None,
    ):
        self.user_id = user_id
        self.agent = agent
        self.store = store
        self.engine = engine
        self.classifier = classifier
        self.settings = settings or DetectionSettings()
        self.clock = clock
        self.notify = notify

        self._state = OrchestratorState.IDLE
        self._analysis_in_progress = False
        self._classification_in_progress = False
        self._last_run_at: datetime | None = None
        self._progress: BatchProgress | None = None
        self._progress_subscribers: list[ProgressSubscriber] = []

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def is_analyzing(self) -> bool:
        return self._analysis_in_progress

    @property
    def is_classifying(self) -> bool:
        return self._classification_in_progress

    @property
    def latest_progress(self) -> BatchProgress | None:
        return self._progress

    def get_last_run_timestamp(self) -> datetime | None:
        return self._last_run_at

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def trigger_manual_analysis(self) -> AnalysisOutcome:
        """Start an analysis now unless one is already running."""
        return await self._run_analysis("manual")

    async def on_timer_tick(self) -> AnalysisOutcome:
        """Scheduled trigger: also honors the minimum interval since the last run."""
        if self._analysis_in_progress:
            counter("detection.skipped_busy")
            return AnalysisOutcome(RunStatus.SKIPPED_BUSY)

        if self._last_run_at is not None:
            elapsed = (self.clock() - self._last_run_at).total_seconds()
            if elapsed < self.settings.min_run_interval:
                counter("detection.skipped_interval")
                return AnalysisOutcome(RunStatus.SKIPPED_INTERVAL)

        return await self._run_analysis("timer")

    async def _run_analysis(self, trigger: str) -> AnalysisOutcome:
        if self._analysis_in_progress:
            counter("detection.skipped_busy")
            logger.info("Analysis already running for user %s, dropping %s trigger", self.user_id, trigger)
            return AnalysisOutcome(RunStatus.SKIPPED_BUSY)

        # Must be set before the first await
        self._analysis_in_progress = True
        try:
            with time_block("detection.analysis.latency"):
                outcome = await self._analyze()
        except Exception:
            counter("detection.analysis_failed")
            logger.exception("Analysis failed for user %s", self.user_id)
            outcome = AnalysisOutcome(RunStatus.FAILED, error="analysis failed")
        finally:
            self._analysis_in_progress = False
            self._state = OrchestratorState.IDLE

        log_event(
            "detection.analysis",
            user_id=self.user_id,
            trigger=trigger,
            status=outcome.status.value,
            new_count=outcome.new_count,
        )
        if outcome.status is RunStatus.COMPLETED and outcome.new_count > 0 and self.notify:
            try:
                self.notify(outcome)
            except Exception as e:
                logger.warning("Analysis notification failed: %s", e)
        return outcome

    async def _analyze(self) -> AnalysisOutcome:
        self._state = OrchestratorState.PROBING
        if not await self.agent.probe():
            self._state = OrchestratorState.NOT_AVAILABLE
            counter("detection.agent_unavailable")
            logger.info("Browser agent not available for user %s", self.user_id)
            return AnalysisOutcome(RunStatus.AGENT_UNAVAILABLE)

        self._state = OrchestratorState.ANALYZING
        params = AnalyzeHistoryRequest(
            days=self.settings.lookback_days,
            limit=self.settings.limit,
            threshold=self.settings.threshold,
            save_to_database=self.settings.agent_saves,
        )

        try:
            response = await self.agent.request_analysis(params)
        except AgentTimeoutError as e:
            counter("detection.analysis_timeout")
            logger.warning("History analysis timed out for user %s: %s", self.user_id, e)
            return AnalysisOutcome(RunStatus.FAILED, error="analysis timed out")
        except AgentProtocolError as e:
            counter("detection.analysis_failed")
            logger.error("Browser agent sent an invalid response: %s", e)
            return AnalysisOutcome(RunStatus.FAILED, error="invalid agent response")

        if not response.success:
            counter("detection.analysis_failed")
            logger.warning("Browser agent reported failure for user %s: %s", self.user_id, response.error)
            return AnalysisOutcome(RunStatus.FAILED, error=response.error or "analysis failed")

        candidates = self.engine.detect_batch(
            self._parse_entries(response.entries), threshold=self.settings.threshold
        )

        inserted: list[str] = []
        if candidates:
            try:
                inserted = await self.store.insert_candidates(
                    self.user_id, candidates, lookback_days=self.settings.lookback_days
                )
            except StoreError as e:
                logger.error("Failed to store candidates for user %s: %s", self.user_id, e)
                return AnalysisOutcome(RunStatus.FAILED, error="could not save candidates")

        self._last_run_at = self.clock()
        new_count = response.saved + len(inserted)
        counter("detection.analysis_completed")
        logger.info(
            "Analysis for user %s: %d entries, %d candidates, %d new",
            self.user_id,
            len(response.entries),
            len(candidates),
            new_count,
        )
        return AnalysisOutcome(RunStatus.COMPLETED, new_count=new_count)

    @staticmethod
    def _parse_entries(raw_entries: Iterable[dict[str, Any]]) -> list[HistoryEntry]:
        entries: list[HistoryEntry] = []
        for raw in raw_entries:
            try:
                entries.append(HistoryEntry.model_validate(raw))
            except ValidationError as e:
                counter("detection.invalid_entry")
                logger.debug("Skipping invalid history entry: %s", e.error_count())
        return entries

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def subscribe_progress(self, subscriber: ProgressSubscriber) -> Callable[[], None]:
        """Register for per-chunk progress; returns an unsubscribe callable."""
        self._progress_subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._progress_subscribers:
                self._progress_subscribers.remove(subscriber)

        return unsubscribe

    def _on_progress(self, progress: BatchProgress) -> None:
        self._progress = progress
        for subscriber in list(self._progress_subscribers):
            try:
                subscriber(progress)
            except Exception as e:
                logger.warning("Progress subscriber failed: %s", e)

    async def trigger_classification(
        self, candidate_ids: Sequence[str] | None = None
    ) -> ClassificationSummary:
        """
        Classify candidates into subjects and persist the model-backed results.

        Defaults to every unclassified, non-dismissed candidate. Fallback
        results are returned to progress subscribers but not stored, so those
        candidates are retried on the next run.
        """
        if self._classification_in_progress:
            counter("detection.classification_skipped_busy")
            return ClassificationSummary(RunStatus.SKIPPED_BUSY)

        self._classification_in_progress = True
        self._progress = None
        try:
            return await self._classify(candidate_ids)
        except StoreError as e:
            logger.error("Classification aborted for user %s: %s", self.user_id, e)
            return ClassificationSummary(RunStatus.FAILED, error="could not load candidates")
        except Exception:
            counter("detection.classification_failed")
            logger.exception("Classification failed for user %s", self.user_id)
            return ClassificationSummary(RunStatus.FAILED, error="classification failed")
        finally:
            self._classification_in_progress = False

    async def _classify(self, candidate_ids: Sequence[str] | None) -> ClassificationSummary:
        if candidate_ids is None:
            candidates = await self.store.list_candidates(
                self.user_id,
                dismissed=False,
                unclassified=True,
                limit=self.settings.classify_limit,
            )
        else:
            ids = list(dict.fromkeys(candidate_ids))
            candidates = await self.store.list_candidates(
                self.user_id, dismissed=False, ids=ids, limit=max(len(ids), 1)
            )

        if not candidates:
            return ClassificationSummary(RunStatus.COMPLETED)

        results = await self.classifier.classify_batch(candidates, on_progress=self._on_progress)

        classified = 0
        save_failures = 0
        for result in results:
            if not result.success or result.candidate.id is None:
                continue
            try:
                updated = await self.store.update_classification(
                    self.user_id, result.candidate.id, result.classification
                )
            except StoreError as e:
                save_failures += 1
                counter("detection.classification_save_failed")
                logger.warning("Could not save classification for %s: %s", result.candidate.id, e)
                continue
            if updated:
                classified += 1

        counter("detection.classification_completed")
        log_event(
            "detection.classification",
            user_id=self.user_id,
            classified=classified,
            save_failures=save_failures,
            total=len(results),
        )
        return ClassificationSummary(RunStatus.COMPLETED, classified=classified, total=len(results))

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def dismiss(self, candidate_id: str) -> bool:
        """Idempotent: dismissing an already-dismissed candidate is a no-op."""
        return await self.store.dismiss(self.user_id, candidate_id)

    async def dismiss_all(self) -> int:
        return await self.store.dismiss_all(self.user_id)


@dataclass
class DetectionScheduler:
    """
    Periodic timer that ticks a set of orchestrators.

    `orchestrators` is re-evaluated on every tick so sessions can come and go.
    """

    orchestrators: Callable[[], Iterable[DetectionOrchestrator]]
    tick_seconds: float = SCHEDULER_TICK_SECONDS
    sleep: Callable[[float], Any] = asyncio.sleep
    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="detection-scheduler")
        logger.info("Detection scheduler started (tick=%.0fs)", self.tick_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Detection scheduler stopped")

    async def tick(self) -> list[AnalysisOutcome]:
        targets = list(self.orchestrators())
        results = await asyncio.gather(
            *(o.on_timer_tick() for o in targets), return_exceptions=True
        )

        outcomes: list[AnalysisOutcome] = []
        for orchestrator, result in zip(targets, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                counter("detection.scheduler_error")
                logger.error("Scheduled analysis crashed for user %s: %s", orchestrator.user_id, result)
                continue
            outcomes.append(result)
        return outcomes

    async def _loop(self) -> None:
        while True:
            await self.sleep(self.tick_seconds)
            await self.tick()
