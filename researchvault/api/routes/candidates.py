"""
Candidate API endpoints.

Provides endpoints for:
- Listing detected candidates
- Triggering history analysis and subject classification
- Reading classification progress and the last analysis time
- Dismissing candidates
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from researchvault.api.middleware.user import get_user_id
from researchvault.config import API_CLASSIFY_IDS_MAX, API_LIST_LIMIT_DEFAULT, API_LIST_LIMIT_MAX
from researchvault.detection.orchestrator import DetectionOrchestrator
from researchvault.detection.service import get_detection_service
from researchvault.observability.logging import get_logger
from researchvault.storage.candidates import StoreError

router = APIRouter(prefix="/api/candidates", tags=["candidates"])
logger = get_logger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================


class ClassifyRequest(BaseModel):
    """Omit candidate_ids to classify every unclassified candidate."""

    candidate_ids: list[str] | None = Field(default=None, max_length=API_CLASSIFY_IDS_MAX)


def get_orchestrator(user_id: str = Depends(get_user_id)) -> DetectionOrchestrator:
    return get_detection_service().orchestrator_for(user_id)


def _storage_unavailable(e: StoreError) -> HTTPException:
    logger.error("Candidate storage error: %s", e)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Candidate storage is temporarily unavailable",
    )


# ============================================================================
# Listing
# ============================================================================


@router.get("")
async def list_candidates(
    dismissed: bool | None = Query(False, description="Filter by dismissed flag"),
    is_academic: bool | None = Query(None, description="Filter by academic flag"),
    limit: int = Query(API_LIST_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """List candidates for the current user, most recently visited first."""
    try:
        candidates = await orchestrator.store.list_candidates(
            orchestrator.user_id, dismissed=dismissed, is_academic=is_academic, limit=limit
        )
    except StoreError as e:
        raise _storage_unavailable(e) from e

    return {
        "candidates": [c.model_dump(mode="json") for c in candidates],
        "count": len(candidates),
    }


# ============================================================================
# Analysis and classification
# ============================================================================


@router.post("/analyze")
async def analyze(
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """
    Run a history analysis now.

    Agent absence, timeouts, and busy skips come back as a status, not an error.
    """
    outcome = await orchestrator.trigger_manual_analysis()
    return outcome.to_dict()


@router.post("/classify")
async def classify(
    request: ClassifyRequest,
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    summary = await orchestrator.trigger_classification(request.candidate_ids)
    return summary.to_dict()


@router.get("/classify/progress")
async def classification_progress(
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    progress = orchestrator.latest_progress
    return {
        "running": orchestrator.is_classifying,
        "processed": progress.processed if progress else 0,
        "total": progress.total if progress else 0,
    }


@router.get("/last-run")
async def last_run(
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    timestamp = orchestrator.get_last_run_timestamp()
    return {
        "last_run": timestamp.isoformat() if timestamp else None,
        "state": orchestrator.state.value,
    }


# ============================================================================
# Dismissal
# ============================================================================


@router.post("/dismiss-all")
async def dismiss_all(
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        count = await orchestrator.dismiss_all()
    except StoreError as e:
        raise _storage_unavailable(e) from e
    return {"dismissed_count": count}


@router.post("/{candidate_id}/dismiss")
async def dismiss(
    candidate_id: str,
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Dismiss one candidate. Dismissing twice is not an error."""
    try:
        changed = await orchestrator.dismiss(candidate_id)
        if not changed and await orchestrator.store.get_candidate(orchestrator.user_id, candidate_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Candidate not found")
    except StoreError as e:
        raise _storage_unavailable(e) from e

    return {"candidate_id": candidate_id, "dismissed": True, "changed": changed}
