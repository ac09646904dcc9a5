"""Health check endpoint for ResearchVault API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from researchvault.config import APP_VERSION, GOOGLE_API_KEY, GOOGLE_CLOUD_PROJECT
from researchvault.detection.models import utc_now
from researchvault.detection.service import get_detection_service
from researchvault.observability.telemetry import snapshot

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Service status plus Gemini credential readiness (presence only, no API call)."""
    has_api_key = bool(GOOGLE_API_KEY)
    has_project = bool(GOOGLE_CLOUD_PROJECT)
    service = get_detection_service()

    return {
        "status": "healthy",
        "service": "ResearchVault API",
        "version": APP_VERSION,
        "timestamp": utc_now().isoformat(),
        "llm": {
            "ready": has_api_key or has_project,
            "google_api_key": has_api_key,
            "google_cloud_project": has_project,
        },
        "scheduler": {"running": service.scheduler.running},
    }


@router.get("/health/metrics")
async def pipeline_metrics() -> dict[str, Any]:
    """In-process counters and latency stats for the detection pipeline."""
    return snapshot()
