"""ResearchVault - Detect and classify academic pages in browsing history"""

from __future__ import annotations

__version__ = "1.0.0"


# Lazy imports for the detection pipeline
def __getattr__(name: str):
    """
    Lazy imports to avoid loading Gemini and FastAPI when only importing lightweight modules.
    """
    if name in ("Candidate", "HistoryEntry", "Subject"):
        from researchvault.detection import models

        return getattr(models, name)

    if name == "ScoreEngine":
        from researchvault.detection.scorer import ScoreEngine

        return ScoreEngine

    if name == "DetectionOrchestrator":
        from researchvault.detection.orchestrator import DetectionOrchestrator

        return DetectionOrchestrator

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = [
    "Candidate",
    "DetectionOrchestrator",
    "HistoryEntry",
    "ScoreEngine",
    "Subject",
]
