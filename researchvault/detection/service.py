"""
Detection Service - wires the pipeline together for every user session.

Owns:
- ChannelRegistry (one broadcast channel per user)
- One DetectionOrchestrator per user, created on first use
- The shared scorer, classification client and candidate store
- The background DetectionScheduler
"""

from __future__ import annotations

from researchvault.bridge.agent_bridge import AgentBridge
from researchvault.bridge.channel import ChannelRegistry
from researchvault.classification.batch import BatchClassifier
from researchvault.classification.client import ClassificationClient
from researchvault.detection.orchestrator import (
    DetectionOrchestrator,
    DetectionScheduler,
    DetectionSettings,
)
from researchvault.detection.scorer import ScoreEngine
from researchvault.observability.logging import get_logger
from researchvault.storage.candidates import CandidateStore, SqliteCandidateStore

logger = get_logger(__name__)


class DetectionService:
    def __init__(
        self,
        store: CandidateStore | None = None,
        client: ClassificationClient | None = None,
        engine: ScoreEngine | None = None,
        channels: ChannelRegistry | None = None,
        settings: DetectionSettings | None = None,
    ):
        self.store = store or SqliteCandidateStore()
        self.client = client or ClassificationClient()
        self.engine = engine or ScoreEngine()
        self.channels = channels or ChannelRegistry()
        self.settings = settings or DetectionSettings()
        self._orchestrators: dict[str, DetectionOrchestrator] = {}
        self.scheduler = DetectionScheduler(self.connected_orchestrators)

    def orchestrator_for(self, user_id: str) -> DetectionOrchestrator:
        orchestrator = self._orchestrators.get(user_id)
        if orchestrator is None:
            orchestrator = DetectionOrchestrator(
                user_id=user_id,
                agent=AgentBridge(self.channels.get(user_id)),
                store=self.store,
                engine=self.engine,
                classifier=BatchClassifier(self.client),
                settings=self.settings,
            )
            self._orchestrators[user_id] = orchestrator
            logger.info("Created detection orchestrator for user %s", user_id)
        return orchestrator

    def connected_orchestrators(self) -> list[DetectionOrchestrator]:
        """Orchestrators whose user currently has an agent attached to the channel."""
        return [
            self.orchestrator_for(user_id)
            for user_id in self.channels.user_ids()
            if self.channels.get(user_id).listener_count > 0
        ]


# Singleton instance
_service: DetectionService | None = None


def get_detection_service() -> DetectionService:
    """Get or create singleton DetectionService instance."""
    global _service
    if _service is None:
        _service = DetectionService()
    return _service


def set_detection_service(service: DetectionService | None) -> None:
    """Replace the singleton (tests inject a service with fakes)."""
    global _service
    _service = service
