"""
Request/response protocol with the browser agent over a broadcast channel.

The channel has no correlation ids: at most one analysis request is in flight
per orchestrator, so the first matching response answers it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Protocol

from pydantic import ValidationError

from researchvault.bridge.channel import BroadcastChannel
from researchvault.bridge.messages import (
    SOURCE_WEBAPP,
    AnalyzeHistoryRequest,
    AnalyzeHistoryResponse,
    MessageType,
    is_capability_ack,
    make_message,
)
from researchvault.config import AGENT_ANALYSIS_TIMEOUT_SECONDS, AGENT_PROBE_TIMEOUT_SECONDS
from researchvault.observability.logging import get_logger
from researchvault.observability.telemetry import counter

logger = get_logger(__name__)


class AgentTimeoutError(TimeoutError):
    """Request was sent but the agent did not answer in time."""


class AgentProtocolError(RuntimeError):
    """The agent answered with a payload that could not be understood."""


class HistoryAgent(Protocol):
    """What the orchestrator needs from a browser-agent transport."""

    async def probe(self, timeout: float | None = None) -> bool: ...

    async def request_analysis(
        self, params: AnalyzeHistoryRequest, timeout: float | None = None
    ) -> AnalyzeHistoryResponse: ...


class AgentBridge:
    def __init__(
        self,
        channel: BroadcastChannel,
        probe_timeout: float = AGENT_PROBE_TIMEOUT_SECONDS,
        analysis_timeout: float = AGENT_ANALYSIS_TIMEOUT_SECONDS,
    ):
        self.channel = channel
        self.probe_timeout = probe_timeout
        self.analysis_timeout = analysis_timeout

    async def _exchange(
        self,
        message: dict[str, Any],
        matches: Callable[[dict[str, Any]], bool],
        timeout: float,
    ) -> dict[str, Any]:
        """Post message and wait for the first reply satisfying matches.

        The temporary listener is always removed, whatever the outcome.

        Raises:
            TimeoutError: If no matching message arrives within timeout
        """
        loop = asyncio.get_running_loop()
        reply: asyncio.Future[dict[str, Any]] = loop.create_future()

        def listener(incoming: dict[str, Any]) -> None:
            if not reply.done() and matches(incoming):
                reply.set_result(incoming)

        self.channel.add_listener(listener)
        try:
            self.channel.post(message)
            return await asyncio.wait_for(reply, timeout=timeout)
        finally:
            self.channel.remove_listener(listener)

    async def probe(self, timeout: float | None = None) -> bool:
        """True if the agent acknowledges a capability check before timeout."""
        try:
            await self._exchange(
                make_message(MessageType.CAPABILITY_CHECK, SOURCE_WEBAPP),
                is_capability_ack,
                self.probe_timeout if timeout is None else timeout,
            )
        except TimeoutError:
            counter("bridge.agent_unavailable")
            logger.info("Browser agent did not answer capability check on %s", self.channel.name)
            return False
        counter("bridge.agent_available")
        return True

    async def request_analysis(
        self, params: AnalyzeHistoryRequest, timeout: float | None = None
    ) -> AnalyzeHistoryResponse:
        """
        Ask the agent to analyze recent history.

        Raises:
            AgentTimeoutError: If no response arrives before timeout
            AgentProtocolError: If the response payload is malformed
        """
        wait = self.analysis_timeout if timeout is None else timeout
        try:
            message = await self._exchange(
                params.to_message(),
                lambda m: m.get("type") == MessageType.ANALYZE_HISTORY_RESPONSE.value,
                wait,
            )
        except TimeoutError as e:
            counter("bridge.analysis_timeout")
            raise AgentTimeoutError(f"No analysis response within {wait:.1f}s") from e

        try:
            response = AnalyzeHistoryResponse.from_message(message)
        except ValidationError as e:
            counter("bridge.protocol_error")
            raise AgentProtocolError(f"Malformed analysis response: {e}") from e

        counter("bridge.analysis_response")
        return response
