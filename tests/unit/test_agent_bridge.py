"""Unit tests for AgentBridge over the in-process broadcast channel

Tests cover:
- Probe acknowledged / unanswered
- Analysis request round-trip and payload shape
- Timeouts and malformed responses
- Listener cleanup after every call
"""

from __future__ import annotations

import pytest

from researchvault.bridge.agent_bridge import AgentBridge, AgentProtocolError, AgentTimeoutError
from researchvault.bridge.channel import BroadcastChannel, ChannelRegistry
from researchvault.bridge.messages import (
    SOURCE_AGENT,
    AnalyzeHistoryRequest,
    AnalyzeHistoryResponse,
    MessageType,
    make_message,
)

PARAMS = AnalyzeHistoryRequest(days=30, limit=50, threshold=0.5)


class FakeAgent:
    """Answers on the channel the way the browser extension does"""

    def __init__(self, channel: BroadcastChannel, response: dict | None = None, echo_check=False):
        self.channel = channel
        self.response = response
        self.echo_check = echo_check
        self.requests: list[dict] = []
        channel.add_listener(self.on_message)

    def on_message(self, message: dict) -> None:
        if message.get("source") == SOURCE_AGENT:
            return
        if message["type"] == MessageType.CAPABILITY_CHECK.value:
            reply_type = MessageType.CAPABILITY_CHECK if self.echo_check else MessageType.CAPABILITY_RESPONSE
            self.channel.post(make_message(reply_type, SOURCE_AGENT))
        elif message["type"] == MessageType.ANALYZE_HISTORY_REQUEST.value:
            self.requests.append(message)
            if self.response is not None:
                self.channel.post(
                    make_message(MessageType.ANALYZE_HISTORY_RESPONSE, SOURCE_AGENT, self.response)
                )


@pytest.fixture
def channel():
    return BroadcastChannel("user-1")


@pytest.mark.asyncio
async def test_probe_acknowledged(channel):
    FakeAgent(channel)
    bridge = AgentBridge(channel, probe_timeout=0.5)

    assert await bridge.probe() is True
    assert channel.listener_count == 1  # only the agent remains


@pytest.mark.asyncio
async def test_probe_accepts_echoed_check(channel):
    FakeAgent(channel, echo_check=True)
    assert await AgentBridge(channel).probe(timeout=0.5) is True


@pytest.mark.asyncio
async def test_probe_without_agent_is_false(channel):
    bridge = AgentBridge(channel)

    assert await bridge.probe(timeout=0.05) is False
    assert channel.listener_count == 0


@pytest.mark.asyncio
async def test_own_check_message_is_not_an_ack(channel):
    # The poster receives its own broadcast; that must not count as the agent
    assert await AgentBridge(channel).probe(timeout=0.05) is False


@pytest.mark.asyncio
async def test_request_analysis_round_trip(channel):
    agent = FakeAgent(
        channel,
        response={"success": True, "saved": 2, "entries": [{"url": "https://arxiv.org/abs/1"}]},
    )
    bridge = AgentBridge(channel, analysis_timeout=0.5)

    response = await bridge.request_analysis(
        AnalyzeHistoryRequest(days=7, limit=10, threshold=0.6, save_to_database=True)
    )

    assert response == AnalyzeHistoryResponse(
        success=True, saved=2, entries=[{"url": "https://arxiv.org/abs/1"}]
    )
    assert agent.requests[0]["data"] == {
        "days": 7,
        "limit": 10,
        "threshold": 0.6,
        "saveToDatabase": True,
    }
    assert channel.listener_count == 1


@pytest.mark.asyncio
async def test_request_analysis_times_out(channel):
    FakeAgent(channel, response=None)
    bridge = AgentBridge(channel)

    with pytest.raises(AgentTimeoutError):
        await bridge.request_analysis(PARAMS, timeout=0.05)
    assert channel.listener_count == 1


@pytest.mark.asyncio
async def test_malformed_response(channel):
    FakeAgent(channel, response={"saved": "many"})

    with pytest.raises(AgentProtocolError):
        await AgentBridge(channel).request_analysis(PARAMS, timeout=0.5)
    assert channel.listener_count == 1


@pytest.mark.asyncio
async def test_repeated_calls_do_not_leak_listeners(channel):
    bridge = AgentBridge(channel)
    for _ in range(5):
        await bridge.probe(timeout=0.01)
        with pytest.raises(AgentTimeoutError):
            await bridge.request_analysis(PARAMS, timeout=0.01)
    assert channel.listener_count == 0


def test_response_from_flat_message():
    message = {"type": "ANALYZE_HISTORY_RESPONSE", "source": "agent", "success": False, "error": "denied"}
    response = AnalyzeHistoryResponse.from_message(message)
    assert response.success is False
    assert response.error == "denied"
    assert response.saved == 0


@pytest.mark.asyncio
async def test_listener_errors_do_not_stop_delivery(channel):
    def broken(message):
        raise RuntimeError("listener bug")

    channel.add_listener(broken)
    FakeAgent(channel)
    assert await AgentBridge(channel).probe(timeout=0.5) is True


def test_registry_hands_out_one_channel_per_user():
    registry = ChannelRegistry()
    assert registry.get("a") is registry.get("a")
    assert registry.get("a") is not registry.get("b")
    assert sorted(registry.user_ids()) == ["a", "b"]
