"""
In-process broadcast channel between the web side and the browser agent.

Posting never delivers synchronously: messages are handed to listeners on the
next event-loop iteration, in registration order, and every listener sees
every message (including the poster's own).
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from researchvault.observability.logging import get_logger
from researchvault.observability.telemetry import counter

logger = get_logger(__name__)

Listener = Callable[[dict[str, Any]], None]


class BroadcastChannel:
    def __init__(self, name: str):
        self.name = name
        self._listeners: list[Listener] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def post(self, message: dict[str, Any]) -> None:
        """Schedule delivery of a copy of message; requires a running event loop."""
        loop = asyncio.get_running_loop()
        loop.call_soon(self._deliver, dict(message))

    def _deliver(self, message: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception as e:
                counter("bridge.listener_error")
                logger.warning("Channel %s listener failed: %s", self.name, e)


class ChannelRegistry:
    """One channel per user session."""

    def __init__(self) -> None:
        self._channels: dict[str, BroadcastChannel] = {}

    def get(self, user_id: str) -> BroadcastChannel:
        channel = self._channels.get(user_id)
        if channel is None:
            channel = BroadcastChannel(name=f"user:{user_id}")
            self._channels[user_id] = channel
        return channel

    def user_ids(self) -> list[str]:
        return list(self._channels)
