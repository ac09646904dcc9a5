"""
WebSocket endpoint connecting a browser agent to its user's channel.

Inbound frames are posted to the channel tagged as coming from the agent;
anything the web side posts is forwarded to the socket.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from researchvault.api.middleware.user import USER_ID_PATTERN
from researchvault.bridge.messages import SOURCE_AGENT
from researchvault.detection.service import get_detection_service
from researchvault.observability.logging import get_logger
from researchvault.observability.telemetry import counter

router = APIRouter(tags=["agent"])
logger = get_logger(__name__)


@router.websocket("/ws/agent/{user_id}")
async def agent_socket(websocket: WebSocket, user_id: str) -> None:
    if not USER_ID_PATTERN.match(user_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    channel = get_detection_service().channels.get(user_id)
    outbound: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def forward(message: dict[str, Any]) -> None:
        if message.get("source") != SOURCE_AGENT:
            outbound.put_nowait(message)

    async def pump() -> None:
        while True:
            await websocket.send_json(await outbound.get())

    channel.add_listener(forward)
    sender = asyncio.create_task(pump())
    counter("bridge.agent_connected")
    logger.info("Browser agent connected for user %s", user_id)

    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                counter("bridge.agent_bad_frame")
                logger.warning("Ignoring non-JSON frame from agent for user %s", user_id)
                continue
            if not isinstance(message, dict) or "type" not in message:
                counter("bridge.agent_bad_frame")
                continue
            message["source"] = SOURCE_AGENT
            channel.post(message)
    except WebSocketDisconnect:
        logger.info("Browser agent disconnected for user %s", user_id)
    finally:
        channel.remove_listener(forward)
        sender.cancel()
        try:
            await sender
        except (asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
            pass
