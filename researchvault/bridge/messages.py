"""
Message shapes exchanged with the browser agent over a broadcast channel.

Every message is a dict with `type` and `source`; request/response payloads
travel under `data` in the agent's camelCase form.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MessageType(str, Enum):
    CAPABILITY_CHECK = "RESEARCHVAULT_EXTENSION_CHECK"
    CAPABILITY_RESPONSE = "RESEARCHVAULT_EXTENSION_RESPONSE"
    ANALYZE_HISTORY_REQUEST = "ANALYZE_HISTORY_REQUEST"
    ANALYZE_HISTORY_RESPONSE = "ANALYZE_HISTORY_RESPONSE"


SOURCE_WEBAPP = "webapp"
SOURCE_AGENT = "agent"


def make_message(message_type: MessageType, source: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"type": message_type.value, "source": source}
    if data is not None:
        message["data"] = data
    return message


def is_capability_ack(message: dict[str, Any]) -> bool:
    """An explicit response, or the check message echoed back by the agent."""
    msg_type = message.get("type")
    if msg_type == MessageType.CAPABILITY_RESPONSE.value:
        return True
    return msg_type == MessageType.CAPABILITY_CHECK.value and message.get("source") == SOURCE_AGENT


class AnalyzeHistoryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    days: int = Field(ge=1)
    limit: int = Field(ge=1)
    threshold: float = Field(ge=0.0, le=1.0)
    save_to_database: bool = Field(default=False, alias="saveToDatabase")

    def to_message(self) -> dict[str, Any]:
        return make_message(
            MessageType.ANALYZE_HISTORY_REQUEST,
            SOURCE_WEBAPP,
            self.model_dump(by_alias=True),
        )


class AnalyzeHistoryResponse(BaseModel):
    """
    Agent's answer to an analysis request.

    `saved` counts candidates the agent persisted itself; `entries` carries raw
    history records (validated individually by the orchestrator).
    """

    success: bool
    saved: int = Field(default=0, ge=0)
    error: str | None = None
    entries: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> AnalyzeHistoryResponse:
        payload = message.get("data")
        if not isinstance(payload, dict):
            payload = {k: v for k, v in message.items() if k not in ("type", "source")}
        return cls.model_validate(payload)
