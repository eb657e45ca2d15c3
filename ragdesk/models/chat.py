"""Chat message and background task models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ragdesk.models.document import utc_now


class MessageRole(str, Enum):  # noqa: UP042 StrEnum requires Python 3.11+
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """One message in a chat; assistant messages carry citation metadata."""

    model_config = ConfigDict(frozen=True)

    id: str
    chat_id: str
    role: MessageRole
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)


class AcceptedTask(BaseModel):
    """Receipt returned when work has been queued for background execution."""

    model_config = ConfigDict(frozen=True)

    task_key: str = Field(description="Scheduling key; at most one task per key is in flight.")
    accepted: bool = Field(
        default=True,
        description="False when an identical key was already in flight and no new task was queued.",
    )
