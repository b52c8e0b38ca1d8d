"""Typed events multiplexed on the chat-send stream."""

import json
from typing import Any, Dict, Literal

from pydantic import BaseModel

from .models import Message

EventType = Literal["userMessage", "conversationId", "stream", "complete", "error"]


class StreamEvent(BaseModel):
    """One ``data: <json>`` frame of a chat-send response."""

    type: EventType
    data: Any = None

    def encode(self) -> str:
        return f"data: {json.dumps(self.model_dump(mode='json'))}\n\n"


def message_data(message: Message) -> Dict[str, Any]:
    """Client-facing shape of a stored message."""
    return {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "createdAt": message.created_at,
    }
