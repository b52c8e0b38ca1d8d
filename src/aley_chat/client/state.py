"""Local chat view state driven by stream events."""

from dataclasses import dataclass, field
from typing import List, Optional

from ..domain.events import StreamEvent

STREAMING_ID = "streaming"


@dataclass
class ChatMessage:
    id: str
    role: str
    content: str
    created_at: Optional[str] = None

    @property
    def provisional(self) -> bool:
        return self.id == STREAMING_ID

    @classmethod
    def from_data(cls, data: dict) -> "ChatMessage":
        return cls(
            id=data["id"],
            role=data["role"],
            content=data["content"],
            created_at=data.get("createdAt"),
        )


@dataclass
class ChatViewState:
    """Thread as the user sees it while a reply streams in."""

    conversation_id: Optional[str] = None
    messages: List[ChatMessage] = field(default_factory=list)
    error: Optional[str] = None
    done: bool = False

    @property
    def streaming_message(self) -> Optional[ChatMessage]:
        if self.messages and self.messages[-1].provisional:
            return self.messages[-1]
        return None

    def apply(self, event: StreamEvent) -> None:
        if event.type == "userMessage":
            self.error = None
            self.done = False
            self.messages.append(ChatMessage.from_data(event.data))
        elif event.type == "conversationId":
            self.conversation_id = event.data
        elif event.type == "stream":
            streaming = self.streaming_message
            if streaming is None:
                self.messages.append(ChatMessage(id=STREAMING_ID, role="assistant", content=event.data))
            else:
                streaming.content += event.data
        elif event.type == "complete":
            self._drop_streaming()
            self.messages.append(ChatMessage.from_data(event.data))
            self.done = True
        elif event.type == "error":
            self._drop_streaming()
            self.error = event.data
            self.done = True

    def _drop_streaming(self) -> None:
        if self.streaming_message is not None:
            self.messages.pop()
