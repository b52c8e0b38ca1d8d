"""Chat-send pipeline: persist the user turn, relay Gemini's reply, persist the answer."""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

import structlog

from ..domain.errors import ChatError, InvalidInput, UpstreamError
from ..domain.events import StreamEvent, message_data
from ..domain.models import Conversation, Identity, Message, utcnow
from ..repositories.base import Repository
from .conversations import ConversationService
from .llm import HistoryEntry, LLMService, build_history

logger = structlog.get_logger()

MAX_MESSAGE_LENGTH = 10_000
TITLE_LENGTH = 50


def title_from(message: str) -> str:
    """Provisional conversation title built from its first message."""
    if len(message) > TITLE_LENGTH:
        return message[:TITLE_LENGTH] + "..."
    return message


@dataclass
class PreparedSend:
    """Everything persisted and assembled before the reply starts streaming."""

    conversation: Conversation
    user_message: Message
    history: List[HistoryEntry]
    is_new_conversation: bool = False


class ChatService:
    def __init__(
        self,
        repository: Repository,
        conversations: ConversationService,
        llm: LLMService,
        context_window: int = 20,
    ):
        self.repository = repository
        self.conversations = conversations
        self.llm = llm
        self.context_window = context_window

    async def prepare(
        self, identity: Identity, message: str, conversation_id: Optional[str] = None
    ) -> PreparedSend:
        """Validate, resolve the conversation, store the user turn and build context.

        Failures here happen before any response bytes are sent.
        """
        content = (message or "").strip()
        if not content:
            raise InvalidInput("Message content is required")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise InvalidInput("Message is too long (max 10,000 characters)")

        is_new = not conversation_id
        if conversation_id:
            conversation = await self.conversations.require(conversation_id, identity)
        else:
            now = utcnow()
            conversation = await self.repository.create_conversation(
                Conversation(
                    user_id=identity.user_id,
                    title=title_from(content),
                    last_message_at=now,
                    created_at=now,
                    updated_at=now,
                )
            )

        user_message = await self.repository.add_message(
            Message(conversation_id=conversation.id, role="user", content=content)
        )

        prior = await self.repository.recent_messages(
            conversation.id, self.context_window, exclude_id=user_message.id
        )
        user = await self.repository.get_user(identity.user_id)
        history = build_history(prior, user.bio if user else None)

        logger.info(
            "chat_send_prepared",
            conversation_id=conversation.id,
            new_conversation=is_new,
            context_messages=len(prior),
        )
        return PreparedSend(
            conversation=conversation,
            user_message=user_message,
            history=history,
            is_new_conversation=is_new,
        )

    async def relay(self, prepared: PreparedSend) -> AsyncIterator[StreamEvent]:
        """Stream the reply as typed events and persist it once complete.

        Any failure yields a single ``error`` event and ends the stream without
        storing an assistant message. Cancellation (client disconnect) closes
        the upstream stream and stores nothing.
        """
        conversation_id = prepared.conversation.id
        yield StreamEvent(type="userMessage", data=message_data(prepared.user_message))
        yield StreamEvent(type="conversationId", data=conversation_id)

        fragments: List[str] = []
        try:
            upstream = self.llm.stream_reply(prepared.history, prepared.user_message.content)
            try:
                async for fragment in upstream:
                    fragments.append(fragment)
                    yield StreamEvent(type="stream", data=fragment)
            finally:
                await upstream.aclose()

            assistant_message = await self.repository.add_message(
                Message(
                    conversation_id=conversation_id,
                    role="assistant",
                    content="".join(fragments),
                )
            )
        except asyncio.CancelledError:
            logger.info(
                "chat_stream_cancelled",
                conversation_id=conversation_id,
                fragments=len(fragments),
            )
            raise
        except ChatError as e:
            logger.warning("chat_stream_failed", conversation_id=conversation_id, error=e.message)
            yield StreamEvent(type="error", data=e.message)
            return
        except Exception as e:
            logger.error("chat_stream_error", conversation_id=conversation_id, error=str(e))
            yield StreamEvent(type="error", data=UpstreamError.default_message)
            return

        logger.info(
            "chat_stream_completed",
            conversation_id=conversation_id,
            response_length=len(assistant_message.content),
        )
        yield StreamEvent(type="complete", data=message_data(assistant_message))
