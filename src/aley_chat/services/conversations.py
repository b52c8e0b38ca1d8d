"""Conversation listing, renaming and deletion."""

from typing import List, Optional, Tuple

import structlog
from pydantic import BaseModel

from ..domain.errors import InvalidInput, NotFound
from ..domain.models import Conversation, Identity, MessagePreview, Page
from ..repositories.base import Repository

logger = structlog.get_logger()

MAX_TITLE_LENGTH = 200


class ConversationSummary(BaseModel):
    """A conversation plus a preview of its latest message."""

    conversation: Conversation
    preview: Optional[MessagePreview] = None


class ConversationService:
    def __init__(self, repository: Repository):
        self.repository = repository

    async def require(self, conversation_id: str, identity: Identity) -> Conversation:
        """Fetch an owned conversation or fail with ``NotFound``."""
        conversation = await self.repository.get_conversation(conversation_id, identity.user_id)
        if conversation is None:
            raise NotFound("Conversation not found")
        return conversation

    async def list(
        self, identity: Identity, page: int = 1, limit: int = 20
    ) -> Tuple[List[ConversationSummary], Page]:
        skip = (page - 1) * limit
        conversations = await self.repository.list_conversations(
            identity.user_id, offset=skip, limit=limit
        )
        total = await self.repository.count_conversations(identity.user_id)

        summaries = []
        for conversation in conversations:
            latest = await self.repository.latest_message(conversation.id)
            summaries.append(
                ConversationSummary(
                    conversation=conversation,
                    preview=MessagePreview.of(latest) if latest else None,
                )
            )
        return summaries, Page.build(page, limit, len(summaries), total)

    async def rename(self, conversation_id: str, identity: Identity, title: str) -> Conversation:
        if not conversation_id:
            raise InvalidInput("Conversation ID is required")
        title = (title or "").strip()
        if not title:
            raise InvalidInput("Title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise InvalidInput("Title cannot exceed 200 characters")

        conversation = await self.repository.rename_conversation(
            conversation_id, identity.user_id, title
        )
        if conversation is None:
            raise NotFound("Conversation not found")
        logger.info("conversation_renamed", conversation_id=conversation_id)
        return conversation

    async def delete(self, conversation_id: Optional[str], identity: Identity) -> None:
        if not conversation_id:
            raise InvalidInput("Conversation ID is required")
        if not await self.repository.delete_conversation(conversation_id, identity.user_id):
            raise NotFound("Conversation not found")
