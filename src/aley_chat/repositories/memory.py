"""In-memory repository implementation."""

import asyncio
from typing import Any, Dict, List, Optional

import structlog

from ..domain.errors import EmailTaken
from ..domain.models import Conversation, Message, User, utcnow
from .base import DateRange, MessageFilter, Repository, search_terms

logger = structlog.get_logger()


def _matches(message: Message, criteria: MessageFilter) -> bool:
    if criteria.created is not None and message.created_at not in criteria.created:
        return False
    if criteria.search:
        terms = search_terms(criteria.search)
        words = set(search_terms(message.content))
        if not any(term in words for term in terms):
            return False
    return True


class InMemoryRepository(Repository):
    """Process-local repository guarded by a single asyncio lock.

    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}
        self._conversations: Dict[str, Conversation] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._lock = asyncio.Lock()
        logger.info("repository_initialized", backend="memory")

    def _email_owner(self, email: str) -> Optional[User]:
        for user in self._users.values():
            if user.email == email:
                return user
        return None

    def _owned(self, conversation_id: str, user_id: str) -> Optional[Conversation]:
        conversation = self._conversations.get(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            return None
        return conversation

    def _sorted_messages(self, conversation_id: str) -> List[Message]:
        # Stable sort keeps insertion order for equal timestamps.
        return sorted(self._messages.get(conversation_id, []), key=lambda m: m.created_at)

    async def create_user(self, user: User) -> User:
        async with self._lock:
            if self._email_owner(user.email) is not None:
                raise EmailTaken("User with this email already exists")
            self._users[user.id] = user.model_copy(deep=True)
            logger.info("user_created", user_id=user.id)
            return user

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self._lock:
            user = self._users.get(user_id)
            return user.model_copy(deep=True) if user else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        async with self._lock:
            user = self._email_owner(email)
            return user.model_copy(deep=True) if user else None

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            email = changes.get("email")
            if email is not None:
                owner = self._email_owner(email)
                if owner is not None and owner.id != user_id:
                    raise EmailTaken()
            updated = user.model_copy(update={**changes, "updated_at": utcnow()}, deep=True)
            self._users[user_id] = updated
            logger.info("user_updated", user_id=user_id, fields=sorted(changes))
            return updated.model_copy(deep=True)

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        async with self._lock:
            self._conversations[conversation.id] = conversation.model_copy()
            self._messages[conversation.id] = []
            logger.info("conversation_created", conversation_id=conversation.id)
        return conversation

    async def get_conversation(self, conversation_id: str, user_id: str) -> Optional[Conversation]:
        async with self._lock:
            conversation = self._owned(conversation_id, user_id)
            if conversation is None:
                logger.warning("conversation_not_found", conversation_id=conversation_id)
                return None
            return conversation.model_copy()

    async def list_conversations(
        self,
        user_id: str,
        offset: int = 0,
        limit: int = 20,
        newest_first: bool = True,
        active: Optional[DateRange] = None,
    ) -> List[Conversation]:
        async with self._lock:
            conversations = sorted(
                (
                    c
                    for c in self._conversations.values()
                    if c.user_id == user_id and (active is None or c.last_message_at in active)
                ),
                key=lambda c: c.last_message_at,
                reverse=newest_first,
            )
            return [c.model_copy() for c in conversations[offset : offset + limit]]

    async def count_conversations(self, user_id: str, active: Optional[DateRange] = None) -> int:
        async with self._lock:
            return sum(
                1
                for c in self._conversations.values()
                if c.user_id == user_id and (active is None or c.last_message_at in active)
            )

    async def rename_conversation(
        self, conversation_id: str, user_id: str, title: str
    ) -> Optional[Conversation]:
        async with self._lock:
            conversation = self._owned(conversation_id, user_id)
            if conversation is None:
                return None
            conversation.title = title
            conversation.updated_at = utcnow()
            return conversation.model_copy()

    async def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        async with self._lock:
            if self._owned(conversation_id, user_id) is None:
                return False
            removed = len(self._messages.pop(conversation_id, []))
            del self._conversations[conversation_id]
            logger.info(
                "conversation_deleted",
                conversation_id=conversation_id,
                messages_removed=removed,
            )
            return True

    async def add_message(self, message: Message) -> Message:
        async with self._lock:
            conversation = self._conversations.get(message.conversation_id)
            if not conversation:
                logger.error(
                    "conversation_not_found_for_message",
                    conversation_id=message.conversation_id,
                )
                raise ValueError(f"Conversation {message.conversation_id} not found")

            self._messages.setdefault(message.conversation_id, []).append(message.model_copy())
            if message.created_at > conversation.last_message_at:
                conversation.last_message_at = message.created_at
            conversation.updated_at = utcnow()

            logger.info(
                "message_added",
                conversation_id=message.conversation_id,
                message_role=message.role,
            )
            return message

    async def find_messages(
        self,
        criteria: MessageFilter,
        offset: int = 0,
        limit: int = 50,
        newest_first: bool = False,
    ) -> List[Message]:
        async with self._lock:
            messages = [
                m for m in self._sorted_messages(criteria.conversation_id) if _matches(m, criteria)
            ]
            if newest_first:
                messages.reverse()
            return [m.model_copy() for m in messages[offset : offset + limit]]

    async def count_messages(self, criteria: MessageFilter) -> int:
        async with self._lock:
            return sum(
                1 for m in self._messages.get(criteria.conversation_id, []) if _matches(m, criteria)
            )

    async def latest_message(self, conversation_id: str) -> Optional[Message]:
        async with self._lock:
            messages = self._sorted_messages(conversation_id)
            return messages[-1].model_copy() if messages else None

    async def recent_messages(
        self, conversation_id: str, limit: int, exclude_id: Optional[str] = None
    ) -> List[Message]:
        async with self._lock:
            messages = [m for m in self._sorted_messages(conversation_id) if m.id != exclude_id]
            return [m.model_copy() for m in messages[-limit:]] if limit > 0 else []

    async def count_user_messages(self, user_id: str) -> int:
        async with self._lock:
            return sum(
                len(self._messages.get(c.id, []))
                for c in self._conversations.values()
                if c.user_id == user_id
            )
