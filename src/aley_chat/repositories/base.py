"""Base repository interface."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..domain.models import Conversation, Message, User

_WORD = re.compile(r"\w+", re.UNICODE)


def search_terms(text: str) -> List[str]:
    """Split a search string into lowercase word terms."""
    return _WORD.findall(text.lower())


@dataclass(frozen=True)
class DateRange:
    """Half-open interval ``[start, end)``."""

    start: datetime
    end: datetime

    def __contains__(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


@dataclass(frozen=True)
class MessageFilter:
    """Criteria for selecting messages of one conversation."""

    conversation_id: str
    search: Optional[str] = None
    created: Optional[DateRange] = None


class Repository(ABC):
    """Abstract base class for repositories.

    Conversation lookups are always scoped to an owner: a conversation that
    exists but belongs to another user is reported exactly like a missing one.
    """

    # Users

    @abstractmethod
    async def create_user(self, user: User) -> User:
        """Store a new user. Raises ``EmailTaken`` on a duplicate email."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        """Retrieve a user by ID."""

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Retrieve a user by normalized email."""

    @abstractmethod
    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        """Apply field changes to a user. Raises ``EmailTaken`` on a duplicate email."""

    # Conversations

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        """Create a new conversation."""

    @abstractmethod
    async def get_conversation(self, conversation_id: str, user_id: str) -> Optional[Conversation]:
        """Retrieve a conversation owned by ``user_id``."""

    @abstractmethod
    async def list_conversations(
        self,
        user_id: str,
        offset: int = 0,
        limit: int = 20,
        newest_first: bool = True,
        active: Optional[DateRange] = None,
    ) -> List[Conversation]:
        """List a user's conversations ordered by ``last_message_at``."""

    @abstractmethod
    async def count_conversations(self, user_id: str, active: Optional[DateRange] = None) -> int:
        """Count a user's conversations."""

    @abstractmethod
    async def rename_conversation(
        self, conversation_id: str, user_id: str, title: str
    ) -> Optional[Conversation]:
        """Set a new title. Returns ``None`` when not found for this owner."""

    @abstractmethod
    async def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        """Delete a conversation's messages, then the conversation itself."""

    # Messages

    @abstractmethod
    async def add_message(self, message: Message) -> Message:
        """Store a message and advance its conversation's ``last_message_at``."""

    @abstractmethod
    async def find_messages(
        self,
        criteria: MessageFilter,
        offset: int = 0,
        limit: int = 50,
        newest_first: bool = False,
    ) -> List[Message]:
        """Get matching messages ordered by creation time."""

    @abstractmethod
    async def count_messages(self, criteria: MessageFilter) -> int:
        """Count matching messages."""

    @abstractmethod
    async def latest_message(self, conversation_id: str) -> Optional[Message]:
        """Most recently created message of a conversation."""

    @abstractmethod
    async def recent_messages(
        self, conversation_id: str, limit: int, exclude_id: Optional[str] = None
    ) -> List[Message]:
        """The ``limit`` most recent messages, returned oldest first."""

    @abstractmethod
    async def count_user_messages(self, user_id: str) -> int:
        """Count messages across all conversations owned by a user."""

    async def close(self) -> None:
        """Release backend resources."""
