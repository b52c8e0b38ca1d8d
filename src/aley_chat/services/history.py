"""History retrieval: one conversation's messages, or an index of conversations."""

from datetime import datetime, timedelta
from typing import List, Optional

import structlog
from pydantic import BaseModel

from ..domain.errors import InvalidInput
from ..domain.models import Conversation, Identity, Message, MessagePreview, Page
from ..repositories.base import DateRange, MessageFilter, Repository
from .conversations import ConversationService

logger = structlog.get_logger()

SORT_ORDERS = ("newest", "oldest")


def parse_day(value: str) -> DateRange:
    """Turn ``YYYY-MM-DD`` into the local-time range ``[day 00:00, day+1 00:00)``."""
    try:
        day = datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise InvalidInput("filterDate must use the YYYY-MM-DD format")
    # astimezone() on a naive datetime interprets it in server-local time.
    start = day.astimezone()
    end = (day + timedelta(days=1)).astimezone()
    return DateRange(start=start, end=end)


class HistoryQuery(BaseModel):
    search: Optional[str] = None
    sort_by: str = "newest"
    filter_date: Optional[str] = None
    page: int = 1
    limit: int = 50

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def newest_first(self) -> bool:
        return self.sort_by != "oldest"


class ConversationMessages(BaseModel):
    conversation: Conversation
    messages: List[Message]
    page: Page


class IndexEntry(BaseModel):
    conversation: Conversation
    message_count: int
    last_message: Optional[MessagePreview] = None


class ConversationIndex(BaseModel):
    entries: List[IndexEntry]
    page: Page


class HistoryService:
    def __init__(self, repository: Repository, conversations: ConversationService):
        self.repository = repository
        self.conversations = conversations

    @staticmethod
    def _validate(query: HistoryQuery) -> Optional[DateRange]:
        if query.sort_by not in SORT_ORDERS:
            raise InvalidInput("sortBy must be 'newest' or 'oldest'")
        return parse_day(query.filter_date) if query.filter_date else None

    async def conversation_messages(
        self, conversation_id: str, identity: Identity, query: HistoryQuery
    ) -> ConversationMessages:
        created = self._validate(query)
        conversation = await self.conversations.require(conversation_id, identity)

        criteria = MessageFilter(
            conversation_id=conversation.id,
            search=query.search or None,
            created=created,
        )
        messages = await self.repository.find_messages(
            criteria, offset=query.skip, limit=query.limit, newest_first=query.newest_first
        )
        total = await self.repository.count_messages(criteria)
        return ConversationMessages(
            conversation=conversation,
            messages=messages,
            page=Page.build(query.page, query.limit, len(messages), total),
        )

    async def index(self, identity: Identity, query: HistoryQuery) -> ConversationIndex:
        """List conversations with message counts and last-message previews.

        With a search term, conversations on the current page that contain no
        matching message are removed after pagination, so a page can hold fewer
        than ``limit`` entries even when later pages still have matches. The
        totals then describe the filtered page only.
        """
        active = self._validate(query)
        conversations = await self.repository.list_conversations(
            identity.user_id,
            offset=query.skip,
            limit=query.limit,
            newest_first=query.newest_first,
            active=active,
        )
        total = await self.repository.count_conversations(identity.user_id, active)

        entries = []
        for conversation in conversations:
            if query.search:
                matches = await self.repository.count_messages(
                    MessageFilter(conversation_id=conversation.id, search=query.search)
                )
                if not matches:
                    continue
            latest = await self.repository.latest_message(conversation.id)
            entries.append(
                IndexEntry(
                    conversation=conversation,
                    message_count=await self.repository.count_messages(
                        MessageFilter(conversation_id=conversation.id)
                    ),
                    last_message=MessagePreview.of(latest) if latest else None,
                )
            )

        if query.search:
            total = len(entries)
            logger.info("history_index_searched", matches=total)
        return ConversationIndex(
            entries=entries,
            page=Page.build(query.page, query.limit, len(entries), total),
        )
