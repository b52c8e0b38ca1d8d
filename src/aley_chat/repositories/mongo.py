"""MongoDB repository implementation."""

from typing import Any, Dict, List, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, TEXT, AsyncMongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..domain.errors import EmailTaken
from ..domain.models import Conversation, Message, User, utcnow
from .base import DateRange, MessageFilter, Repository

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)


def to_document(model: BaseModel) -> Dict[str, Any]:
    """Serialize a domain model, storing its ``id`` as ``_id``."""
    document = model.model_dump()
    document["_id"] = document.pop("id")
    return document


def from_document(model: Type[ModelT], document: Optional[Dict[str, Any]]) -> Optional[ModelT]:
    if document is None:
        return None
    data = dict(document)
    data["id"] = str(data.pop("_id"))
    return model.model_validate(data)


def message_query(criteria: MessageFilter) -> Dict[str, Any]:
    query: Dict[str, Any] = {"conversation_id": criteria.conversation_id}
    if criteria.search:
        query["$text"] = {"$search": criteria.search}
    if criteria.created is not None:
        query["created_at"] = {"$gte": criteria.created.start, "$lt": criteria.created.end}
    return query


def conversation_query(user_id: str, active: Optional[DateRange] = None) -> Dict[str, Any]:
    query: Dict[str, Any] = {"user_id": user_id}
    if active is not None:
        query["last_message_at"] = {"$gte": active.start, "$lt": active.end}
    return query


class MongoRepository(Repository):
    """Repository backed by three MongoDB collections.

    The client connects lazily on the first operation. No multi-document
    transactions are used; every write is shaped so that retrying it is safe.
    """

    def __init__(self, uri: str, database: str, client: Optional[AsyncMongoClient] = None) -> None:
        self._client = client or AsyncMongoClient(uri, tz_aware=True)
        db = self._client[database]
        self._users = db["users"]
        self._conversations = db["conversations"]
        self._messages = db["messages"]
        logger.info("repository_initialized", backend="mongodb", database=database)

    async def ensure_indexes(self) -> None:
        await self._users.create_index("email", unique=True)
        await self._conversations.create_index([("user_id", ASCENDING), ("last_message_at", DESCENDING)])
        await self._conversations.create_index([("user_id", ASCENDING), ("updated_at", DESCENDING)])
        await self._messages.create_index([("conversation_id", ASCENDING), ("created_at", ASCENDING)])
        await self._messages.create_index([("content", TEXT)])
        logger.info("mongodb_indexes_ensured")

    async def close(self) -> None:
        await self._client.close()
        logger.info("mongodb_client_closed")

    async def create_user(self, user: User) -> User:
        try:
            await self._users.insert_one(to_document(user))
        except DuplicateKeyError:
            raise EmailTaken("User with this email already exists")
        logger.info("user_created", user_id=user.id)
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        return from_document(User, await self._users.find_one({"_id": user_id}))

    async def get_user_by_email(self, email: str) -> Optional[User]:
        return from_document(User, await self._users.find_one({"email": email}))

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        update = {
            key: value.model_dump() if isinstance(value, BaseModel) else value
            for key, value in changes.items()
        }
        update["updated_at"] = utcnow()
        try:
            document = await self._users.find_one_and_update(
                {"_id": user_id},
                {"$set": update},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise EmailTaken()
        logger.info("user_updated", user_id=user_id, fields=sorted(changes))
        return from_document(User, document)

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        await self._conversations.insert_one(to_document(conversation))
        logger.info("conversation_created", conversation_id=conversation.id)
        return conversation

    async def get_conversation(self, conversation_id: str, user_id: str) -> Optional[Conversation]:
        document = await self._conversations.find_one({"_id": conversation_id, "user_id": user_id})
        if document is None:
            logger.warning("conversation_not_found", conversation_id=conversation_id)
        return from_document(Conversation, document)

    async def list_conversations(
        self,
        user_id: str,
        offset: int = 0,
        limit: int = 20,
        newest_first: bool = True,
        active: Optional[DateRange] = None,
    ) -> List[Conversation]:
        cursor = (
            self._conversations.find(conversation_query(user_id, active))
            .sort("last_message_at", DESCENDING if newest_first else ASCENDING)
            .skip(offset)
            .limit(limit)
        )
        return [from_document(Conversation, document) async for document in cursor]

    async def count_conversations(self, user_id: str, active: Optional[DateRange] = None) -> int:
        return await self._conversations.count_documents(conversation_query(user_id, active))

    async def rename_conversation(
        self, conversation_id: str, user_id: str, title: str
    ) -> Optional[Conversation]:
        document = await self._conversations.find_one_and_update(
            {"_id": conversation_id, "user_id": user_id},
            {"$set": {"title": title, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return from_document(Conversation, document)

    async def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        owned = await self._conversations.count_documents(
            {"_id": conversation_id, "user_id": user_id}, limit=1
        )
        if not owned:
            return False
        removed = await self._messages.delete_many({"conversation_id": conversation_id})
        await self._conversations.delete_one({"_id": conversation_id, "user_id": user_id})
        logger.info(
            "conversation_deleted",
            conversation_id=conversation_id,
            messages_removed=removed.deleted_count,
        )
        return True

    async def add_message(self, message: Message) -> Message:
        await self._messages.insert_one(to_document(message))
        # $max keeps last_message_at monotonic when concurrent writes land out of order.
        await self._conversations.update_one(
            {"_id": message.conversation_id},
            {"$max": {"last_message_at": message.created_at}, "$set": {"updated_at": utcnow()}},
        )
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
        cursor = (
            self._messages.find(message_query(criteria))
            .sort("created_at", DESCENDING if newest_first else ASCENDING)
            .skip(offset)
            .limit(limit)
        )
        return [from_document(Message, document) async for document in cursor]

    async def count_messages(self, criteria: MessageFilter) -> int:
        return await self._messages.count_documents(message_query(criteria))

    async def latest_message(self, conversation_id: str) -> Optional[Message]:
        document = await self._messages.find_one(
            {"conversation_id": conversation_id}, sort=[("created_at", DESCENDING)]
        )
        return from_document(Message, document)

    async def recent_messages(
        self, conversation_id: str, limit: int, exclude_id: Optional[str] = None
    ) -> List[Message]:
        if limit <= 0:
            return []
        query: Dict[str, Any] = {"conversation_id": conversation_id}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        cursor = self._messages.find(query).sort("created_at", DESCENDING).limit(limit)
        messages = [from_document(Message, document) async for document in cursor]
        messages.reverse()
        return messages

    async def count_user_messages(self, user_id: str) -> int:
        conversation_ids = await self._conversations.distinct("_id", {"user_id": user_id})
        if not conversation_ids:
            return 0
        return await self._messages.count_documents({"conversation_id": {"$in": conversation_ids}})
