"""Domain models for the chat application."""

from datetime import datetime, timezone
from typing import Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

Role = Literal["user", "assistant"]

DEFAULT_CONVERSATION_TITLE = "New Conversation"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class Preferences(BaseModel):
    """Per-user UI preferences."""

    dark_mode: bool = False
    notifications: bool = True


class User(BaseModel):
    """Account record. ``password_hash`` never leaves the server."""

    id: str = Field(default_factory=new_id)
    name: str
    email: str
    password_hash: str
    first_name: str = ""
    last_name: str = ""
    avatar_url: str = ""
    bio: str = ""
    preferences: Preferences = Field(default_factory=Preferences)
    plan: str = "Free"
    status: str = "active"
    member_since: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Conversation(BaseModel):
    """Conversation model."""

    id: str = Field(default_factory=new_id)
    user_id: str
    title: str = DEFAULT_CONVERSATION_TITLE
    last_message_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Message(BaseModel):
    """Message model."""

    id: str = Field(default_factory=new_id)
    conversation_id: str
    role: Role
    content: str
    created_at: datetime = Field(default_factory=utcnow)


class Identity(BaseModel):
    """Caller identity carried inside a bearer token."""

    user_id: str
    email: str
    name: str


class Page(BaseModel):
    """Pagination block returned with every list response."""

    current_page: int
    total_pages: int
    total_count: int
    has_more: bool

    @classmethod
    def build(cls, page: int, limit: int, returned: int, total: int) -> "Page":
        skip = (page - 1) * limit
        return cls(
            current_page=page,
            total_pages=-(-total // limit),
            total_count=total,
            has_more=skip + returned < total,
        )


class MessagePreview(BaseModel):
    """Truncated view of a conversation's latest message."""

    content: str
    role: Role
    created_at: datetime

    @classmethod
    def of(cls, message: Message, length: int = 100) -> "MessagePreview":
        return cls(
            content=message.content[:length],
            role=message.role,
            created_at=message.created_at,
        )
