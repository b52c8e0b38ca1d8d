"""Request bodies and response shapes for the HTTP API."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..domain.models import Conversation, Identity, MessagePreview, Page, User


class RequestModel(BaseModel):
    """camelCase body that rejects unknown fields."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class SignupRequest(RequestModel):
    name: str
    email: str
    password: str


class LoginRequest(RequestModel):
    email: str
    password: str


class RenameConversationRequest(RequestModel):
    conversation_id: str
    title: str


class SendMessageRequest(RequestModel):
    message: str
    conversation_id: Optional[str] = None


class PreferencesRequest(RequestModel):
    dark_mode: Optional[bool] = None
    notifications: Optional[bool] = None


class ProfileUpdateRequest(RequestModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    preferences: Optional[PreferencesRequest] = None


def account_json(user: User) -> Dict[str, Any]:
    return {"id": user.id, "name": user.name, "email": user.email}


def identity_json(identity: Identity) -> Dict[str, Any]:
    return {"id": identity.user_id, "email": identity.email, "name": identity.name}


def profile_json(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "email": user.email,
        "avatarUrl": user.avatar_url,
        "bio": user.bio,
        "preferences": {
            "darkMode": user.preferences.dark_mode,
            "notifications": user.preferences.notifications,
        },
        "plan": user.plan or "Free",
        "status": user.status or "active",
        "memberSince": user.member_since or user.created_at,
        "createdAt": user.created_at,
    }


def conversation_json(conversation: Conversation) -> Dict[str, Any]:
    return {
        "id": conversation.id,
        "title": conversation.title,
        "lastMessageAt": conversation.last_message_at,
        "createdAt": conversation.created_at,
        "updatedAt": conversation.updated_at,
    }


def preview_json(preview: Optional[MessagePreview], with_date: bool = True) -> Optional[Dict[str, Any]]:
    if preview is None:
        return None
    data: Dict[str, Any] = {"content": preview.content, "role": preview.role}
    if with_date:
        data["createdAt"] = preview.created_at
    return data


def page_json(page: Page) -> Dict[str, Any]:
    return {
        "currentPage": page.current_page,
        "totalPages": page.total_pages,
        "totalCount": page.total_count,
        "hasMore": page.has_more,
    }
