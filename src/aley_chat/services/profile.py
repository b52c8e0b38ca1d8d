"""User profile reads and updates."""

from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from pydantic import BaseModel

from ..domain.errors import InvalidInput, NotFound
from ..domain.models import Identity, Preferences, User
from ..repositories.base import Repository
from .auth import EMAIL_PATTERN, normalize_email

logger = structlog.get_logger()

MAX_BIO_LENGTH = 400
MAX_NAME_PART_LENGTH = 50


class ProfileStatistics(BaseModel):
    total_conversations: int
    total_messages: int
    last_active_at: Optional[datetime] = None


class PreferencesUpdate(BaseModel):
    dark_mode: Optional[bool] = None
    notifications: Optional[bool] = None


class ProfileUpdate(BaseModel):
    """Fields a user may change; ``None`` leaves the stored value alone."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    preferences: Optional[PreferencesUpdate] = None


class ProfileService:
    def __init__(self, repository: Repository):
        self.repository = repository

    async def _require_user(self, identity: Identity) -> User:
        user = await self.repository.get_user(identity.user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def get(self, identity: Identity):
        user = await self._require_user(identity)
        recent = await self.repository.list_conversations(user.id, limit=1)
        statistics = ProfileStatistics(
            total_conversations=await self.repository.count_conversations(user.id),
            total_messages=await self.repository.count_user_messages(user.id),
            last_active_at=recent[0].last_message_at if recent else None,
        )
        return user, statistics

    async def update(self, identity: Identity, update: ProfileUpdate) -> User:
        current = await self._require_user(identity)
        changes: Dict[str, Any] = {}

        for field in ("first_name", "last_name"):
            value = getattr(update, field)
            if value is not None:
                value = value.strip()
                if len(value) > MAX_NAME_PART_LENGTH:
                    raise InvalidInput("Names cannot exceed 50 characters")
                changes[field] = value
        if update.avatar_url is not None:
            changes["avatar_url"] = update.avatar_url.strip()
        if update.bio is not None:
            changes["bio"] = update.bio.strip()[:MAX_BIO_LENGTH]

        if update.email is not None and update.email.strip():
            email = normalize_email(update.email)
            if not EMAIL_PATTERN.match(email):
                raise InvalidInput("Please provide a valid email")
            owner = await self.repository.get_user_by_email(email)
            if owner is not None and owner.id != current.id:
                raise InvalidInput("Email is already in use")
            changes["email"] = email

        if update.preferences is not None:
            changes["preferences"] = Preferences(
                dark_mode=(
                    update.preferences.dark_mode
                    if update.preferences.dark_mode is not None
                    else current.preferences.dark_mode
                ),
                notifications=(
                    update.preferences.notifications
                    if update.preferences.notifications is not None
                    else current.preferences.notifications
                ),
            )

        # Keep the display name in sync with first/last name.
        composed = " ".join(
            part
            for part in (
                changes.get("first_name", current.first_name),
                changes.get("last_name", current.last_name),
            )
            if part
        )
        if composed:
            changes["name"] = composed

        updated = await self.repository.update_user(current.id, changes)
        if updated is None:
            raise NotFound("User not found")
        logger.info("profile_updated", user_id=current.id, fields=sorted(changes))
        return updated
