"""Profile endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...domain.models import Identity
from ...services.profile import ProfileUpdate
from ..dependencies import Services, get_identity, get_services
from ..schemas import ProfileUpdateRequest, profile_json

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/profile")
async def get_profile(
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Gets the caller's profile with usage statistics"""
    user, statistics = await services.profile.get(identity)
    return {
        "user": profile_json(user),
        "statistics": {
            "totalConversations": statistics.total_conversations,
            "totalMessages": statistics.total_messages,
            "lastActiveAt": statistics.last_active_at,
        },
    }


@router.put("/profile")
async def update_profile(
    body: ProfileUpdateRequest,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Updates profile fields and preferences"""
    user = await services.profile.update(identity, ProfileUpdate(**body.model_dump()))
    return {"user": profile_json(user)}
