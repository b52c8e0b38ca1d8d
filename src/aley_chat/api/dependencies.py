"""Service wiring and request-scoped dependencies."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from ..config import Settings
from ..domain.models import Identity
from ..repositories.base import Repository
from ..services.auth import AuthService, PasswordHasher, TokenService
from ..services.chat import ChatService
from ..services.conversations import ConversationService
from ..services.history import HistoryService
from ..services.llm import LLMService
from ..services.profile import ProfileService


@dataclass
class Services:
    """Everything a request handler needs, built once per application."""

    repository: Repository
    auth: AuthService
    conversations: ConversationService
    history: HistoryService
    chat: ChatService
    profile: ProfileService

    @classmethod
    def build(cls, settings: Settings, repository: Repository, llm: LLMService) -> "Services":
        conversations = ConversationService(repository)
        return cls(
            repository=repository,
            auth=AuthService(
                repository,
                TokenService(settings.jwt_secret, settings.token_ttl_days),
                PasswordHasher(settings.bcrypt_rounds),
            ),
            conversations=conversations,
            history=HistoryService(repository, conversations),
            chat=ChatService(repository, conversations, llm, settings.context_window),
            profile=ProfileService(repository),
        )


def get_services(request: Request) -> Services:
    """Returns the services bound to the running application"""
    return request.app.state.services


def get_identity(
    authorization: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
) -> Identity:
    """Verifies the bearer token and returns the caller's identity"""
    return services.auth.authenticate(authorization)
