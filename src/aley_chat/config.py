"""Runtime configuration loaded from the environment."""

import os
from typing import List, Optional

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = structlog.get_logger()

# Used when no signing secret is configured. Tokens signed with it are forgeable.
FALLBACK_JWT_SECRET = "your-super-secret-jwt-key-here"


class GenerationSettings(BaseModel):
    """Fixed sampling parameters sent with every completion request."""

    max_output_tokens: int = 2048
    temperature: float = 0.7
    top_p: float = 0.8
    top_k: int = 40


class Settings(BaseModel):
    """Application settings."""

    jwt_secret: str = FALLBACK_JWT_SECRET
    token_ttl_days: int = 7
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    context_window: int = 20

    storage_backend: str = "memory"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "aley"

    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @property
    def using_fallback_secret(self) -> bool:
        return self.jwt_secret == FALLBACK_JWT_SECRET

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables and an optional .env file."""
        load_dotenv(override=False)

        values = {}
        secret = os.getenv("JWT_SECRET") or os.getenv("NEXTAUTH_SECRET")
        if secret:
            values["jwt_secret"] = secret
        if os.getenv("TOKEN_TTL_DAYS"):
            values["token_ttl_days"] = int(os.environ["TOKEN_TTL_DAYS"])
        if os.getenv("BCRYPT_ROUNDS"):
            values["bcrypt_rounds"] = int(os.environ["BCRYPT_ROUNDS"])
        if os.getenv("GEMINI_API_KEY"):
            values["gemini_api_key"] = os.environ["GEMINI_API_KEY"]
        if os.getenv("GEMINI_MODEL"):
            values["gemini_model"] = os.environ["GEMINI_MODEL"]
        if os.getenv("CONTEXT_WINDOW"):
            values["context_window"] = int(os.environ["CONTEXT_WINDOW"])
        if os.getenv("STORAGE_BACKEND"):
            values["storage_backend"] = os.environ["STORAGE_BACKEND"].lower()
        if os.getenv("MONGODB_URI"):
            values["mongodb_uri"] = os.environ["MONGODB_URI"]
        if os.getenv("MONGODB_DB"):
            values["mongodb_db"] = os.environ["MONGODB_DB"]
        if os.getenv("CORS_ORIGINS"):
            values["cors_origins"] = [
                origin.strip()
                for origin in os.environ["CORS_ORIGINS"].split(",")
                if origin.strip()
            ]

        settings = cls(**values)
        if settings.using_fallback_secret:
            logger.warning("jwt_secret_not_configured", fallback=True)
        if not settings.gemini_api_key:
            logger.warning("gemini_api_key_not_configured")
        return settings
