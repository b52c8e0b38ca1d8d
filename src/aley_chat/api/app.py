"""
FastAPI Application Module

The Aley chat API: account sign-up and login, conversation management,
searchable history, and a chat-send endpoint that relays Gemini's reply to the
caller as a server-sent event stream.

Key Features:
- App factory with explicitly constructed storage and LLM clients
- MongoDB or in-memory persistence
- Structured logging and Prometheus metrics
- CORS and OpenTelemetry support
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import generate_latest
from structlog import get_logger

from ..config import Settings
from ..repositories.base import Repository
from ..repositories.memory import InMemoryRepository
from ..repositories.mongo import MongoRepository
from ..services.llm import LLMService
from .dependencies import Services
from .errors import install_error_handlers
from .metrics import CUSTOM_REGISTRY, ERRORS, REQUESTS
from .routes import auth, chat, user

logger = get_logger()


def build_repository(settings: Settings) -> Repository:
    """Creates the storage backend named in the settings"""
    if settings.storage_backend == "mongodb":
        return MongoRepository(settings.mongodb_uri, settings.mongodb_db)
    if settings.storage_backend == "memory":
        return InMemoryRepository()
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[Repository] = None,
    llm_service: Optional[LLMService] = None,
) -> FastAPI:
    """Builds the application; collaborators not passed in are created from settings"""
    settings = settings or Settings.from_env()
    repository = repository or build_repository(settings)
    llm_service = llm_service or LLMService(
        settings.gemini_api_key, settings.gemini_model, settings.generation
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handles app startup/shutdown and resource management"""
        if isinstance(repository, MongoRepository):
            await repository.ensure_indexes()
        logger.info("application_startup_complete", storage=settings.storage_backend)

        yield

        await repository.close()
        logger.info("application_shutdown_complete")

    app = FastAPI(
        title="Aley Chat API",
        description="Multi-turn chat with Gemini, streamed over server-sent events",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = Services.build(settings, repository, llm_service)

    # Enable cross-origin requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Set up request tracing
    FastAPIInstrumentor.instrument_app(app)

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Logs and counts requests; unexpected errors become a generic 500"""
        path = request.url.path
        REQUESTS.labels(request.method, path).inc()
        logger.info("request_started", method=request.method, path=path)
        try:
            response = await call_next(request)
        except Exception as e:
            ERRORS.labels(request.method, path).inc()
            logger.error("request_failed", path=path, error=str(e), exc_info=True)
            return JSONResponse({"error": "Internal server error"}, status_code=500)
        if response.status_code >= 500:
            ERRORS.labels(request.method, path).inc()
        return response

    install_error_handlers(app)
    app.include_router(auth.router)
    app.include_router(chat.router)
    app.include_router(user.router)

    @app.get("/health")
    async def health():
        """Liveness probe"""
        return {"status": "ok"}

    @app.get("/metrics")
    async def metrics():
        """Provides Prometheus metrics for system monitoring"""
        return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")

    return app


def main() -> None:
    """Runs the API under uvicorn"""
    import uvicorn

    uvicorn.run("aley_chat.api.app:create_app", factory=True, host="0.0.0.0", port=8000)
