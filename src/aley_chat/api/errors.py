"""Translation of domain errors into JSON error responses."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from structlog import get_logger

from ..domain.errors import ChatError

logger = get_logger()


def _describe(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request_error", path=request.url.path, error=exc.message)
        else:
            logger.info("request_rejected", path=request.url.path, status=exc.status_code, error=exc.message)
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = _describe(exc)
        logger.info("request_invalid", path=request.url.path, error=message)
        return JSONResponse({"error": message}, status_code=400)
