"""LLM service streaming replies from Google's Gemini models."""

from typing import Any, AsyncIterator, Dict, List, Optional

import google.generativeai as genai
import structlog
from google.api_core import exceptions
from google.generativeai.types import BlockedPromptException, StopCandidateException

from ..config import GenerationSettings
from ..domain.errors import UpstreamError, UpstreamUnavailable
from ..domain.models import Message

logger = structlog.get_logger()

BIO_PREAMBLE = (
    "User bio/context (use this to personalize tone and relevance, "
    "do not repeat it back unless asked): "
)

HistoryEntry = Dict[str, Any]


def build_history(messages: List[Message], bio: Optional[str] = None) -> List[HistoryEntry]:
    """Convert stored messages into Gemini chat history.

    A non-empty bio becomes a leading user turn the model treats as background.
    """
    history: List[HistoryEntry] = []
    if bio and bio.strip():
        history.append({"role": "user", "parts": [BIO_PREAMBLE + bio.strip()]})
    for message in messages:
        role = "user" if message.role == "user" else "model"
        history.append({"role": role, "parts": [message.content]})
    return history


def _chunk_text(chunk: Any) -> str:
    # The .parts/.text accessors raise on chunks without a candidate (usage-only
    # or prompt-feedback chunks) and on candidates without text parts.
    if not chunk.candidates:
        return ""
    return "".join(part.text for part in chunk.candidates[0].content.parts)


class LLMService:
    """Gemini chat client with fixed generation parameters.

    ``genai.configure`` sets the API key on the SDK's process-wide default
    client, so every instance in a process shares the key of the most recently
    constructed one. Build a single service per process.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model_name: str = "gemini-2.5-flash",
        generation: Optional[GenerationSettings] = None,
    ):
        generation = generation or GenerationSettings()
        genai.configure(api_key=api_key or "")
        self.model_name = model_name
        self.model = genai.GenerativeModel(
            model_name,
            generation_config=genai.GenerationConfig(
                max_output_tokens=generation.max_output_tokens,
                temperature=generation.temperature,
                top_p=generation.top_p,
                top_k=generation.top_k,
            ),
        )
        logger.info("llm_service_init", model=model_name, api_key_configured=bool(api_key))

    async def stream_reply(self, history: List[HistoryEntry], message: str) -> AsyncIterator[str]:
        """Yield text fragments of the model's reply as they arrive."""
        chat = self.model.start_chat(history=history)
        fragments = 0
        try:
            response = await chat.send_message_async(message, stream=True)
            async for chunk in response:
                text = _chunk_text(chunk)
                if text:
                    fragments += 1
                    yield text
        except (exceptions.ResourceExhausted, exceptions.TooManyRequests) as e:
            logger.warning("gemini_quota_exhausted", error=str(e))
            raise UpstreamUnavailable()
        except (exceptions.PermissionDenied, exceptions.Unauthenticated) as e:
            logger.error("gemini_auth_error", error=str(e))
            raise UpstreamError("AI service configuration error")
        except (BlockedPromptException, StopCandidateException) as e:
            logger.warning("gemini_response_blocked", error=str(e))
            raise UpstreamError("The response was blocked by the AI service")
        except exceptions.GoogleAPIError as e:
            logger.error("gemini_api_error", error=str(e))
            raise UpstreamError()
        logger.info("gemini_stream_finished", model=self.model_name, fragments=fragments)
