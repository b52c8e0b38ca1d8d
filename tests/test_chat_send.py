"""Test suite for the chat-send streaming pipeline."""

import asyncio

import pytest
from google.api_core import exceptions

from aley_chat.domain.errors import UpstreamUnavailable
from aley_chat.domain.models import Identity
from aley_chat.repositories.base import MessageFilter
from aley_chat.services.chat import title_from
from aley_chat.services.llm import BIO_PREAMBLE

from conftest import bearer, parse_time


@pytest.mark.asyncio
async def test_send_new_conversation_streams_events(client, signup, send, repository):
    """Test the event sequence and persistence for a first message."""
    token, user = await signup()
    response, events = await send(token, "  What is the capital of France?  ")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert [e["type"] for e in events] == [
        "userMessage",
        "conversationId",
        "stream",
        "stream",
        "stream",
        "complete",
    ]

    user_message = events[0]["data"]
    assert user_message["role"] == "user"
    assert user_message["content"] == "What is the capital of France?"
    conversation_id = events[1]["data"]
    assert "".join(e["data"] for e in events if e["type"] == "stream") == "Hello, world!"
    complete = events[-1]["data"]
    assert complete["role"] == "assistant"
    assert complete["content"] == "Hello, world!"

    conversation = await repository.get_conversation(conversation_id, user["id"])
    assert conversation.title == "What is the capital of France?"
    assert await repository.count_messages(MessageFilter(conversation_id=conversation_id)) == 2


@pytest.mark.asyncio
async def test_send_appends_to_existing_conversation(client, signup, send, llm):
    """Test context assembly and lastMessageAt after several turns."""
    token, _ = await signup()
    _, events = await send(token, "Turn 0")
    conversation_id = events[1]["data"]
    for i in range(1, 3):
        response, events = await send(token, f"Turn {i}", conversation_id)
        assert response.status_code == 200
        assert events[1]["data"] == conversation_id

    last_call = llm.calls[-1]
    assert last_call["message"] == "Turn 2"
    assert [entry["role"] for entry in last_call["history"]] == ["user", "model", "user", "model"]
    assert last_call["history"][0]["parts"] == ["Turn 0"]

    response = await client.get(
        f"/chat/history?conversationId={conversation_id}&limit=100", headers=bearer(token)
    )
    history = response.json()
    assert history["pagination"]["totalCount"] == 6

    response = await client.get("/chat/conversations", headers=bearer(token))
    listed = response.json()["conversations"]
    assert len(listed) == 1
    newest_message = history["messages"][0]
    assert parse_time(listed[0]["lastMessageAt"]) == parse_time(newest_message["createdAt"])


@pytest.mark.asyncio
async def test_context_window_keeps_most_recent_messages(app, signup, send, llm, settings):
    """Test that only the most recent messages are forwarded as context."""
    token, _ = await signup()
    _, events = await send(token, "message 0")
    conversation_id = events[1]["data"]
    for i in range(1, 12):
        await send(token, f"message {i}", conversation_id)

    history = llm.calls[-1]["history"]
    assert len(history) == settings.context_window
    # 22 stored messages precede the last send; the two oldest are dropped.
    assert history[0]["parts"] == ["message 1"]
    assert history[-1]["role"] == "model"


@pytest.mark.asyncio
async def test_bio_is_prepended_to_context(client, signup, send, llm):
    """Test that a stored bio becomes a leading background entry."""
    token, _ = await signup()
    await client.put(
        "/user/profile", json={"bio": "Vegetarian cook from Oslo"}, headers=bearer(token)
    )
    await send(token, "Suggest a dinner")

    history = llm.calls[-1]["history"]
    assert history == [
        {"role": "user", "parts": [BIO_PREAMBLE + "Vegetarian cook from Oslo"]}
    ]


@pytest.mark.asyncio
async def test_send_validation(client, signup, send, llm):
    """Test empty and oversized messages are rejected before streaming."""
    token, _ = await signup()

    response, _ = await send(token, "   ")
    assert response.status_code == 400
    assert response.json()["error"] == "Message content is required"

    response, _ = await send(token, "x" * 10_001)
    assert response.status_code == 400
    assert response.json()["error"] == "Message is too long (max 10,000 characters)"

    response, events = await send(token, "x" * 10_000)
    assert response.status_code == 200
    assert events[-1]["type"] == "complete"
    assert len(llm.calls) == 1


@pytest.mark.asyncio
async def test_upstream_failure_emits_error_event(client, signup, send, llm, repository, app):
    """Test a mid-stream failure keeps the user turn and stores no reply."""
    token, user = await signup()
    llm.error = UpstreamUnavailable()
    llm.fail_after = 1

    response, events = await send(token, "Will this work?")
    assert response.status_code == 200
    assert [e["type"] for e in events] == ["userMessage", "conversationId", "stream", "error"]
    assert events[-1]["data"] == UpstreamUnavailable.default_message

    conversation_id = events[1]["data"]
    messages = await repository.find_messages(MessageFilter(conversation_id=conversation_id))
    assert [m.role for m in messages] == ["user"]


@pytest.mark.asyncio
async def test_unexpected_failure_reports_generic_error(client, signup, send, llm):
    """Test that unexpected exceptions are not leaked to the caller."""
    token, _ = await signup()
    llm.error = RuntimeError("socket exploded at 10.0.0.3")

    _, events = await send(token, "Hello?")
    assert events[-1] == {"type": "error", "data": "Failed to generate response"}


@pytest.mark.asyncio
async def test_disconnect_stores_no_assistant_message(app, signup, repository, llm):
    """Test closing the stream early stops the relay without persisting a reply."""
    await signup()
    user = await repository.get_user_by_email("ada@example.com")
    identity = Identity(user_id=user.id, email=user.email, name=user.name)
    chat = app.state.services.chat

    prepared = await chat.prepare(identity, "Tell me a long story")
    stream = chat.relay(prepared)
    received = [await stream.__anext__() for _ in range(3)]
    assert [e.type for e in received] == ["userMessage", "conversationId", "stream"]
    await stream.aclose()

    criteria = MessageFilter(conversation_id=prepared.conversation.id)
    assert await repository.count_messages(criteria) == 1


@pytest.mark.asyncio
async def test_cancellation_propagates(app, signup, repository):
    """Test that cancelling the consumer cancels the upstream call."""
    await signup()
    user = await repository.get_user_by_email("ada@example.com")
    identity = Identity(user_id=user.id, email=user.email, name=user.name)
    started = asyncio.Event()
    upstream_closed = asyncio.Event()

    class HangingLLM:
        async def stream_reply(self, history, message):
            try:
                yield "partial"
                started.set()
                await asyncio.Event().wait()
                yield "never"
            finally:
                upstream_closed.set()

    chat = app.state.services.chat
    chat.llm = HangingLLM()
    prepared = await chat.prepare(identity, "Hang on")

    async def consume():
        async for _ in chat.relay(prepared):
            pass

    task = asyncio.create_task(consume())
    await asyncio.wait_for(started.wait(), timeout=1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert upstream_closed.is_set()
    criteria = MessageFilter(conversation_id=prepared.conversation.id)
    assert await repository.count_messages(criteria) == 1


def test_title_from_message():
    """Test provisional titles are cut at 50 characters with an ellipsis."""
    assert title_from("Short question") == "Short question"
    assert title_from("a" * 50) == "a" * 50
    assert title_from("b" * 51) == "b" * 50 + "..."


@pytest.mark.asyncio
async def test_llm_quota_errors_are_translated(monkeypatch):
    """Test that provider quota errors surface as UpstreamUnavailable."""
    from aley_chat.services.llm import LLMService

    service = LLMService(api_key="test-key")

    class FailingChat:
        async def send_message_async(self, message, stream=False):
            raise exceptions.ResourceExhausted("quota exceeded")

    monkeypatch.setattr(service.model, "start_chat", lambda history: FailingChat())
    with pytest.raises(UpstreamUnavailable):
        async for _ in service.stream_reply([], "hi"):
            pass


@pytest.mark.asyncio
async def test_llm_skips_chunks_without_text(monkeypatch):
    """Test that usage-only and finish-only chunks do not end the reply."""
    import google.ai.generativelanguage as glm
    from google.generativeai.types.generation_types import GenerateContentResponse

    from aley_chat.services.llm import LLMService

    def chunk(**fields):
        return GenerateContentResponse.from_response(glm.GenerateContentResponse(**fields))

    chunks = [
        chunk(candidates=[{"content": {"role": "model", "parts": [{"text": "Hello"}]}}]),
        chunk(candidates=[{"content": {"role": "model", "parts": [{"text": " there"}]}}]),
        chunk(candidates=[{"finish_reason": "STOP"}]),
        chunk(
            candidates=[],
            usage_metadata={"prompt_token_count": 3, "total_token_count": 5},
        ),
    ]

    class StreamingChat:
        async def send_message_async(self, message, stream=False):
            async def response():
                for item in chunks:
                    yield item

            return response()

    service = LLMService(api_key="test-key")
    monkeypatch.setattr(service.model, "start_chat", lambda history: StreamingChat())

    fragments = [fragment async for fragment in service.stream_reply([], "hi")]
    assert fragments == ["Hello", " there"]


def test_app_configures_gemini_once(monkeypatch, settings):
    """Test that building the app configures the Gemini SDK with the settings key."""
    import google.generativeai as genai

    from aley_chat.api.app import create_app
    from aley_chat.repositories.memory import InMemoryRepository

    calls = []
    monkeypatch.setattr(genai, "configure", lambda **kwargs: calls.append(kwargs))
    settings.gemini_api_key = "key-a"

    create_app(settings=settings, repository=InMemoryRepository())
    assert calls == [{"api_key": "key-a"}]
