"""Shared fixtures: an app wired to an in-memory store and a scripted LLM."""

import json
from datetime import datetime
from typing import List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from aley_chat.api.app import create_app
from aley_chat.config import Settings
from aley_chat.repositories.memory import InMemoryRepository


class ScriptedLLM:
    """Stands in for Gemini, replaying fixed fragments.

    When ``error`` is set it is raised after ``fail_after`` fragments.
    """

    def __init__(self, fragments=("Hello", ", ", "world!"), error=None, fail_after=0):
        self.fragments = list(fragments)
        self.error = error
        self.fail_after = fail_after
        self.calls = []

    async def stream_reply(self, history, message):
        self.calls.append({"history": history, "message": message})
        for index, fragment in enumerate(self.fragments):
            if self.error is not None and index == self.fail_after:
                raise self.error
            yield fragment
        if self.error is not None and self.fail_after >= len(self.fragments):
            raise self.error


def parse_events(body: str) -> List[dict]:
    """Decode a complete ``text/event-stream`` body."""
    return [
        json.loads(line[len("data: "):])
        for line in body.split("\n")
        if line.startswith("data: ")
    ]


def parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def settings() -> Settings:
    return Settings(jwt_secret="test-secret", bcrypt_rounds=4)


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def app(settings, repository, llm):
    return create_app(settings=settings, repository=repository, llm_service=llm)


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def signup(client):
    """Create an account and return ``(token, user)``."""

    async def _signup(
        email: str = "ada@example.com", name: str = "Ada Lovelace", password: str = "secret123"
    ):
        response = await client.post(
            "/auth/signup", json={"name": name, "email": email, "password": password}
        )
        assert response.status_code == 201, response.text
        data = response.json()
        return data["token"], data["user"]

    return _signup


@pytest.fixture
def send(client):
    """POST /chat/send and return ``(response, events)``."""

    async def _send(token: str, message: str, conversation_id: Optional[str] = None):
        body = {"message": message}
        if conversation_id is not None:
            body["conversationId"] = conversation_id
        response = await client.post("/chat/send", json=body, headers=bearer(token))
        events = parse_events(response.text) if response.status_code == 200 else []
        return response, events

    return _send
