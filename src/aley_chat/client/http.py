"""Async HTTP client for the Aley API."""

from typing import Any, AsyncIterator, Dict, Optional

import httpx
import structlog

from ..domain.events import StreamEvent
from .events import EventStreamDecoder

logger = structlog.get_logger()


class AleyClientError(Exception):
    """Non-success response from the API."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("error", response.reason_phrase)
    except ValueError:
        return response.text or response.reason_phrase


class AleyClient:
    """Thin wrapper over ``httpx.AsyncClient`` that tracks the bearer token."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 60.0,
    ):
        self.token = token
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def __aenter__(self) -> "AleyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        response = await self._http.request(method, url, headers=self._headers(), **kwargs)
        if response.is_error:
            raise AleyClientError(response.status_code, _error_message(response))
        return response.json()

    async def signup(self, name: str, email: str, password: str) -> Dict[str, Any]:
        data = await self._request(
            "POST", "/auth/signup", json={"name": name, "email": email, "password": password}
        )
        self.token = data["token"]
        return data

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        data = await self._request("POST", "/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data

    async def verify(self) -> Dict[str, Any]:
        return await self._request("GET", "/auth/verify")

    async def list_conversations(self, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        return await self._request("GET", "/chat/conversations", params={"page": page, "limit": limit})

    async def rename_conversation(self, conversation_id: str, title: str) -> Dict[str, Any]:
        return await self._request(
            "PATCH", "/chat/conversations", json={"conversationId": conversation_id, "title": title}
        )

    async def delete_conversation(self, conversation_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", "/chat/conversations", params={"id": conversation_id})

    async def history(self, **params: Any) -> Dict[str, Any]:
        """Query ``/chat/history``; keyword names follow the API (``conversationId``, ``sortBy`` ...)."""
        return await self._request(
            "GET", "/chat/history", params={k: v for k, v in params.items() if v is not None}
        )

    async def get_profile(self) -> Dict[str, Any]:
        return await self._request("GET", "/user/profile")

    async def update_profile(self, **fields: Any) -> Dict[str, Any]:
        return await self._request("PUT", "/user/profile", json=fields)

    async def send_message(
        self, message: str, conversation_id: Optional[str] = None
    ) -> AsyncIterator[StreamEvent]:
        """Send a message and yield reply events as they arrive."""
        body: Dict[str, Any] = {"message": message}
        if conversation_id:
            body["conversationId"] = conversation_id

        decoder = EventStreamDecoder()
        async with self._http.stream("POST", "/chat/send", json=body, headers=self._headers()) as response:
            if response.is_error:
                await response.aread()
                raise AleyClientError(response.status_code, _error_message(response))
            async for chunk in response.aiter_text():
                for event in decoder.feed(chunk):
                    yield event
        for event in decoder.flush():
            yield event
