"""Conversation, history and chat-send endpoints."""

from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from ...domain.models import Identity
from ...services.chat import PreparedSend
from ...services.history import HistoryQuery
from ..dependencies import Services, get_identity, get_services
from ..metrics import CHAT_STREAM_ERRORS, CHAT_STREAM_FRAGMENTS, CHAT_STREAMS
from ..schemas import (
    RenameConversationRequest,
    SendMessageRequest,
    conversation_json,
    page_json,
    preview_json,
)


router = APIRouter(prefix="/chat", tags=["chat"])

STREAM_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


@router.get("/conversations")
async def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Gets the caller's conversations, most recently active first"""
    summaries, pagination = await services.conversations.list(identity, page=page, limit=limit)
    return {
        "conversations": [
            {
                **conversation_json(summary.conversation),
                "preview": preview_json(summary.preview, with_date=False),
            }
            for summary in summaries
        ],
        "pagination": page_json(pagination),
    }


@router.delete("/conversations")
async def delete_conversation(
    id: Optional[str] = Query(None),
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Deletes a conversation together with its messages"""
    await services.conversations.delete(id, identity)
    return {"message": "Conversation deleted successfully"}


@router.patch("/conversations")
async def rename_conversation(
    body: RenameConversationRequest,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Renames a conversation"""
    conversation = await services.conversations.rename(body.conversation_id, identity, body.title)
    return {
        "message": "Conversation updated successfully",
        "conversation": conversation_json(conversation),
    }


@router.get("/history")
async def history(
    conversation_id: Optional[str] = Query(None, alias="conversationId"),
    search: str = Query(""),
    sort_by: str = Query("newest", alias="sortBy"),
    filter_date: str = Query("", alias="filterDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Gets one conversation's messages, or the conversation index when no id is given"""
    query = HistoryQuery(
        search=search or None,
        sort_by=sort_by,
        filter_date=filter_date or None,
        page=page,
        limit=limit,
    )

    if conversation_id:
        result = await services.history.conversation_messages(conversation_id, identity, query)
        return {
            "conversationId": result.conversation.id,
            "conversationTitle": result.conversation.title,
            "messages": [
                {
                    "id": message.id,
                    "role": message.role,
                    "content": message.content,
                    "createdAt": message.created_at,
                }
                for message in result.messages
            ],
            "pagination": page_json(result.page),
        }

    index = await services.history.index(identity, query)
    return {
        "conversations": [
            {
                "id": entry.conversation.id,
                "title": entry.conversation.title,
                "messageCount": entry.message_count,
                "lastMessageAt": entry.conversation.last_message_at,
                "createdAt": entry.conversation.created_at,
                "lastMessage": preview_json(entry.last_message),
            }
            for entry in index.entries
        ],
        "pagination": page_json(index.page),
        "filters": {
            "search": query.search,
            "sortBy": query.sort_by,
            "filterDate": query.filter_date,
        },
    }


async def _encode_events(services: Services, prepared: PreparedSend) -> AsyncIterator[str]:
    async for event in services.chat.relay(prepared):
        if event.type == "stream":
            CHAT_STREAM_FRAGMENTS.inc()
        elif event.type == "error":
            CHAT_STREAM_ERRORS.inc()
        yield event.encode()


@router.post("/send")
async def send_message(
    body: SendMessageRequest,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """
    Stores the user's message and streams the assistant's reply.
    Validation, ownership and storage errors are returned as HTTP statuses;
    once streaming starts, failures arrive as an in-band error event.
    """
    prepared = await services.chat.prepare(identity, body.message, body.conversation_id)
    CHAT_STREAMS.inc()
    return StreamingResponse(
        _encode_events(services, prepared),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )
