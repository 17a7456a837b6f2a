"""
REST API routes for saved conversation history.

Endpoints:
    GET    /api/conversations/                    — List saved conversations
    GET    /api/conversations/{id}                — Conversation with its messages
    GET    /api/conversations/{id}/messages       — Raw message log, sorted
    DELETE /api/conversations/{id}                — Delete a conversation
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_session
from services.conversation_service import (
    delete_conversation,
    get_conversation,
    list_conversations,
    list_messages,
)


conversation_router = APIRouter()


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------

class ConversationSummaryResponse(BaseModel):
    id: str
    title: str
    message_count: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class MessageResponse(BaseModel):
    id: str
    conversation_id: str
    node_type: str
    content: str
    sort: float
    agent_id: Optional[str] = None
    created_at: Optional[str] = None


class ConversationDetailResponse(ConversationSummaryResponse):
    messages: List[MessageResponse]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@conversation_router.get("/conversations/", response_model=List[ConversationSummaryResponse])
async def list_all_conversations(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    """List saved conversations, most recently updated first."""
    rows = await list_conversations(session, limit=limit, offset=offset)
    return [conversation.to_dict(message_count=count) for conversation, count in rows]


@conversation_router.get("/conversations/{conversation_id}", response_model=ConversationDetailResponse)
async def get_single_conversation(
    conversation_id: str,
    session: AsyncSession = Depends(get_session),
):
    conversation = await get_conversation(session, conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversation '{conversation_id}' not found.")

    messages = sorted(await list_messages(session, conversation_id), key=lambda m: m.sort)
    data = conversation.to_dict(message_count=len(messages))
    data["messages"] = [m.to_dict() for m in messages]
    return data


@conversation_router.get(
    "/conversations/{conversation_id}/messages",
    response_model=List[MessageResponse],
)
async def get_conversation_messages(
    conversation_id: str,
    session: AsyncSession = Depends(get_session),
):
    """The append-only message log of a conversation, ordered by sort."""
    if await get_conversation(session, conversation_id) is None:
        raise HTTPException(status_code=404, detail=f"Conversation '{conversation_id}' not found.")
    messages = await list_messages(session, conversation_id)
    return [m.to_dict() for m in sorted(messages, key=lambda m: m.sort)]


@conversation_router.delete("/conversations/{conversation_id}", status_code=204)
async def delete_existing_conversation(
    conversation_id: str,
    session: AsyncSession = Depends(get_session),
):
    deleted = await delete_conversation(session, conversation_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Conversation '{conversation_id}' not found.")
