"""
Conversation Service — CRUD operations for persisted conversations.

Messages are append-only during live execution; save_conversation() is the
one place a conversation's message set is replaced wholesale, when the user
explicitly saves a snapshot of the chain.
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.conversation import Conversation, ConversationMessage


async def create_conversation(session: AsyncSession, title: str) -> Conversation:
    """Create and persist a new, empty conversation."""
    conversation = Conversation(title=title)
    session.add(conversation)
    await session.commit()
    await session.refresh(conversation)
    return conversation


async def get_conversation(
    session: AsyncSession,
    conversation_id: str,
) -> Optional[Conversation]:
    """Retrieve a conversation by ID."""
    result = await session.execute(
        select(Conversation).where(Conversation.id == conversation_id)
    )
    return result.scalar_one_or_none()


async def list_conversations(
    session: AsyncSession,
    limit: int = 50,
    offset: int = 0,
) -> List[Tuple[Conversation, int]]:
    """List conversations with their message counts, most recently updated first."""
    message_count = (
        select(func.count(ConversationMessage.id))
        .where(ConversationMessage.conversation_id == Conversation.id)
        .scalar_subquery()
    )
    result = await session.execute(
        select(Conversation, message_count)
        .order_by(Conversation.updated_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return [(conversation, count) for conversation, count in result.all()]


async def rename_conversation(
    session: AsyncSession,
    conversation_id: str,
    title: str,
) -> Optional[Conversation]:
    """Change a conversation's title. Returns None if not found."""
    conversation = await get_conversation(session, conversation_id)
    if conversation is None:
        return None

    conversation.title = title
    conversation.updated_at = datetime.now(timezone.utc)
    await session.commit()
    await session.refresh(conversation)
    return conversation


async def delete_conversation(session: AsyncSession, conversation_id: str) -> bool:
    """Delete a conversation and its messages. Returns False if not found."""
    conversation = await get_conversation(session, conversation_id)
    if conversation is None:
        return False

    await session.execute(
        delete(ConversationMessage).where(
            ConversationMessage.conversation_id == conversation_id
        )
    )
    await session.delete(conversation)
    await session.commit()
    return True


async def append_message(
    session: AsyncSession,
    conversation_id: str,
    node_type: str,
    content: str,
    sort: float,
    agent_id: Optional[str] = None,
) -> ConversationMessage:
    """Append one message to a conversation's log."""
    message = ConversationMessage(
        conversation_id=conversation_id,
        node_type=node_type,
        content=content,
        sort=sort,
        agent_id=agent_id,
    )
    session.add(message)
    await session.commit()
    await session.refresh(message)
    return message


async def list_messages(
    session: AsyncSession,
    conversation_id: str,
) -> List[ConversationMessage]:
    """All messages of a conversation. Callers must not rely on their order."""
    result = await session.execute(
        select(ConversationMessage).where(
            ConversationMessage.conversation_id == conversation_id
        )
    )
    return list(result.scalars().all())


async def replace_messages(
    session: AsyncSession,
    conversation_id: str,
    messages: List[dict],
) -> List[ConversationMessage]:
    """Swap a conversation's messages for the given snapshot in one transaction."""
    await session.execute(
        delete(ConversationMessage).where(
            ConversationMessage.conversation_id == conversation_id
        )
    )
    rows = [
        ConversationMessage(
            conversation_id=conversation_id,
            node_type=m["node_type"],
            content=m["content"],
            sort=m["sort"],
            agent_id=m.get("agent_id"),
        )
        for m in messages
    ]
    session.add_all(rows)
    await session.commit()
    return rows
