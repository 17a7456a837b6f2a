"""
Conversation models — the durable, append-only record of a conversation chain.

A Conversation owns an ordered set of ConversationMessage rows. Each execution
round appends up to three messages (query, log, answer); the sort column is
the only ordering consumed when the chain is rebuilt.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""

    pass


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    title = Column(String(255), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self, message_count: int = 0) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "message_count": message_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ConversationMessage(Base):
    """
    One persisted entry of a conversation.

    node_type is "query" (an input), "answer" (an agent output) or "log"
    (a round start/completion line). sort values are not necessarily
    contiguous integers.
    """

    __tablename__ = "conversation_messages"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    conversation_id = Column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    node_type = Column(String(10), nullable=False)
    content = Column(Text, nullable=False, default="")
    sort = Column(Float, nullable=False)
    agent_id = Column(String(64), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "node_type": self.node_type,
            "content": self.content,
            "sort": self.sort,
            "agent_id": self.agent_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
