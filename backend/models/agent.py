"""
AgentProfile model — a configurable LLM agent stored in the database.

The executor looks profiles up by id and builds the chat model from the
model name, temperature and max_tokens columns.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Integer, String, Text

from models.conversation import Base


class AgentProfile(Base):
    __tablename__ = "agents"

    id = Column(
        String(64),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    icon = Column(String(16), nullable=False, default="🤖")
    category = Column(String(32), nullable=False, default="analysis")
    color = Column(String(16), nullable=False, default="#1890ff")
    system_prompt = Column(Text, nullable=False)
    model = Column(String(64), nullable=False)
    temperature = Column(Float, nullable=False, default=0.7)
    max_tokens = Column(Integer, nullable=False, default=1000)
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

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "category": self.category,
            "color": self.color,
            "system_prompt": self.system_prompt,
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
