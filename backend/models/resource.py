"""
StoredResource model — a reference document users attach to an input.

Only the parsed text is kept; turning uploads into text happens elsewhere.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from models.conversation import Base
from state import ResourceRef


class StoredResource(Base):
    __tablename__ = "resources"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    type = Column(String(8), nullable=False, default="text")
    file_name = Column(String(255), nullable=False, default="")
    file_size = Column(Integer, nullable=False, default=0)
    content = Column(Text, nullable=False)
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

    def to_ref(self) -> ResourceRef:
        """The value object attached to conversation nodes."""
        return ResourceRef(id=self.id, title=self.title, content=self.content, type=self.type)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
