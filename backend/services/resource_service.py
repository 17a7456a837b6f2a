"""
Resource Service — CRUD and search for stored reference documents.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.resource import StoredResource


async def create_resource(
    session: AsyncSession,
    title: str,
    content: str,
    resource_type: str = "text",
    description: str = "",
    file_name: str = "",
) -> StoredResource:
    """Create and persist a new resource from already-parsed text."""
    resource = StoredResource(
        title=title,
        content=content,
        type=resource_type,
        description=description,
        file_name=file_name,
        file_size=len(content.encode("utf-8")),
    )
    session.add(resource)
    await session.commit()
    await session.refresh(resource)
    return resource


async def get_resource(session: AsyncSession, resource_id: str) -> Optional[StoredResource]:
    """Retrieve a resource by ID."""
    result = await session.execute(
        select(StoredResource).where(StoredResource.id == resource_id)
    )
    return result.scalar_one_or_none()


async def list_resources(
    session: AsyncSession,
    query: Optional[str] = None,
) -> List[StoredResource]:
    """
    List resources, newest first.

    With a query, only resources whose title, description or content contain
    it (case-insensitive) are returned.
    """
    statement = select(StoredResource).order_by(StoredResource.created_at.desc())
    if query and query.strip():
        pattern = f"%{query.strip().lower()}%"
        statement = statement.where(
            or_(
                func.lower(StoredResource.title).like(pattern),
                func.lower(StoredResource.description).like(pattern),
                func.lower(StoredResource.content).like(pattern),
            )
        )
    result = await session.execute(statement)
    return list(result.scalars().all())


async def update_resource(
    session: AsyncSession,
    resource_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    content: Optional[str] = None,
) -> Optional[StoredResource]:
    """Update an existing resource. Returns None if not found."""
    resource = await get_resource(session, resource_id)
    if resource is None:
        return None

    if title is not None:
        resource.title = title
    if description is not None:
        resource.description = description
    if content is not None:
        resource.content = content
        resource.file_size = len(content.encode("utf-8"))
    resource.updated_at = datetime.now(timezone.utc)

    await session.commit()
    await session.refresh(resource)
    return resource


async def delete_resource(session: AsyncSession, resource_id: str) -> bool:
    """Delete a resource by ID. Returns True if deleted, False if not found."""
    resource = await get_resource(session, resource_id)
    if resource is None:
        return False

    await session.delete(resource)
    await session.commit()
    return True
