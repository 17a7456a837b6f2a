"""
REST API routes for stored reference resources.

Endpoints:
    GET    /api/resources/?q=...      — List or search resources
    POST   /api/resources/            — Create a resource from text
    GET    /api/resources/{id}        — Get a specific resource
    PUT    /api/resources/{id}        — Update a resource
    DELETE /api/resources/{id}        — Delete a resource
"""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_session
from services.resource_service import (
    create_resource,
    delete_resource,
    get_resource,
    list_resources,
    update_resource,
)

resource_router = APIRouter()


# ---------------------------------------------------------------------------
# Request / Response Models
# ---------------------------------------------------------------------------

class ResourceCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    type: Literal["pdf", "md", "text"] = "text"
    description: str = ""
    file_name: str = ""


class ResourceUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    content: Optional[str] = Field(None, min_length=1)


class ResourceResponse(BaseModel):
    id: str
    title: str
    description: str
    type: str
    file_name: str
    file_size: int
    content: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@resource_router.get("/resources/", response_model=List[ResourceResponse])
async def list_all_resources(
    q: Optional[str] = Query(default=None, max_length=255),
    session: AsyncSession = Depends(get_session),
):
    """List resources, optionally filtered by a case-insensitive search term."""
    resources = await list_resources(session, query=q)
    return [r.to_dict() for r in resources]


@resource_router.post("/resources/", response_model=ResourceResponse, status_code=201)
async def create_new_resource(
    request: ResourceCreateRequest,
    session: AsyncSession = Depends(get_session),
):
    resource = await create_resource(
        session,
        title=request.title,
        content=request.content,
        resource_type=request.type,
        description=request.description,
        file_name=request.file_name,
    )
    return resource.to_dict()


@resource_router.get("/resources/{resource_id}", response_model=ResourceResponse)
async def get_single_resource(resource_id: str, session: AsyncSession = Depends(get_session)):
    resource = await get_resource(session, resource_id)
    if resource is None:
        raise HTTPException(status_code=404, detail=f"Resource '{resource_id}' not found.")
    return resource.to_dict()


@resource_router.put("/resources/{resource_id}", response_model=ResourceResponse)
async def update_existing_resource(
    resource_id: str,
    request: ResourceUpdateRequest,
    session: AsyncSession = Depends(get_session),
):
    resource = await update_resource(
        session,
        resource_id,
        title=request.title,
        description=request.description,
        content=request.content,
    )
    if resource is None:
        raise HTTPException(status_code=404, detail=f"Resource '{resource_id}' not found.")
    return resource.to_dict()


@resource_router.delete("/resources/{resource_id}", status_code=204)
async def delete_existing_resource(resource_id: str, session: AsyncSession = Depends(get_session)):
    deleted = await delete_resource(session, resource_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Resource '{resource_id}' not found.")
