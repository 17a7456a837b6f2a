"""
REST API routes for agent profile CRUD.

Endpoints:
    GET    /api/agents/               — List all agents
    POST   /api/agents/               — Create an agent
    GET    /api/agents/{id}           — Get a specific agent
    PUT    /api/agents/{id}           — Update an agent
    DELETE /api/agents/{id}           — Delete an agent
    POST   /api/agents/{id}/execute   — Run an agent once, outside any session
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from agents.executor import LLMAgentExecutor
from database import async_session, get_session
from errors import ExecutorFailure
from services.agent_service import (
    create_agent,
    delete_agent,
    get_agent,
    list_agents,
    update_agent,
)

agent_router = APIRouter()


# ---------------------------------------------------------------------------
# Request / Response Models
# ---------------------------------------------------------------------------

class AgentCreateRequest(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    icon: Optional[str] = None
    category: Optional[str] = None
    color: Optional[str] = None
    system_prompt: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1, max_length=64)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=1, le=32_000)


class AgentUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    icon: Optional[str] = None
    category: Optional[str] = None
    color: Optional[str] = None
    system_prompt: Optional[str] = Field(None, min_length=1)
    model: Optional[str] = Field(None, min_length=1, max_length=64)
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(None, ge=1, le=32_000)


class AgentResponse(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    category: str
    color: str
    system_prompt: str
    model: str
    temperature: float
    max_tokens: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AgentExecuteRequest(BaseModel):
    input: str = Field(..., min_length=1, max_length=200_000)


class AgentExecuteResponse(BaseModel):
    output: str
    logs: List[str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@agent_router.get("/agents/", response_model=List[AgentResponse])
async def list_all_agents(session: AsyncSession = Depends(get_session)):
    agents = await list_agents(session)
    return [agent.to_dict() for agent in agents]


@agent_router.post("/agents/", response_model=AgentResponse, status_code=201)
async def create_new_agent(
    request: AgentCreateRequest,
    session: AsyncSession = Depends(get_session),
):
    fields = request.model_dump(exclude={"id", "name", "system_prompt", "model"})
    agent = await create_agent(
        session,
        name=request.name,
        system_prompt=request.system_prompt,
        model=request.model,
        agent_id=request.id,
        **fields,
    )
    return agent.to_dict()


@agent_router.get("/agents/{agent_id}", response_model=AgentResponse)
async def get_single_agent(agent_id: str, session: AsyncSession = Depends(get_session)):
    agent = await get_agent(session, agent_id)
    if agent is None:
        raise HTTPException(status_code=404, detail=f"Agent '{agent_id}' not found.")
    return agent.to_dict()


@agent_router.put("/agents/{agent_id}", response_model=AgentResponse)
async def update_existing_agent(
    agent_id: str,
    request: AgentUpdateRequest,
    session: AsyncSession = Depends(get_session),
):
    agent = await update_agent(session, agent_id, request.model_dump(exclude_none=True))
    if agent is None:
        raise HTTPException(status_code=404, detail=f"Agent '{agent_id}' not found.")
    return agent.to_dict()


@agent_router.delete("/agents/{agent_id}", status_code=204)
async def delete_existing_agent(agent_id: str, session: AsyncSession = Depends(get_session)):
    deleted = await delete_agent(session, agent_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Agent '{agent_id}' not found.")


@agent_router.post("/agents/{agent_id}/execute", response_model=AgentExecuteResponse)
async def execute_single_agent(agent_id: str, request: AgentExecuteRequest):
    """Run one agent on a raw input and return its output and logs."""
    executor = LLMAgentExecutor(async_session)
    try:
        result = await executor.execute_agent(agent_id, request.input)
    except ExecutorFailure as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return result.model_dump()
