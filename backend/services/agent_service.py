"""
Agent Service — CRUD operations for agent profiles.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.agent import AgentProfile

_UPDATABLE_FIELDS = (
    "name",
    "description",
    "icon",
    "category",
    "color",
    "system_prompt",
    "model",
    "temperature",
    "max_tokens",
)


async def create_agent(
    session: AsyncSession,
    name: str,
    system_prompt: str,
    model: str,
    agent_id: Optional[str] = None,
    **fields,
) -> AgentProfile:
    """Create and persist a new agent profile."""
    agent = AgentProfile(
        name=name,
        system_prompt=system_prompt,
        model=model,
        **{k: v for k, v in fields.items() if k in _UPDATABLE_FIELDS and v is not None},
    )
    if agent_id:
        agent.id = agent_id

    session.add(agent)
    await session.commit()
    await session.refresh(agent)
    return agent


async def get_agent(session: AsyncSession, agent_id: str) -> Optional[AgentProfile]:
    """Retrieve an agent profile by ID."""
    result = await session.execute(
        select(AgentProfile).where(AgentProfile.id == agent_id)
    )
    return result.scalar_one_or_none()


async def list_agents(session: AsyncSession) -> List[AgentProfile]:
    """Retrieve all agent profiles, newest first."""
    result = await session.execute(
        select(AgentProfile).order_by(AgentProfile.created_at.desc())
    )
    return list(result.scalars().all())


async def update_agent(
    session: AsyncSession,
    agent_id: str,
    updates: dict,
) -> Optional[AgentProfile]:
    """Update the given profile fields. Returns None if not found."""
    agent = await get_agent(session, agent_id)
    if agent is None:
        return None

    for key, value in updates.items():
        if key in _UPDATABLE_FIELDS and value is not None:
            setattr(agent, key, value)
    agent.updated_at = datetime.now(timezone.utc)

    await session.commit()
    await session.refresh(agent)
    return agent


async def delete_agent(session: AsyncSession, agent_id: str) -> bool:
    """Delete an agent profile. Returns True if deleted, False if not found."""
    agent = await get_agent(session, agent_id)
    if agent is None:
        return False

    await session.delete(agent)
    await session.commit()
    return True
