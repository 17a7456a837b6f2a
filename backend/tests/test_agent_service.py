"""
Tests for the agent profile and resource CRUD services.

Uses an in-memory SQLite database for isolation.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import models.agent  # noqa: F401
import models.resource  # noqa: F401
from models.conversation import Base
from services.agent_service import (
    create_agent,
    delete_agent,
    get_agent,
    list_agents,
    update_agent,
)
from services.resource_service import (
    create_resource,
    delete_resource,
    get_resource,
    list_resources,
    update_resource,
)


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session():
    """Create tables and yield a fresh session for each test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as sess:
        yield sess

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


class TestAgentService:
    @pytest.mark.asyncio
    async def test_create_with_defaults(self, session):
        agent = await create_agent(session, "Analyst", "You analyze.", "gpt-4o-mini")
        assert agent.id is not None
        assert agent.temperature == 0.7
        assert agent.max_tokens == 1000
        assert agent.category == "analysis"

    @pytest.mark.asyncio
    async def test_create_with_explicit_id_and_fields(self, session):
        agent = await create_agent(
            session, "Writer", "You write.", "claude-3-5-sonnet-latest",
            agent_id="writer", temperature=0.2, unknown_field="ignored",
        )
        assert agent.id == "writer"
        assert agent.temperature == 0.2
        assert (await get_agent(session, "writer")).name == "Writer"

    @pytest.mark.asyncio
    async def test_list(self, session):
        await create_agent(session, "A", "p", "gpt-4o-mini")
        await create_agent(session, "B", "p", "gpt-4o-mini")
        assert {a.name for a in await list_agents(session)} == {"A", "B"}

    @pytest.mark.asyncio
    async def test_update_ignores_unknown_and_none(self, session):
        agent = await create_agent(session, "Analyst", "p", "gpt-4o-mini")
        updated = await update_agent(session, agent.id, {
            "name": "Senior Analyst",
            "model": None,
            "id": "hijacked",
        })
        assert updated.id == agent.id
        assert updated.name == "Senior Analyst"
        assert updated.model == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_update_nonexistent_returns_none(self, session):
        assert await update_agent(session, "nonexistent-id", {"name": "x"}) is None

    @pytest.mark.asyncio
    async def test_delete(self, session):
        agent = await create_agent(session, "Analyst", "p", "gpt-4o-mini")
        assert await delete_agent(session, agent.id) is True
        assert await get_agent(session, agent.id) is None
        assert await delete_agent(session, agent.id) is False


class TestResourceService:
    @pytest.mark.asyncio
    async def test_create_records_size(self, session):
        resource = await create_resource(session, "Notes", "héllo", resource_type="md")
        assert resource.file_size == len("héllo".encode("utf-8"))
        assert resource.type == "md"

    @pytest.mark.asyncio
    async def test_to_ref(self, session):
        resource = await create_resource(session, "Notes", "body")
        ref = resource.to_ref()
        assert ref.id == resource.id
        assert ref.title == "Notes"
        assert ref.content == "body"
        assert ref.type == "text"

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive(self, session):
        await create_resource(session, "Quarterly Report", "revenue figures")
        await create_resource(session, "Recipe", "flour and sugar", description="Baking")

        assert [r.title for r in await list_resources(session, "REPORT")] == ["Quarterly Report"]
        assert [r.title for r in await list_resources(session, "baking")] == ["Recipe"]
        assert [r.title for r in await list_resources(session, "sugar")] == ["Recipe"]
        assert len(await list_resources(session)) == 2
        assert len(await list_resources(session, "   ")) == 2

    @pytest.mark.asyncio
    async def test_update(self, session):
        resource = await create_resource(session, "Notes", "old")
        updated = await update_resource(session, resource.id, content="newer text")
        assert updated.content == "newer text"
        assert updated.file_size == len("newer text")
        assert updated.title == "Notes"

    @pytest.mark.asyncio
    async def test_update_nonexistent_returns_none(self, session):
        assert await update_resource(session, "nonexistent-id", title="x") is None

    @pytest.mark.asyncio
    async def test_delete(self, session):
        resource = await create_resource(session, "Notes", "body")
        assert await delete_resource(session, resource.id) is True
        assert await get_resource(session, resource.id) is None
        assert await delete_resource(session, resource.id) is False
