"""
Database connection management for AgentChain.

One async engine serves the conversation message log (conversations and
conversation_messages, appended to by every execution round) and the agent
and resource catalogs. Routes get short-lived sessions via get_session; live
conversation sessions write through SqlConversationStore on async_session.
DATABASE_URL selects the backend; a local SQLite file is the default.
"""

import os

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    "sqlite+aiosqlite:///./agentchain_dev.db",
)

# SQLite connections are used outside the thread that opened them
if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
else:
    connect_args = {}

engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    connect_args=connect_args,
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncSession:
    """Dependency that yields an async database session."""
    async with async_session() as session:
        yield session


async def init_db() -> None:
    """Create all tables. Used at application startup."""
    from models.conversation import Base
    import models.agent  # noqa: F401
    import models.resource  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine connection pool."""
    await engine.dispose()
