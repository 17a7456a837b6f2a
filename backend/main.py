"""
AgentChain — FastAPI application entrypoint.

Start the server:
    uvicorn main:app --reload --port 8000

API Overview:
    POST   /api/sessions                              — Open a session
    GET    /api/sessions/{id}                         — Session snapshot
    PUT    /api/sessions/{id}/input                   — Edit the current input
    POST   /api/sessions/{id}/resources               — Attach a resource
    POST   /api/sessions/{id}/agent                   — Select an agent
    POST   /api/sessions/{id}/execute                 — Start a round
    POST   /api/sessions/{id}/retry/{marker_id}       — Retry a failed round
    POST   /api/sessions/{id}/clear                   — Start over
    POST   /api/sessions/{id}/load/{conversation_id}  — Reopen a conversation
    POST   /api/sessions/{id}/save                    — Save the chain
    GET    /api/conversations/                        — Saved conversations
    GET    /api/agents/                               — Agent profiles (CRUD)
    GET    /api/resources/                            — Reference resources (CRUD)
    GET    /api/health                                — Health check
    WS     /ws/sessions/{id}                          — Live session updates
"""

import logging
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.agent_routes import agent_router
from api.conversation_routes import conversation_router
from api.resource_routes import resource_router
from api.routes import router
from api.websocket import ws_router
from database import init_db, close_db

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("agentchain")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown logic."""
    logger.info("AgentChain API starting up...")
    await init_db()
    logger.info("Database initialized.")
    yield
    await close_db()
    logger.info("AgentChain API shutting down...")


app = FastAPI(
    title="AgentChain API",
    description=(
        "Backend for chaining LLM agents over a conversation. Each agent's "
        "output becomes the next editable input; conversations are persisted "
        "as an append-only message log and reconstructed on reopen."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow all origins in development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount REST routes under /api prefix
app.include_router(router, prefix="/api")
app.include_router(conversation_router, prefix="/api")
app.include_router(agent_router, prefix="/api")
app.include_router(resource_router, prefix="/api")

# Mount WebSocket routes (no prefix, path is /ws/sessions/{session_id})
app.include_router(ws_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
