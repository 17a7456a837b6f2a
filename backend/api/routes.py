"""
REST API routes for live conversation sessions.

Endpoints:
    GET    /api/health                                   — Health check
    POST   /api/sessions                                 — Open a session
    GET    /api/sessions/{id}                            — Session snapshot
    DELETE /api/sessions/{id}                            — Close a session
    PUT    /api/sessions/{id}/input                      — Edit the current input
    POST   /api/sessions/{id}/resources                  — Attach a stored resource
    DELETE /api/sessions/{id}/resources/{resource_id}    — Detach a resource
    POST   /api/sessions/{id}/agent                      — Select the agent
    POST   /api/sessions/{id}/execute                    — Start an execution round
    POST   /api/sessions/{id}/retry/{marker_id}          — Retry a failed round
    POST   /api/sessions/{id}/clear                      — Start over
    POST   /api/sessions/{id}/load/{conversation_id}     — Reopen a saved conversation
    POST   /api/sessions/{id}/save                       — Save the chain
"""

import logging
from contextlib import contextmanager
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from agents.executor import LLMAgentExecutor
from api.session_store import session_store
from database import async_session, get_session
from errors import ConversationNotFound, PersistenceFailure, PreconditionViolation
from services.agent_service import get_agent
from services.execution import PendingRound
from services.persistence import SqlConversationStore
from services.resource_service import get_resource
from services.session import ConversationSession
from state import AgentRef


logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request / Response Models
# ---------------------------------------------------------------------------

class InputEditRequest(BaseModel):
    content: str = Field(
        ...,
        max_length=100_000,
        description="New text of the current input node.",
    )


class AttachResourceRequest(BaseModel):
    resource_id: str = Field(..., min_length=1)


class SelectAgentRequest(BaseModel):
    agent_id: Optional[str] = Field(
        default=None,
        description="Agent to use for the next execution; null deselects.",
    )


class ExecuteRequest(BaseModel):
    agent_id: Optional[str] = Field(
        default=None,
        description="Agent to run. Falls back to the session's selected agent.",
    )


class SaveRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)


class SessionResponse(BaseModel):
    session_id: str
    conversation_id: Optional[str] = None
    busy: bool
    selected_agent: Optional[dict] = None
    nodes: List[dict]
    persistence_errors: List[str] = []


class RoundAcceptedResponse(BaseModel):
    session_id: str
    marker_id: str
    status: str
    message: str


class SaveResponse(BaseModel):
    session_id: str
    conversation_id: str


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "AgentChain API"}


@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def open_session():
    """Open a new session with a single blank input node."""
    chain = session_store.add(_build_session())
    return chain.snapshot()


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session_state(session_id: str):
    """Current node chain and execution state of a session."""
    return _get_chain(session_id).snapshot()


@router.delete("/sessions/{session_id}", status_code=204)
async def close_session(session_id: str):
    """Forget a live session. Persisted conversations are kept."""
    _get_chain(session_id)
    session_store.delete(session_id)


@router.put("/sessions/{session_id}/input", response_model=SessionResponse)
async def edit_input(session_id: str, request: InputEditRequest):
    chain = _get_chain(session_id)
    with _precondition_guard():
        chain.edit_current_input(request.content)
    return chain.snapshot()


@router.post("/sessions/{session_id}/resources", response_model=SessionResponse)
async def attach_resource(
    session_id: str,
    request: AttachResourceRequest,
    session: AsyncSession = Depends(get_session),
):
    """Attach a stored resource to the current input node."""
    chain = _get_chain(session_id)
    resource = await get_resource(session, request.resource_id)
    if resource is None:
        raise HTTPException(
            status_code=404, detail=f"Resource '{request.resource_id}' not found."
        )
    with _precondition_guard():
        chain.attach_resource(resource.to_ref())
    return chain.snapshot()


@router.delete("/sessions/{session_id}/resources/{resource_id}", response_model=SessionResponse)
async def detach_resource(session_id: str, resource_id: str):
    chain = _get_chain(session_id)
    with _precondition_guard():
        chain.detach_resource(resource_id)
    return chain.snapshot()


@router.post("/sessions/{session_id}/agent", response_model=SessionResponse)
async def select_agent(
    session_id: str,
    request: SelectAgentRequest,
    session: AsyncSession = Depends(get_session),
):
    chain = _get_chain(session_id)
    agent = await _agent_ref(session, request.agent_id) if request.agent_id else None
    with _precondition_guard():
        chain.select_agent(agent)
    return chain.snapshot()


@router.post(
    "/sessions/{session_id}/execute",
    response_model=RoundAcceptedResponse,
    status_code=202,
)
async def execute(
    session_id: str,
    request: ExecuteRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
):
    """
    Start an execution round on the current input.

    The marker node is created before this returns; the agent call runs in the
    background. Poll GET /api/sessions/{id} or connect to /ws/sessions/{id}.
    """
    chain = _get_chain(session_id)
    agent = await _agent_ref(session, request.agent_id) if request.agent_id else None

    with _precondition_guard():
        pending = chain.begin_execute(agent)

    background_tasks.add_task(_run_round, chain, pending)
    return RoundAcceptedResponse(
        session_id=session_id,
        marker_id=pending.marker_id,
        status="running",
        message=f"Round started with agent '{pending.agent.label}'.",
    )


@router.post(
    "/sessions/{session_id}/retry/{marker_id}",
    response_model=RoundAcceptedResponse,
    status_code=202,
)
async def retry(session_id: str, marker_id: str, background_tasks: BackgroundTasks):
    """Re-run a failed round with the agent and input it originally used."""
    chain = _get_chain(session_id)
    with _precondition_guard():
        pending = chain.begin_retry(marker_id)

    background_tasks.add_task(_run_round, chain, pending)
    return RoundAcceptedResponse(
        session_id=session_id,
        marker_id=marker_id,
        status="running",
        message=f"Retrying with agent '{pending.agent.label}'.",
    )


@router.post("/sessions/{session_id}/clear", response_model=SessionResponse)
async def clear(session_id: str):
    chain = _get_chain(session_id)
    chain.clear()
    return chain.snapshot()


@router.post("/sessions/{session_id}/load/{conversation_id}", response_model=SessionResponse)
async def load_conversation(session_id: str, conversation_id: str):
    """Replace the session's chain with a reconstructed saved conversation."""
    chain = _get_chain(session_id)
    try:
        with _precondition_guard():
            await chain.load_conversation(conversation_id)
    except ConversationNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except PersistenceFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return chain.snapshot()


@router.post("/sessions/{session_id}/save", response_model=SaveResponse)
async def save(session_id: str, request: SaveRequest):
    chain = _get_chain(session_id)
    try:
        with _precondition_guard():
            conversation_id = await chain.save(request.title)
    except PersistenceFailure as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return SaveResponse(session_id=session_id, conversation_id=conversation_id)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _build_session() -> ConversationSession:
    return ConversationSession(
        executor=LLMAgentExecutor(async_session),
        store=SqlConversationStore(async_session),
    )


def _get_chain(session_id: str) -> ConversationSession:
    chain = session_store.get(session_id)
    if chain is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found.")
    return chain


async def _agent_ref(session: AsyncSession, agent_id: str) -> AgentRef:
    profile = await get_agent(session, agent_id)
    if profile is None:
        raise HTTPException(status_code=404, detail=f"Agent '{agent_id}' not found.")
    return AgentRef(id=profile.id, name=profile.name)


@contextmanager
def _precondition_guard():
    """Map PreconditionViolation to HTTP 409."""
    try:
        yield
    except PreconditionViolation as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


async def _run_round(chain: ConversationSession, pending: PendingRound) -> None:
    """Background task that awaits the agent and applies the round's outcome."""
    result = await chain.run_round(pending)
    if result.error is not None:
        logger.info("Round ended with error: session=%s marker=%s", chain.id, pending.marker_id)
    for failure in result.persistence_errors:
        logger.warning("Round not fully persisted: session=%s error=%s", chain.id, failure)
