"""
WebSocket endpoint for live session updates.

Clients connect to /ws/sessions/{session_id} and receive JSON events whenever
the session's node chain or busy flag changes.

Event format:
    {"event": "connected", "session_id": "...", "snapshot": {...}}
    {"event": "nodes_changed", "session_id": "...", "snapshot": {...}}
    {"event": "error", "message": "..."}
"""

import asyncio
import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from api.session_store import session_store


ws_router = APIRouter()

POLL_INTERVAL = 0.5


@ws_router.websocket("/ws/sessions/{session_id}")
async def session_websocket(websocket: WebSocket, session_id: str):
    """
    Live session updates.

    On connect: sends the current snapshot immediately.
    While open: polls the session and pushes the snapshot whenever it changes.
    Closes when the session is removed.
    """
    await websocket.accept()

    try:
        chain = session_store.get(session_id)
        if chain is None:
            await websocket.send_text(
                json.dumps({"event": "error", "message": f"Session '{session_id}' not found."})
            )
            await websocket.close()
            return

        last_snapshot = chain.snapshot()
        await websocket.send_text(
            json.dumps({"event": "connected", "session_id": session_id, "snapshot": last_snapshot})
        )

        while True:
            await asyncio.sleep(POLL_INTERVAL)
            chain = session_store.get(session_id)
            if chain is None:
                await websocket.send_text(
                    json.dumps({"event": "error", "message": f"Session '{session_id}' was closed."})
                )
                break

            snapshot = chain.snapshot()
            if snapshot != last_snapshot:
                await websocket.send_text(
                    json.dumps({"event": "nodes_changed", "session_id": session_id, "snapshot": snapshot})
                )
                last_snapshot = snapshot

    except WebSocketDisconnect:
        pass
