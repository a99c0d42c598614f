"""WebSocket API for terminal sessions"""

import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, Query

logger = logging.getLogger(__name__)


async def websocket_terminal_endpoint(
    websocket: WebSocket,
    session_id: Optional[str] = Query(None, alias="sessionId", description="Session to reattach"),
    cols: Optional[int] = Query(None, ge=1, le=1000, description="Initial terminal width"),
    rows: Optional[int] = Query(None, ge=1, le=1000, description="Initial terminal height"),
):
    """
    Terminal WebSocket endpoint.

    Connection Establishment:
    1. Client connects to /ws/terminal, optionally with ?sessionId=shell-xxx
       to reattach to a session it was given earlier
    2. Server resolves or creates the session and attaches a PTY
    3. Server sends {"type": "session", "sessionId": "...", "buffered": "..."}
       where the optional buffered field replays tmux history

    Client → Server Message Format:
        {"type": "input", "data": "..."}
        {"type": "resize", "cols": 120, "rows": 40}
        {"type": "command", "data": "echo hi"}
        {"type": "ping"} / {"type": "pong"}
        {"type": "exec", "id": "req-1", "command": "..."}

    Server → Client Message Format:
        {"type": "output", "data": "..."}
        {"type": "exit", "code": 0}
        {"type": "error", "message": "..."}
        {"type": "ping"} / {"type": "pong"}
        {"type": "exec-result", "id": "req-1", "stdout": "", "stderr": "", "error": null}
    """
    handler = websocket.app.state.protocol_handler
    await handler.serve(websocket, requested_id=session_id, cols=cols, rows=rows)


def create_router(ws_path: str) -> APIRouter:
    """Router with the terminal endpoint mounted at the configured path"""
    router = APIRouter(tags=["WebSocket"])
    router.add_api_websocket_route(ws_path, websocket_terminal_endpoint, name="terminal_websocket")
    return router
