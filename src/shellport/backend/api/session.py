"""Terminal session listing endpoints"""

import logging
from typing import List

from fastapi import APIRouter, Request

from ..exception import NotFoundError
from ..schema.response import SuccessResponse
from ..schema.session import SessionInfo, TmuxSessionOut

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Terminal Sessions"])


@router.get("/tmux-sessions", response_model=SuccessResponse[List[TmuxSessionOut]])
async def list_tmux_sessions(request: Request):
    """List tmux sessions on the broker's tmux server

    Each entry is annotated with whether its name follows the broker naming
    convention and whether it currently has a registry entry. An absent tmux
    server yields an empty list.
    """
    registry = request.app.state.registry
    controller = registry.controller

    sessions = await controller.list_sessions()
    data = [
        TmuxSessionOut(
            **s.model_dump(),
            managed=controller.is_managed(s.name),
            registered=s.name in registry,
        )
        for s in sessions
    ]
    return SuccessResponse(data=data)


@router.get("/terminal/sessions", response_model=SuccessResponse[List[SessionInfo]])
async def list_terminal_sessions(request: Request):
    """Snapshot of the in-memory session registry"""
    registry = request.app.state.registry
    return SuccessResponse(data=registry.snapshot())


@router.get("/terminal/sessions/{session_id}", response_model=SuccessResponse[SessionInfo])
async def get_terminal_session(session_id: str, request: Request):
    """Registry entry for one session

    Raises:
        NotFoundError: If the session has no registry entry
    """
    session = request.app.state.registry.get(session_id)
    if session is None:
        raise NotFoundError(f"Terminal session not found: {session_id}")
    return SuccessResponse(data=session.to_info())
