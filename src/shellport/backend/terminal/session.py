"""In-memory record of one terminal session."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from ..enum import SessionState
from ..schema.session import SessionInfo

if TYPE_CHECKING:
    from ..websocket.connection import ClientConnection
    from .pty_bridge import PTYProcess


@dataclass(eq=False)
class TerminalSession:
    """A browser terminal bound to a tmux session

    The tmux session named `session_id` is the durable part and may outlive
    this record (e.g. across a broker restart). The record owns at most one
    PTY and refers to at most one connection.

    Attributes:
        session_id: tmux session name, also used by the client to reattach
        state: Attach state
        pty: Live attaching process, exclusively owned
        connection: Currently attached connection (owned by the transport layer)
        alive: Heartbeat flag, cleared on each ping, set by any inbound frame
        ping_task: Heartbeat task while attached
        grace_task: Reaper task while unattached
        cols: Last known terminal width
        rows: Last known terminal height
        attach_count: Number of successful attaches
        created: True if this broker created the tmux session, False if it
            was rehydrated from a surviving one
        created_at: When the record was created (or rehydrated)
    """
    session_id: str
    state: SessionState = SessionState.UNATTACHED
    pty: Optional["PTYProcess"] = None
    connection: Optional["ClientConnection"] = None
    alive: bool = True
    ping_task: Optional[asyncio.Task] = None
    grace_task: Optional[asyncio.Task] = None
    cols: int = 80
    rows: int = 24
    attach_count: int = 0
    created: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def attached(self) -> bool:
        return self.state == SessionState.ATTACHED

    def to_info(self) -> SessionInfo:
        return SessionInfo(
            session_id=self.session_id,
            state=self.state,
            created_at=self.created_at,
            attach_count=self.attach_count,
            created=self.created,
            cols=self.cols,
            rows=self.rows,
            has_pty=self.pty is not None,
            has_connection=self.connection is not None,
            grace_pending=self.grace_task is not None and not self.grace_task.done(),
        )
