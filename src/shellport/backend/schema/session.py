"""Terminal session listing schemas"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from ..enum import SessionState


class MultiplexerSession(BaseModel):
    """One row of `tmux list-sessions`"""

    name: str = Field(..., description="tmux session name")
    windows: int = Field(0, description="Number of windows")
    created: Optional[datetime] = Field(None, description="Creation time reported by tmux")
    attached: bool = Field(False, description="Whether any tmux client is attached")


class TmuxSessionOut(MultiplexerSession):
    """tmux session annotated with broker state"""

    managed: bool = Field(False, description="Name follows the broker naming convention")
    registered: bool = Field(False, description="Session has an entry in the registry")


class SessionInfo(BaseModel):
    """Registry snapshot of one terminal session"""

    session_id: str
    state: SessionState
    created_at: datetime
    attach_count: int
    created: bool
    cols: int
    rows: int
    has_pty: bool
    has_connection: bool
    grace_pending: bool
