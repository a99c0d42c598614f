"""Enumeration types for backend"""
from enum import Enum


class SessionState(str, Enum):
    """Terminal session attach state

    UNATTACHED: tmux session exists, no client attached (grace timer may be running)
    ATTACHED: live PTY and connection
    DESTROYED: removed from the registry, tmux session killed or exited
    """
    UNATTACHED = "unattached"
    ATTACHED = "attached"
    DESTROYED = "destroyed"
