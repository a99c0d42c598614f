"""Terminal session broker.

This package keeps browser terminals alive across disconnects by attaching
PTY processes to named tmux sessions. It handles session identity, PTY
lifecycle, reconnection/recovery and idle-session reclamation.

Components:
- SessionRegistry: Session map and attach/detach state machine
- TerminalSession: In-memory record of one session
- PTYBridge / PTYProcess: `tmux attach-session` processes on a PTY
- HeartbeatMonitor: Per-connection liveness probing
- GraceReaper: Delayed destruction of abandoned sessions
"""

from .heartbeat import HeartbeatMonitor
from .pty_bridge import PTYBridge, PTYProcess, PTYListener
from .reaper import GraceReaper
from .registry import SessionRegistry
from .session import TerminalSession

__all__ = [
    'SessionRegistry',
    'TerminalSession',
    'PTYBridge',
    'PTYProcess',
    'PTYListener',
    'HeartbeatMonitor',
    'GraceReaper',
]
