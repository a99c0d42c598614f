"""
Schema package for WebSocket frames and HTTP response models.
"""

from .response import (
    ErrorCode,
    ErrorDetail,
    SuccessResponse,
    ErrorResponse,
)
from .protocol import (
    InboundFrame,
    InputFrame,
    ResizeFrame,
    CommandFrame,
    PingFrame,
    PongFrame,
    ExecFrame,
    OutboundMessage,
    SessionMessage,
    OutputMessage,
    ExitMessage,
    ErrorMessage,
    PingMessage,
    PongMessage,
    ExecResultMessage,
    parse_inbound,
)
from .session import (
    MultiplexerSession,
    TmuxSessionOut,
    SessionInfo,
)

__all__ = [
    # Response schemas
    "ErrorCode",
    "ErrorDetail",
    "SuccessResponse",
    "ErrorResponse",
    # Wire protocol
    "InboundFrame",
    "InputFrame",
    "ResizeFrame",
    "CommandFrame",
    "PingFrame",
    "PongFrame",
    "ExecFrame",
    "OutboundMessage",
    "SessionMessage",
    "OutputMessage",
    "ExitMessage",
    "ErrorMessage",
    "PingMessage",
    "PongMessage",
    "ExecResultMessage",
    "parse_inbound",
    # Session schemas
    "MultiplexerSession",
    "TmuxSessionOut",
    "SessionInfo",
]
