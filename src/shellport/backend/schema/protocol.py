"""
Terminal WebSocket wire protocol.

Every frame is a JSON object tagged by its "type" field. Inbound frames are
validated at the boundary into a discriminated union; anything that does not
match one of the known shapes raises ProtocolError.

Client → Server:
    {"type": "input", "data": "ls\\r"}
    {"type": "resize", "cols": 120, "rows": 40}
    {"type": "command", "data": "echo hi"}
    {"type": "ping"}
    {"type": "pong"}
    {"type": "exec", "id": "req-1", "command": "tmux save-buffer -"}

Server → Client:
    {"type": "session", "sessionId": "shell-...", "buffered": "..."}
    {"type": "output", "data": "..."}
    {"type": "exit", "code": 0}
    {"type": "error", "message": "Failed to start terminal"}
    {"type": "ping"}
    {"type": "pong"}
    {"type": "exec-result", "id": "req-1", "stdout": "...", "stderr": "", "error": null}
"""

import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..exception import ProtocolError


# ==================== Inbound Frames ====================


class _Inbound(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class InputFrame(_Inbound):
    """Raw keystrokes for the PTY"""
    type: Literal["input"]
    data: str


class ResizeFrame(_Inbound):
    """Terminal size change"""
    type: Literal["resize"]
    cols: int = Field(..., ge=1, le=1000)
    rows: int = Field(..., ge=1, le=1000)


class CommandFrame(_Inbound):
    """A command line; a carriage return is appended before writing"""
    type: Literal["command"]
    data: str


class PingFrame(_Inbound):
    """Application-level keep-alive from the client, answered with pong"""
    type: Literal["ping"]


class PongFrame(_Inbound):
    """Answer to a server heartbeat ping"""
    type: Literal["pong"]


class ExecFrame(_Inbound):
    """Out-of-band command, answered by an exec-result with the same id"""
    type: Literal["exec"]
    id: Union[str, int]
    command: str = Field(..., min_length=1)


InboundFrame = Annotated[
    Union[InputFrame, ResizeFrame, CommandFrame, PingFrame, PongFrame, ExecFrame],
    Field(discriminator="type"),
]

_inbound_adapter = TypeAdapter(InboundFrame)


def parse_inbound(raw: str | bytes) -> InboundFrame:
    """Decode and validate one inbound frame

    Args:
        raw: Text (or UTF-8 bytes) of a WebSocket message

    Returns:
        The validated frame model

    Raises:
        ProtocolError: If the payload is not JSON, not an object, has an
            unknown type, or has missing/ill-typed fields
    """
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ProtocolError("Frame must be a JSON object")
    if "type" not in payload:
        raise ProtocolError("Frame missing 'type'")

    try:
        return _inbound_adapter.validate_python(payload)
    except ValidationError as e:
        raise ProtocolError(
            f"Invalid '{payload.get('type')}' frame: {e.error_count()} validation error(s)"
        ) from e


# ==================== Outbound Frames ====================


class _Outbound(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class SessionMessage(_Outbound):
    """First frame after attach; `buffered` replays tmux history when present"""
    type: Literal["session"] = "session"
    session_id: str = Field(..., alias="sessionId")
    buffered: Optional[str] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class OutputMessage(_Outbound):
    type: Literal["output"] = "output"
    data: str


class ExitMessage(_Outbound):
    type: Literal["exit"] = "exit"
    code: Optional[int] = None


class ErrorMessage(_Outbound):
    type: Literal["error"] = "error"
    message: str


class PingMessage(_Outbound):
    type: Literal["ping"] = "ping"


class PongMessage(_Outbound):
    type: Literal["pong"] = "pong"


class ExecResultMessage(_Outbound):
    type: Literal["exec-result"] = "exec-result"
    id: Union[str, int]
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None


OutboundMessage = Union[
    SessionMessage,
    OutputMessage,
    ExitMessage,
    ErrorMessage,
    PingMessage,
    PongMessage,
    ExecResultMessage,
]
