"""
Unit tests for the terminal WebSocket wire protocol.

Tests cover:
- Parsing of every inbound frame type
- Rejection of malformed frames with ProtocolError
- Outbound serialization (field aliases, defaults)
"""

import json

import pytest

from shellport.backend.exception import ProtocolError
from shellport.backend.schema.protocol import (
    CommandFrame,
    ErrorMessage,
    ExecFrame,
    ExecResultMessage,
    ExitMessage,
    InputFrame,
    OutputMessage,
    PingFrame,
    PingMessage,
    PongFrame,
    ResizeFrame,
    SessionMessage,
    parse_inbound,
)


# =============================================================================
# Inbound Frames
# =============================================================================


class TestParseInbound:
    """Tests for parse_inbound."""

    def test_input(self):
        frame = parse_inbound('{"type": "input", "data": "ls\\r"}')
        assert isinstance(frame, InputFrame)
        assert frame.data == "ls\r"

    def test_resize(self):
        frame = parse_inbound('{"type": "resize", "cols": 120, "rows": 40}')
        assert isinstance(frame, ResizeFrame)
        assert (frame.cols, frame.rows) == (120, 40)

    def test_command(self):
        frame = parse_inbound('{"type": "command", "data": "echo hi"}')
        assert isinstance(frame, CommandFrame)
        assert frame.data == "echo hi"

    def test_ping_and_pong(self):
        assert isinstance(parse_inbound('{"type": "ping"}'), PingFrame)
        assert isinstance(parse_inbound('{"type": "pong"}'), PongFrame)

    def test_exec_with_string_and_numeric_id(self):
        frame = parse_inbound('{"type": "exec", "id": "req-1", "command": "pwd"}')
        assert isinstance(frame, ExecFrame)
        assert frame.id == "req-1"

        frame = parse_inbound('{"type": "exec", "id": 7, "command": "pwd"}')
        assert frame.id == 7

    def test_bytes_payload(self):
        frame = parse_inbound(b'{"type": "input", "data": "x"}')
        assert isinstance(frame, InputFrame)

    def test_unknown_fields_ignored(self):
        frame = parse_inbound('{"type": "input", "data": "x", "extra": 1}')
        assert frame.data == "x"

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        '"input"',
        '{"data": "x"}',
        '{"type": "launch"}',
        '{"type": "input"}',
        '{"type": "input", "data": 5}',
        '{"type": "resize", "cols": 80}',
        '{"type": "resize", "cols": 0, "rows": 24}',
        '{"type": "resize", "cols": "wide", "rows": 24}',
        '{"type": "exec", "id": "a", "command": ""}',
        '{"type": "exec", "command": "ls"}',
    ])
    def test_malformed_frames_rejected(self, raw):
        with pytest.raises(ProtocolError) as exc_info:
            parse_inbound(raw)
        assert exc_info.value.code == "PROTOCOL_ERROR"


# =============================================================================
# Outbound Frames
# =============================================================================


class TestOutboundMessages:
    """Tests for outbound frame serialization."""

    def test_session_uses_camel_case_id(self):
        payload = json.loads(SessionMessage(session_id="shell-abc").to_json())
        assert payload == {"type": "session", "sessionId": "shell-abc"}

    def test_session_carries_buffered_history(self):
        payload = json.loads(SessionMessage(session_id="shell-abc", buffered="READY\r\n").to_json())
        assert payload == {"type": "session", "sessionId": "shell-abc", "buffered": "READY\r\n"}

    def test_output(self):
        payload = json.loads(OutputMessage(data="hello").to_json())
        assert payload == {"type": "output", "data": "hello"}

    def test_exit_code_may_be_null(self):
        assert json.loads(ExitMessage(code=0).to_json()) == {"type": "exit", "code": 0}
        assert json.loads(ExitMessage().to_json()) == {"type": "exit", "code": None}

    def test_error(self):
        payload = json.loads(ErrorMessage(message="Failed to start terminal").to_json())
        assert payload["type"] == "error"
        assert payload["message"] == "Failed to start terminal"

    def test_ping(self):
        assert json.loads(PingMessage().to_json()) == {"type": "ping"}

    def test_exec_result_defaults(self):
        payload = json.loads(ExecResultMessage(id="r1", stdout="out").to_json())
        assert payload == {
            "type": "exec-result",
            "id": "r1",
            "stdout": "out",
            "stderr": "",
            "error": None,
        }
