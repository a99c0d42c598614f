"""
Shared pytest fixtures for Shellport tests.

This module provides in-memory stand-ins for the two process-facing layers so
the session broker can be exercised without tmux or real PTYs:
- FakeController: tmux sessions kept in a set
- FakeBridge / FakePTY: attaching processes that echo input back as output
- FakeWebSocket: records frames sent through a ClientConnection
"""

import asyncio
import json
import os
import re
import secrets
from typing import Dict, List, Optional, Set

import pytest

from shellport.backend.config import (
    ExecSettings,
    MultiplexerSettings,
    SessionSettings,
    Settings,
)
from shellport.backend.terminal.registry import SessionRegistry


# =============================================================================
# tmux Controller Fake
# =============================================================================


class FakeController:
    """In-memory TmuxController with the same async interface."""

    def __init__(self, prefix: str = "shell"):
        self.prefix = prefix
        self.sessions: Set[str] = set()
        self.created: List[str] = []
        self.killed: List[str] = []
        self.fail_create = False
        self.create_delay = 0.0
        self.scrollback: Dict[str, str] = {}
        self._pattern = re.compile(rf"^{re.escape(prefix)}-[A-Za-z0-9_-]+$")

    def generate_name(self) -> str:
        return f"{self.prefix}-{secrets.token_urlsafe(12)}"

    def is_managed(self, name: Optional[str]) -> bool:
        return bool(name) and self._pattern.match(name) is not None

    async def exists(self, name: str) -> bool:
        return name in self.sessions

    async def create(self, name: str, cols: int, rows: int) -> bool:
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.fail_create:
            return False
        self.sessions.add(name)
        self.created.append(name)
        return True

    async def kill(self, name: str) -> None:
        self.killed.append(name)
        self.sessions.discard(name)

    async def capture(self, name: str, lines: int) -> Optional[str]:
        return self.scrollback.get(name)

    async def list_sessions(self):
        from shellport.backend.schema.session import MultiplexerSession
        return [MultiplexerSession(name=name, windows=1) for name in sorted(self.sessions)]


# =============================================================================
# PTY Fakes
# =============================================================================


class FakePTY:
    """Attaching process that echoes every write back as output."""

    _next_pid = 1000

    def __init__(self, session_id: str, listener, cols: int, rows: int):
        FakePTY._next_pid += 1
        self.pid = FakePTY._next_pid
        self.session_id = session_id
        self.listener = listener
        self.cols = cols
        self.rows = rows
        self.writes: List[str] = []
        self.killed = False
        self.running = True

    async def write(self, data: str) -> None:
        if not self.running:
            raise RuntimeError("PTY process is not running")
        self.writes.append(data)
        self.listener.pty_output(self, data)

    async def resize(self, cols: int, rows: int) -> None:
        self.cols, self.rows = cols, rows

    def kill(self) -> None:
        self.killed = True
        self.running = False

    async def wait_closed(self) -> None:
        return None

    def emit(self, data: str) -> None:
        """Simulate output produced inside tmux"""
        self.listener.pty_output(self, data)

    def exit(self, code: Optional[int] = 0) -> None:
        """Simulate the shell exiting"""
        self.running = False
        self.listener.pty_exited(self, code)


class FakeBridge:
    """PTYBridge stand-in handing out FakePTY processes."""

    def __init__(self):
        self.spawned: List[FakePTY] = []
        self.fail_spawn = False
        self.spawn_delay = 0.0

    async def spawn(self, session_id: str, cols: int, rows: int, listener) -> Optional[FakePTY]:
        if self.spawn_delay:
            await asyncio.sleep(self.spawn_delay)
        if self.fail_spawn:
            return None
        process = FakePTY(session_id, listener, cols, rows)
        self.spawned.append(process)
        return process

    def for_session(self, session_id: str) -> List[FakePTY]:
        return [p for p in self.spawned if p.session_id == session_id]


# =============================================================================
# WebSocket Fake
# =============================================================================


class FakeWebSocket:
    """Records text frames and close calls; receive() blocks until closed."""

    def __init__(self, fail_send: bool = False, send_delay: float = 0.0):
        self.sent: List[str] = []
        self.closed_with: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.accepted = False
        self.fail_send = fail_send
        self.send_delay = send_delay
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, text: str) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_send:
            raise RuntimeError("socket gone")
        self.sent.append(text)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed_with is None:
            self.closed_with = code
            self.close_reason = reason

    async def receive(self) -> Dict:
        return await self._incoming.get()

    def feed(self, payload) -> None:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self._incoming.put_nowait({"type": "websocket.receive", "text": text})

    def disconnect(self, code: int = 1000) -> None:
        self._incoming.put_nowait({"type": "websocket.disconnect", "code": code})

    @property
    def frames(self) -> List[Dict]:
        return [json.loads(text) for text in self.sent]

    def frames_of(self, frame_type: str) -> List[Dict]:
        return [f for f in self.frames if f["type"] == frame_type]


async def drain(rounds: int = 5) -> None:
    """Let queued tasks (writer loops, callbacks) run"""
    for _ in range(rounds):
        await asyncio.sleep(0.005)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_instance(tmp_path, monkeypatch):
    """Keep a developer's ~/.shellport config and SHELLPORT_* variables out of tests."""
    for name in list(os.environ):
        if name.startswith("SHELLPORT_"):
            monkeypatch.delenv(name)
    instance = tmp_path / "instance"
    monkeypatch.setenv("SHELLPORT_INSTANCE_PATH", str(instance))
    return instance


@pytest.fixture
def session_settings():
    """Short grace period so timing tests finish quickly; heartbeat effectively off."""
    return SessionSettings(
        ping_interval=30.0,
        grace_period=0.1,
        max_sessions=4,
        max_connections=8,
        max_pending_frames=16,
    )


@pytest.fixture
def settings(session_settings, tmp_path):
    """Full settings with test-friendly limits and a /bin/sh exec shell."""
    return Settings(
        session=session_settings,
        multiplexer=MultiplexerSettings(socket_name="shellport-test", working_directory=str(tmp_path)),
        exec=ExecSettings(shell="/bin/sh", timeout=2.0, max_concurrent=2),
    )


@pytest.fixture
def controller():
    return FakeController()


@pytest.fixture
def bridge():
    return FakeBridge()


@pytest.fixture
def registry(controller, bridge, session_settings):
    return SessionRegistry(controller, bridge, session_settings)
