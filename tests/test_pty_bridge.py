"""
Tests for PTYBridge / PTYProcess with real pseudo-terminals.

The bridge always execs `<binary> [-L socket] attach-session -t =<id>`; pointing
`binary` at ordinary programs exercises fork, read, exit and kill handling
without tmux.
"""

import asyncio
import os

import pytest

from conftest import wait_until
from shellport.backend.config import MultiplexerSettings
from shellport.backend.terminal.pty_bridge import PTYBridge


class RecordingListener:
    def __init__(self):
        self.output = []
        self.exits = []

    def pty_output(self, process, data):
        self.output.append(data)

    def pty_exited(self, process, code):
        self.exits.append((process.session_id, code))

    @property
    def text(self) -> str:
        return "".join(self.output)


def make_bridge(binary: str, tmp_path, socket_name: str = "") -> PTYBridge:
    return PTYBridge(MultiplexerSettings(
        binary=binary,
        socket_name=socket_name,
        working_directory=str(tmp_path),
    ))


def test_attach_command(tmp_path):
    bridge = make_bridge("tmux", tmp_path, socket_name="sp")
    assert bridge.attach_command("shell-abc") == [
        "tmux", "-L", "sp", "attach-session", "-t", "=shell-abc",
    ]


@pytest.mark.asyncio
async def test_missing_binary_returns_none(tmp_path):
    bridge = make_bridge("shellport-no-such-binary", tmp_path)
    assert await bridge.spawn("shell-abc", 80, 24, RecordingListener()) is None


@pytest.mark.asyncio
async def test_output_and_exit_reach_listener(tmp_path):
    listener = RecordingListener()
    bridge = make_bridge("echo", tmp_path)

    process = await bridge.spawn("shell-abc", 80, 24, listener)
    assert process is not None

    await wait_until(lambda: listener.exits, timeout=5.0)

    assert "attach-session -t =shell-abc" in listener.text
    assert listener.exits == [("shell-abc", 0)]
    assert process.running is False
    assert process.exit_code == 0


@pytest.mark.asyncio
async def test_kill_suppresses_exit_event(tmp_path):
    listener = RecordingListener()
    bridge = make_bridge("yes", tmp_path)

    process = await bridge.spawn("shell-abc", 80, 24, listener)
    await wait_until(lambda: listener.output, timeout=5.0)

    process.kill()
    process.kill()
    await asyncio.wait_for(process.wait_closed(), timeout=5.0)

    assert listener.exits == []
    assert process.running is False
    with pytest.raises(ProcessLookupError):
        os.kill(process.pid, 0)


@pytest.mark.asyncio
async def test_write_after_exit_raises(tmp_path):
    listener = RecordingListener()
    bridge = make_bridge("echo", tmp_path)

    process = await bridge.spawn("shell-abc", 80, 24, listener)
    await wait_until(lambda: listener.exits, timeout=5.0)

    with pytest.raises(RuntimeError):
        await process.write("ls\r")
    with pytest.raises(RuntimeError):
        await process.resize(100, 30)
