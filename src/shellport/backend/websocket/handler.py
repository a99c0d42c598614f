"""Terminal WebSocket protocol handler.

Connects one WebSocket to the session registry:
1. Accept, enforce the connection limit
2. Resolve (reconnect / recover / create) and attach a session
3. Dispatch inbound frames until the client goes away
4. Detach (the tmux session survives for the grace period)

`exec` requests run outside the PTY and are answered only with
`exec-result` frames, never through the `output` stream.
"""

import asyncio
import logging
import os
import signal
from typing import List, Optional, Set, Tuple

from fastapi import WebSocket

from ..config import Settings
from ..exception import CapacityError, ProcessError, ProtocolError
from ..schema.protocol import (
    CommandFrame,
    ErrorMessage,
    ExecFrame,
    ExecResultMessage,
    InboundFrame,
    InputFrame,
    PingFrame,
    PongFrame,
    PongMessage,
    ResizeFrame,
    parse_inbound,
)
from ..terminal.registry import SessionRegistry
from ..terminal.session import TerminalSession
from .connection import (
    ClientConnection,
    CLOSE_INTERNAL_ERROR,
    CLOSE_TRY_AGAIN_LATER,
)

logger = logging.getLogger(__name__)

READ_CHUNK = 65536


async def _collect(stream: asyncio.StreamReader, chunks: List[bytes]) -> None:
    while True:
        chunk = await stream.read(READ_CHUNK)
        if not chunk:
            return
        chunks.append(chunk)


async def run_command(command: str, shell: str, timeout: float) -> Tuple[str, str, Optional[str]]:
    """
    Run a shell command to completion, independent of any PTY.

    Output is collected as it arrives, so a command that times out still
    returns whatever it printed before it was killed.

    Args:
        command: Command line passed to `shell -c`
        shell: Shell executable
        timeout: Seconds before the command (and its process group) is killed

    Returns:
        Tuple of (stdout, stderr, error); error is None on exit code 0
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            shell, "-c", command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        return "", "", f"Failed to run command: {e}"

    stdout: List[bytes] = []
    stderr: List[bytes] = []

    try:
        await asyncio.wait_for(
            asyncio.gather(
                _collect(proc.stdout, stdout),
                _collect(proc.stderr, stderr),
                proc.wait(),
            ),
            timeout=timeout,
        )
        error = None
        if proc.returncode != 0:
            error = f"Command failed with exit code {proc.returncode}"
    except asyncio.TimeoutError:
        _kill_process_group(proc.pid)
        await proc.wait()
        error = f"Command timed out after {timeout:g}s"
    except asyncio.CancelledError:
        _kill_process_group(proc.pid)
        raise

    return (
        b"".join(stdout).decode("utf-8", errors="replace"),
        b"".join(stderr).decode("utf-8", errors="replace"),
        error,
    )


def _kill_process_group(pid: int) -> None:
    try:
        os.killpg(pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass


class CommandExecutor:
    """
    Runs `exec` requests for one connection.

    At most `max_concurrent` commands run at once; results are sent as
    exec-result frames correlated by the request id. Outstanding commands
    are cancelled when the connection ends.
    """

    def __init__(self, connection: ClientConnection, shell: str, timeout: float, max_concurrent: int):
        self.connection = connection
        self.shell = shell
        self.timeout = timeout
        self._slots = asyncio.Semaphore(max_concurrent)
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, frame: ExecFrame) -> None:
        task = asyncio.create_task(self._execute(frame))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, frame: ExecFrame) -> None:
        async with self._slots:
            logger.debug(f"Exec started: id={frame.id}, connection={self.connection.connection_id}")
            stdout, stderr, error = await run_command(frame.command, self.shell, self.timeout)

        self.connection.send(ExecResultMessage(
            id=frame.id,
            stdout=stdout,
            stderr=stderr,
            error=error,
        ))

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()


class ProtocolHandler:
    """
    Serves terminal WebSocket connections.

    One instance per application (stored in app.state); it counts open
    connections to enforce `session.max_connections`.

    Attributes:
        registry: Session registry
        settings: Application settings
        active_connections: Number of connections currently served
    """

    def __init__(self, registry: SessionRegistry, settings: Settings):
        self.registry = registry
        self.settings = settings
        self.active_connections = 0

    async def serve(
        self,
        websocket: WebSocket,
        requested_id: Optional[str] = None,
        cols: Optional[int] = None,
        rows: Optional[int] = None,
    ) -> None:
        """
        Handle one WebSocket from accept to detach.

        Args:
            websocket: Incoming WebSocket (not yet accepted)
            requested_id: sessionId query parameter, for reattachment
            cols: Initial width (defaults to session.default_cols)
            rows: Initial height (defaults to session.default_rows)
        """
        session_settings = self.settings.session
        cols = cols or session_settings.default_cols
        rows = rows or session_settings.default_rows

        await websocket.accept()

        connection = ClientConnection(websocket, session_settings.max_pending_frames)
        connection.start()

        if self.active_connections >= session_settings.max_connections:
            logger.warning(f"Connection limit reached ({session_settings.max_connections}), rejecting")
            connection.send(ErrorMessage(message="Too many connections"))
            await connection.close(CLOSE_TRY_AGAIN_LATER, "Too many connections")
            await connection.shutdown()
            return

        self.active_connections += 1
        logger.info(
            f"Terminal WebSocket accepted: connection={connection.connection_id}, "
            f"requested_session={requested_id}, active={self.active_connections}"
        )

        try:
            await self._serve_connection(connection, requested_id, cols, rows)
        finally:
            self.active_connections -= 1
            await connection.shutdown()
            logger.info(f"Terminal WebSocket closed: connection={connection.connection_id}")

    async def _serve_connection(
        self,
        connection: ClientConnection,
        requested_id: Optional[str],
        cols: int,
        rows: int,
    ) -> None:
        try:
            session = await self.registry.resolve(requested_id, cols, rows)
        except CapacityError as e:
            connection.send(ErrorMessage(message=e.message))
            await connection.close(CLOSE_TRY_AGAIN_LATER, "Capacity exceeded")
            return
        except ProcessError as e:
            logger.error(f"Failed to create terminal session: {e.message}")
            connection.send(ErrorMessage(message=e.message))
            await connection.close(CLOSE_INTERNAL_ERROR, "Failed to start terminal")
            return

        try:
            await self.registry.attach(session, connection, cols, rows)
        except ProcessError as e:
            logger.error(f"Failed to attach session {session.session_id}: {e.message}")
            connection.send(ErrorMessage(message=e.message))
            await connection.close(CLOSE_INTERNAL_ERROR, "Failed to start terminal")
            await self.registry.discard(session)
            return

        executor = CommandExecutor(
            connection,
            shell=self.settings.exec.shell,
            timeout=self.settings.exec.timeout,
            max_concurrent=self.settings.exec.max_concurrent,
        )

        try:
            await connection.run(self._receive_loop(session, connection, executor))
        finally:
            executor.cancel_all()
            self.registry.detach(session, connection)

    async def _receive_loop(
        self,
        session: TerminalSession,
        connection: ClientConnection,
        executor: CommandExecutor,
    ) -> None:
        websocket = connection.websocket
        while True:
            message = await websocket.receive()

            if message.get("type") == "websocket.disconnect":
                logger.info(
                    f"Client disconnected: session_id={session.session_id}, "
                    f"connection={connection.connection_id}, code={message.get('code')}"
                )
                return

            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue

            self.registry.touch(session, connection)

            try:
                frame = parse_inbound(raw)
            except ProtocolError as e:
                logger.warning(
                    f"Dropping malformed frame: session_id={session.session_id}: {e.message}"
                )
                continue

            await self.dispatch(session, connection, executor, frame)

    async def dispatch(
        self,
        session: TerminalSession,
        connection: ClientConnection,
        executor: CommandExecutor,
        frame: InboundFrame,
    ) -> None:
        """Route one validated frame"""
        if isinstance(frame, InputFrame):
            await self.registry.write(session, connection, frame.data)

        elif isinstance(frame, CommandFrame):
            await self.registry.write(session, connection, frame.data + "\r")

        elif isinstance(frame, ResizeFrame):
            await self.registry.resize(session, connection, frame.cols, frame.rows)

        elif isinstance(frame, PingFrame):
            connection.send(PongMessage())

        elif isinstance(frame, PongFrame):
            # Liveness already recorded by touch()
            pass

        elif isinstance(frame, ExecFrame):
            executor.submit(frame)
