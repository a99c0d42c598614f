"""Session registry and the attach/detach state machine.

This module provides centralized management of terminal sessions, handling:
- Session resolution (reconnect, recovery after restart, fresh creation)
- Attach/detach transitions with the single-writer invariant
- PTY event routing to the attached connection
- Grace-period destruction and heartbeat supervision via helpers

State machine:
    UNATTACHED --attach--> ATTACHED --detach--> UNATTACHED (grace running)
    UNATTACHED --grace elapsed--> DESTROYED
    ATTACHED   --PTY exited----> DESTROYED
"""

import asyncio
import logging
from typing import Dict, List, Optional

from ..config import SessionSettings
from ..enum import SessionState
from ..exception import CapacityError, ProcessError
from ..multiplexer.controller import TmuxController
from ..schema.protocol import ExitMessage, OutputMessage, SessionMessage
from ..schema.session import SessionInfo
from ..websocket.connection import ClientConnection, CLOSE_SUPERSEDED
from .heartbeat import HeartbeatMonitor
from .pty_bridge import PTYBridge, PTYProcess
from .reaper import GraceReaper
from .session import TerminalSession

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 5.0


class SessionRegistry:
    """
    Registry of terminal sessions keyed by session id.

    Architecture:
    - Created once by the application factory and stored in app.state
    - Runs entirely in the main event loop; every mutation completes between
      two awaits, so no locking is needed
    - Receives PTY events as the PTYListener of every process it spawns

    Invariant:
    - A session has at most one live PTY and at most one attached connection

    Attributes:
        controller: tmux controller
        bridge: PTY bridge
        settings: Session timing and limits
        sessions: session_id → TerminalSession
        heartbeat: Heartbeat monitor
        reaper: Grace reaper
    """

    def __init__(self, controller: TmuxController, bridge: PTYBridge, settings: SessionSettings):
        self.controller = controller
        self.bridge = bridge
        self.settings = settings
        self.sessions: Dict[str, TerminalSession] = {}
        self._pending = 0

        self.heartbeat = HeartbeatMonitor(settings.ping_interval)
        self.reaper = GraceReaper(settings.grace_period, self.destroy)

        logger.info(
            f"SessionRegistry initialized: grace_period={settings.grace_period}s, "
            f"ping_interval={settings.ping_interval}s, max_sessions={settings.max_sessions}"
        )

    def __len__(self) -> int:
        return len(self.sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self.sessions

    def get(self, session_id: str) -> Optional[TerminalSession]:
        return self.sessions.get(session_id)

    def snapshot(self) -> List[SessionInfo]:
        return [session.to_info() for session in self.sessions.values()]

    # ==================== Resolution ====================

    async def resolve(self, requested_id: Optional[str], cols: int, rows: int) -> TerminalSession:
        """
        Find or create the session for a new connection.

        Steps:
        1. Requested id in the registry → reuse it (normal reconnect)
        2. Requested id unknown, but it follows the naming convention and its
           tmux session still exists → rehydrate a registry entry (recovery
           after a broker restart)
        3. Otherwise → create a new tmux session under a new name

        Args:
            requested_id: sessionId supplied by the client, if any
            cols: Initial width for a new session
            rows: Initial height for a new session

        Returns:
            Registered TerminalSession

        Raises:
            CapacityError: If a new entry would exceed max_sessions
            ProcessError: If the tmux session could not be created
        """
        if requested_id:
            existing = self.sessions.get(requested_id)
            if existing is not None:
                logger.info(f"[SessionRegistry] Reconnecting: session_id={requested_id}")
                return existing

            if self.controller.is_managed(requested_id):
                self._check_capacity()
                self._pending += 1
                try:
                    if await self.controller.exists(requested_id):
                        # Another connection may have rehydrated it while we awaited
                        existing = self.sessions.get(requested_id)
                        if existing is not None:
                            return existing

                        session = TerminalSession(requested_id, cols=cols, rows=rows)
                        self.sessions[requested_id] = session
                        logger.info(f"[SessionRegistry] Recovered tmux session: session_id={requested_id}")
                        return session
                finally:
                    self._pending -= 1

            logger.info(
                f"[SessionRegistry] Requested session is gone, creating a new one: "
                f"requested={requested_id}"
            )

        self._check_capacity()

        name = self.controller.generate_name()
        self._pending += 1
        try:
            if not await self.controller.create(name, cols, rows):
                raise ProcessError("Failed to start terminal")

            session = TerminalSession(name, cols=cols, rows=rows, created=True)
            self.sessions[name] = session
        finally:
            self._pending -= 1

        logger.info(f"[SessionRegistry] Created session: session_id={name}")
        return session

    def _check_capacity(self) -> None:
        # Resolutions still awaiting tmux hold a slot
        if len(self.sessions) + self._pending >= self.settings.max_sessions:
            logger.warning(
                f"[SessionRegistry] Session limit reached ({self.settings.max_sessions})"
            )
            raise CapacityError(
                f"Too many terminal sessions (limit {self.settings.max_sessions})"
            )

    # ==================== Attach / Detach ====================

    async def attach(
        self,
        session: TerminalSession,
        connection: ClientConnection,
        cols: int,
        rows: int,
    ) -> None:
        """
        Attach a connection to a session.

        Steps:
        1. Cancel any pending grace timer
        2. Close a different connection that is still attached
        3. Kill the existing PTY (the tmux session survives)
        4. Capture the pane history for replay
        5. Spawn a new PTY attached to the tmux session
        6. Send the session frame, carrying the history as `buffered`
        7. Start the heartbeat

        Raises:
            ProcessError: If the session is gone or the PTY could not be spawned
        """
        if session.state == SessionState.DESTROYED:
            raise ProcessError("Terminal session no longer exists")

        self.reaper.cancel(session)

        previous = session.connection
        if previous is not None and previous is not connection:
            logger.info(
                f"[SessionRegistry] Replacing connection {previous.connection_id} "
                f"with {connection.connection_id}: session_id={session.session_id}"
            )
            previous.superseded = True
            previous.close_soon(CLOSE_SUPERSEDED, "Attached elsewhere")

        self.heartbeat.stop(session)
        if session.pty is not None:
            session.pty.kill()
            session.pty = None

        session.connection = connection
        session.cols, session.rows = cols, rows

        # Read before attaching so the history cannot interleave with live output
        buffered = None
        if self.settings.replay_lines > 0:
            buffered = await self.controller.capture(session.session_id, self.settings.replay_lines)

        process = await self.bridge.spawn(session.session_id, cols, rows, self)

        if session.connection is not connection or session.state == SessionState.DESTROYED:
            # Superseded or destroyed while spawning
            if process is not None:
                process.kill()
            return

        if process is None:
            session.connection = None
            session.state = SessionState.UNATTACHED
            self.reaper.schedule(session)
            raise ProcessError("Failed to start terminal")

        session.pty = process
        session.state = SessionState.ATTACHED
        session.attach_count += 1

        connection.send(SessionMessage(session_id=session.session_id, buffered=buffered))
        self.heartbeat.start(session)

        logger.info(
            f"[SessionRegistry] Attached: session_id={session.session_id}, "
            f"connection={connection.connection_id}, pid={process.pid}"
        )

    def detach(self, session: TerminalSession, connection: ClientConnection) -> None:
        """
        Detach a connection that went away.

        No-op unless `connection` is still the session's current connection
        (a superseded connection closing late must not detach its successor).
        The tmux session survives; a grace timer decides its fate.
        """
        if session.connection is not connection or session.state == SessionState.DESTROYED:
            return

        self.heartbeat.stop(session)
        session.connection = None

        if session.pty is not None:
            session.pty.kill()
            session.pty = None

        session.state = SessionState.UNATTACHED
        self.reaper.schedule(session)

        logger.info(
            f"[SessionRegistry] Detached: session_id={session.session_id}, "
            f"connection={connection.connection_id}"
        )

    async def destroy(self, session: TerminalSession) -> None:
        """
        Destroy a session: kill its tmux session and remove the entry.

        Safe to call more than once.
        """
        if session.state == SessionState.DESTROYED:
            return

        self._release(session)

        connection = session.connection
        session.connection = None
        if connection is not None:
            connection.close_soon()

        await self.controller.kill(session.session_id)
        logger.info(f"[SessionRegistry] Destroyed: session_id={session.session_id}")

    async def discard(self, session: TerminalSession) -> None:
        """
        Clean up after a failed first attach.

        A tmux session this broker just created is destroyed. A rehydrated
        entry is only unregistered: its tmux session predates the failure
        and a later connection may recover it again.
        """
        if session.attach_count > 0 or session.state == SessionState.DESTROYED:
            return

        if session.created:
            await self.destroy(session)
        else:
            self._release(session)
            logger.info(
                f"[SessionRegistry] Dropped recovered entry, tmux session kept: "
                f"session_id={session.session_id}"
            )

    def _release(self, session: TerminalSession) -> None:
        """Mark destroyed, stop timers, kill the PTY and unregister"""
        session.state = SessionState.DESTROYED
        if self.sessions.get(session.session_id) is session:
            del self.sessions[session.session_id]

        self.heartbeat.stop(session)
        self.reaper.cancel(session)

        if session.pty is not None:
            session.pty.kill()
            session.pty = None

    # ==================== Client Input ====================

    def touch(self, session: TerminalSession, connection: ClientConnection) -> None:
        """Record that the connection is alive (any inbound frame)"""
        if session.connection is connection:
            session.alive = True

    async def write(self, session: TerminalSession, connection: ClientConnection, data: str) -> bool:
        """Write input to the session's PTY on behalf of its current connection"""
        if session.connection is not connection or session.pty is None:
            return False
        try:
            await session.pty.write(data)
            return True
        except (RuntimeError, OSError) as e:
            logger.warning(f"[SessionRegistry] Write failed: session_id={session.session_id}: {e}")
            return False

    async def resize(self, session: TerminalSession, connection: ClientConnection, cols: int, rows: int) -> bool:
        """Resize the session's PTY on behalf of its current connection"""
        if session.connection is not connection or session.pty is None:
            return False
        session.cols, session.rows = cols, rows
        try:
            await session.pty.resize(cols, rows)
            return True
        except (RuntimeError, OSError) as e:
            logger.warning(f"[SessionRegistry] Resize failed: session_id={session.session_id}: {e}")
            return False

    # ==================== PTY Events ====================

    def pty_output(self, process: PTYProcess, data: str) -> None:
        session = self.sessions.get(process.session_id)
        if session is None or session.pty is not process:
            return
        if session.connection is not None:
            session.connection.send(OutputMessage(data=data))

    def pty_exited(self, process: PTYProcess, code: Optional[int]) -> None:
        """
        The attaching process ended on its own (shell exited or tmux session
        killed): notify the client, close the connection, drop the entry.
        """
        session = self.sessions.get(process.session_id)
        if session is None or session.pty is not process:
            return

        logger.info(
            f"[SessionRegistry] Terminal exited: session_id={session.session_id}, code={code}"
        )

        session.pty = None
        self._release(session)

        connection = session.connection
        session.connection = None
        if connection is not None:
            connection.send(ExitMessage(code=code))
            connection.close_soon()

    # ==================== Shutdown ====================

    async def shutdown(self) -> None:
        """
        Stop all timers and PTYs and close all connections.

        tmux sessions are left running so clients can recover them after
        the broker restarts.
        """
        if not self.sessions:
            logger.debug("[SessionRegistry] No sessions to shut down")
            return

        logger.info(f"[SessionRegistry] Shutting down {len(self.sessions)} sessions")

        processes = []
        for session in list(self.sessions.values()):
            self.heartbeat.stop(session)
            self.reaper.cancel(session)
            if session.pty is not None:
                processes.append(session.pty)
                session.pty.kill()
                session.pty = None
            if session.connection is not None:
                session.connection.close_soon(1001, "Server shutting down")
                session.connection = None
            session.state = SessionState.UNATTACHED

        self.sessions.clear()

        if processes:
            try:
                await asyncio.wait_for(
                    asyncio.gather(*(p.wait_closed() for p in processes), return_exceptions=True),
                    timeout=SHUTDOWN_TIMEOUT,
                )
            except asyncio.TimeoutError:
                logger.warning("[SessionRegistry] Timed out waiting for PTYs to close")

        logger.info("[SessionRegistry] All sessions shut down")
