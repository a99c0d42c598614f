"""Per-connection liveness probing."""

import asyncio
import logging

from ..schema.protocol import PingMessage
from ..websocket.connection import ClientConnection
from .session import TerminalSession

logger = logging.getLogger(__name__)


class HeartbeatMonitor:
    """
    Detects silently dead connections (network loss, suspended mobile tabs).

    Every `interval` seconds: if nothing arrived from the client since the
    previous ping, the connection is terminated; otherwise the session's
    `alive` flag is cleared and a ping frame is sent. Any inbound frame sets
    the flag again (see SessionRegistry.touch).
    """

    def __init__(self, interval: float):
        self.interval = interval

    def start(self, session: TerminalSession) -> None:
        """Start probing the session's current connection (restarts if running)"""
        self.stop(session)
        session.alive = True
        session.ping_task = asyncio.create_task(self._supervise(session, session.connection))

    def stop(self, session: TerminalSession) -> None:
        task = session.ping_task
        session.ping_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _supervise(self, session: TerminalSession, connection: ClientConnection) -> None:
        try:
            while session.connection is connection:
                await asyncio.sleep(self.interval)

                if session.connection is not connection:
                    return

                if not session.alive:
                    logger.warning(
                        f"[Heartbeat] No response within {self.interval}s, terminating: "
                        f"session_id={session.session_id}, connection={connection.connection_id}"
                    )
                    await connection.terminate()
                    return

                session.alive = False
                connection.send(PingMessage())
        except asyncio.CancelledError:
            logger.debug(f"[Heartbeat] Stopped: session_id={session.session_id}")
            raise
