"""Delayed destruction of abandoned sessions."""

import asyncio
import logging
from typing import Awaitable, Callable

from .session import TerminalSession

logger = logging.getLogger(__name__)


class GraceReaper:
    """
    One-shot grace timers for detached sessions.

    A timer scheduled on detach calls `expire(session)` after `grace_period`
    seconds unless a later attach cancels it first. Short outages (page
    reloads, brief connectivity loss) therefore never lose shell state.
    """

    def __init__(
        self,
        grace_period: float,
        expire: Callable[[TerminalSession], Awaitable[None]],
    ):
        self.grace_period = grace_period
        self._expire = expire

    def schedule(self, session: TerminalSession) -> None:
        self.cancel(session)
        session.grace_task = asyncio.create_task(self._expire_after(session))
        logger.debug(
            f"[GraceReaper] Scheduled in {self.grace_period}s: session_id={session.session_id}"
        )

    def cancel(self, session: TerminalSession) -> bool:
        """Cancel a pending timer. Returns True if one was pending."""
        task = session.grace_task
        session.grace_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return False
        task.cancel()
        logger.debug(f"[GraceReaper] Cancelled: session_id={session.session_id}")
        return True

    async def _expire_after(self, session: TerminalSession) -> None:
        await asyncio.sleep(self.grace_period)

        session.grace_task = None
        logger.info(
            f"[GraceReaper] Grace period elapsed, destroying: session_id={session.session_id}"
        )
        try:
            await self._expire(session)
        except Exception as e:
            logger.error(f"[GraceReaper] Failed to destroy {session.session_id}: {e}", exc_info=True)
