"""Client connection wrapper for the terminal WebSocket.

Outbound frames are queued and delivered by a single writer task, so
producers (PTY output, heartbeat, exec results) never await the socket and a
slow client cannot grow memory without bound: once the queue holds
`max_pending_frames` frames, the oldest `output` frame is dropped.

Architecture:
    PTY read task / heartbeat / exec task
        ↓ connection.send(frame)          (sync, never blocks)
    bounded deque
        ↓ _write_loop()
        ↓ websocket.send_text(json)
    Browser
"""

import asyncio
import logging
import uuid
from collections import deque
from typing import Coroutine, Deque, Optional, Union

from fastapi import WebSocket

from ..schema.protocol import OutboundMessage, OutputMessage

logger = logging.getLogger(__name__)

CLOSE_TIMEOUT = 1.0

# Close codes
CLOSE_NORMAL = 1000
CLOSE_INTERNAL_ERROR = 1011
CLOSE_TRY_AGAIN_LATER = 1013
CLOSE_SUPERSEDED = 4000
CLOSE_HEARTBEAT_TIMEOUT = 4408


class _CloseRequest:
    """Queue sentinel: close the socket after everything queued before it"""

    def __init__(self, code: int, reason: str):
        self.code = code
        self.reason = reason


class ClientConnection:
    """
    One accepted terminal WebSocket.

    Lifecycle:
    1. start() - begin the writer task
    2. run(receive_loop) - run the reader until disconnect, close or terminate
    3. close_soon() / close() - flush queued frames, then close the socket
       terminate() - close immediately, discarding queued frames

    Attributes:
        websocket: Underlying FastAPI WebSocket (owned by the transport layer)
        connection_id: Short id used in logs
        superseded: Set when another connection took over the session
        terminated: Set when the heartbeat gave up on this connection
        dropped_frames: Number of output frames dropped because the queue was full
    """

    def __init__(self, websocket: WebSocket, max_pending_frames: int = 2048):
        self.websocket = websocket
        self.connection_id = uuid.uuid4().hex[:8]
        self.max_pending_frames = max_pending_frames

        self.closing = False
        self.superseded = False
        self.terminated = False
        self.dropped_frames = 0

        self._queue: Deque[Union[OutboundMessage, _CloseRequest]] = deque()
        self._wakeup = asyncio.Event()
        self._writer_task: Optional[asyncio.Task] = None
        self._reader_task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"<ClientConnection {self.connection_id}>"

    @property
    def pending(self) -> int:
        return len(self._queue)

    def start(self) -> None:
        """Start the writer task"""
        self._writer_task = asyncio.create_task(self._write_loop())

    # ==================== Sending ====================

    def send(self, message: OutboundMessage) -> bool:
        """
        Queue a frame for delivery.

        Args:
            message: Outbound frame

        Returns:
            False if the connection is closing and the frame was discarded
        """
        if self.closing:
            return False

        if len(self._queue) >= self.max_pending_frames:
            self._drop_oldest()

        self._queue.append(message)
        self._wakeup.set()
        return True

    def _drop_oldest(self) -> None:
        for index, queued in enumerate(self._queue):
            if isinstance(queued, OutputMessage):
                del self._queue[index]
                break
        else:
            self._queue.popleft()

        self.dropped_frames += 1
        if self.dropped_frames == 1 or self.dropped_frames % 1000 == 0:
            logger.warning(
                f"Connection {self.connection_id} is slow, dropped {self.dropped_frames} frame(s)"
            )

    async def _write_loop(self) -> None:
        """Deliver queued frames in order until a close request or a send failure"""
        try:
            while True:
                while not self._queue:
                    self._wakeup.clear()
                    await self._wakeup.wait()

                item = self._queue.popleft()

                if isinstance(item, _CloseRequest):
                    await self._close_socket(item.code, item.reason)
                    self._cancel_reader()
                    return

                try:
                    await self.websocket.send_text(item.to_json())
                except Exception as e:
                    logger.debug(f"Send failed on connection {self.connection_id}: {e}")
                    self.closing = True
                    self._queue.clear()
                    self._cancel_reader()
                    return
        except asyncio.CancelledError:
            logger.debug(f"Writer task cancelled for connection {self.connection_id}")
            raise

    # ==================== Closing ====================

    def close_soon(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        """Close after the frames already queued have been sent"""
        if self.closing:
            return
        self.closing = True
        self._queue.append(_CloseRequest(code, reason))
        self._wakeup.set()

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        """Close after flushing, waiting briefly for the writer to finish"""
        self.close_soon(code, reason)
        if self._writer_task is None or self._writer_task.done():
            await self._close_socket(code, reason)
            self._cancel_reader()
            return
        done, _ = await asyncio.wait({self._writer_task}, timeout=CLOSE_TIMEOUT)
        if not done:
            logger.warning(f"Flush timed out, terminating connection {self.connection_id}")
            await self.terminate(code)

    async def terminate(self, code: int = CLOSE_HEARTBEAT_TIMEOUT) -> None:
        """Force-close: discard queued frames and stop reading immediately"""
        self.terminated = True
        self.closing = True
        self._queue.clear()

        if self._writer_task is not None and not self._writer_task.done():
            self._writer_task.cancel()

        await self._close_socket(code, "terminated")
        self._cancel_reader()

    async def _close_socket(self, code: int, reason: str) -> None:
        try:
            await asyncio.wait_for(self.websocket.close(code=code, reason=reason), timeout=CLOSE_TIMEOUT)
        except Exception as e:
            logger.debug(f"Error closing WebSocket {self.connection_id}: {e}")

    # ==================== Reading ====================

    async def run(self, receive_loop: Coroutine) -> None:
        """
        Run the receive loop as the connection's reader task.

        Returns when the loop ends on its own (client disconnect) or the
        connection is closed/terminated from elsewhere. Cancelling the caller
        cancels the reader too.
        """
        self._reader_task = asyncio.create_task(receive_loop)
        try:
            await asyncio.wait({self._reader_task})
        except asyncio.CancelledError:
            self._reader_task.cancel()
            raise

        if not self._reader_task.cancelled() and self._reader_task.exception() is not None:
            exc = self._reader_task.exception()
            logger.error(
                f"Receive loop failed on connection {self.connection_id}: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__)
            )

    def _cancel_reader(self) -> None:
        task = self._reader_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def shutdown(self) -> None:
        """Stop the writer task (used after the reader has finished)"""
        self.closing = True
        if self._writer_task is not None and not self._writer_task.done():
            self._writer_task.cancel()
            try:
                await self._writer_task
            except asyncio.CancelledError:
                pass
