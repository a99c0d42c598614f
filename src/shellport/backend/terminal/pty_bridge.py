"""PTY bridge: pseudo-terminal processes attached to tmux sessions.

This module manages the attaching process of one terminal session, handling:
- Process lifecycle (fork, exec `tmux attach-session`, kill, reap)
- Bidirectional I/O (read output, write input)
- Terminal sizing (TIOCSWINSZ ioctl + SIGWINCH)
- Event delivery to an explicit listener (output / exit)

The shell itself runs inside tmux. Killing a PTYProcess only ends the
attaching client; the tmux session and everything running in it survive.
"""

import asyncio
import codecs
import fcntl
import logging
import os
import pty
import select
import shutil
import signal
import struct
import termios
import time
from typing import Optional, Protocol, Tuple

from ..config import MultiplexerSettings
from ..multiplexer.controller import build_environment

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
SELECT_TIMEOUT = 0.1
REAP_TIMEOUT = 2.0


class PTYListener(Protocol):
    """Receiver of PTY events

    Each event carries the PTYProcess it came from so the receiver can drop
    events from a process that has since been replaced.
    """

    def pty_output(self, process: "PTYProcess", data: str) -> None:
        ...

    def pty_exited(self, process: "PTYProcess", code: Optional[int]) -> None:
        ...


def set_winsize(fd: int, cols: int, rows: int) -> None:
    """Apply terminal size to a PTY fd (rows, cols, xpixel, ypixel)"""
    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


class PTYProcess:
    """
    One live `tmux attach-session` process running on a PTY.

    Lifecycle:
    1. Created and started by PTYBridge.spawn()
    2. write() / resize() while running
    3. Either the process exits on its own (listener.pty_exited is called
       once), or kill() is called (no exit event is delivered)

    Threading:
    - All async methods run in the main loop
    - Blocking I/O (select, os.read, os.write, waitpid) runs in executor threads
    - The master fd is closed only by the read task, after its last read

    Attributes:
        session_id: tmux session this process is attached to
        pid: Child process ID
        master_fd: PTY master file descriptor
        running: Whether the process is considered live
        exit_code: Exit code once reaped (None if unknown or killed)
    """

    def __init__(self, session_id: str, pid: int, master_fd: int, listener: PTYListener):
        self.session_id = session_id
        self.pid = pid
        self.master_fd = master_fd
        self.listener = listener

        self.running = False
        self.killed = False
        self.exit_code: Optional[int] = None

        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._fd_closed = False
        self._read_task: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start the background read task"""
        self.running = True
        self._read_task = asyncio.create_task(self._read_output())

    # ==================== Output ====================

    async def _read_output(self) -> None:
        """
        Continuously read PTY output and deliver it to the listener.

        Ends when the process closes the PTY (EOF/EIO) or kill() clears
        `running`. Afterwards the fd is closed and the child reaped; the exit
        event is delivered only if the process ended on its own.
        """
        logger.debug(f"[PTYProcess] Read task started: session_id={self.session_id}, pid={self.pid}")
        loop = asyncio.get_running_loop()

        try:
            while self.running:
                chunk = await loop.run_in_executor(None, self._read_pty_nonblocking)
                if chunk is None:
                    continue
                if not chunk:
                    break

                text = self._decoder.decode(chunk)
                if text and self.running:
                    self.listener.pty_output(self, text)
        finally:
            self.running = False
            self.exit_code = await loop.run_in_executor(None, self._close_and_reap)

        logger.debug(
            f"[PTYProcess] Read task ended: session_id={self.session_id}, "
            f"pid={self.pid}, exit_code={self.exit_code}, killed={self.killed}"
        )

        if not self.killed:
            self.listener.pty_exited(self, self.exit_code)

    def _read_pty_nonblocking(self) -> Optional[bytes]:
        """
        Read from the PTY with a short select timeout (runs in executor).

        Returns:
            Bytes read, None if no data was ready, b"" on EOF
        """
        try:
            r, _, _ = select.select([self.master_fd], [], [], SELECT_TIMEOUT)
            if not r:
                return None
            return os.read(self.master_fd, READ_CHUNK_SIZE)
        except OSError:
            # EIO once the child side of the PTY is closed
            return b""

    def _close_and_reap(self) -> Optional[int]:
        """Close the master fd and collect the child's exit status (runs in executor)"""
        if not self._fd_closed:
            self._fd_closed = True
            try:
                os.close(self.master_fd)
            except OSError:
                pass

        deadline = time.monotonic() + REAP_TIMEOUT
        try:
            while True:
                pid, status = os.waitpid(self.pid, os.WNOHANG)
                if pid != 0:
                    return os.waitstatus_to_exitcode(status)
                if time.monotonic() >= deadline:
                    logger.warning(f"[PTYProcess] Child did not exit, force killing: pid={self.pid}")
                    os.kill(self.pid, signal.SIGKILL)
                    _, status = os.waitpid(self.pid, 0)
                    return os.waitstatus_to_exitcode(status)
                time.sleep(0.05)
        except ChildProcessError:
            return None
        except ProcessLookupError:
            return None

    # ==================== Input ====================

    async def write(self, data: str) -> None:
        """
        Write user input to the PTY.

        Raises:
            RuntimeError: If the process is not running
            OSError: If the write fails
        """
        if not self.running or self._fd_closed:
            raise RuntimeError(f"PTY not running: session_id={self.session_id}")

        payload = data.encode('utf-8')
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write_all, payload)

    def _write_all(self, payload: bytes) -> None:
        view = memoryview(payload)
        while view:
            written = os.write(self.master_fd, view)
            view = view[written:]

    async def resize(self, cols: int, rows: int) -> None:
        """
        Resize the terminal and notify the tmux client with SIGWINCH.

        Raises:
            RuntimeError: If the process is not running
            OSError: If ioctl fails
        """
        if not self.running or self._fd_closed:
            raise RuntimeError(f"PTY not running: session_id={self.session_id}")

        logger.debug(f"[PTYProcess] Resizing: session_id={self.session_id}, cols={cols}, rows={rows}")

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, set_winsize, self.master_fd, cols, rows)
        try:
            os.kill(self.pid, signal.SIGWINCH)
        except ProcessLookupError:
            pass

    # ==================== Termination ====================

    def kill(self) -> None:
        """
        Terminate the attaching process. Never touches the tmux session.

        Best-effort and idempotent: errors are swallowed. The read task
        closes the fd and reaps the child once its current read returns.
        """
        if self.killed:
            return
        self.killed = True
        self.running = False

        logger.info(f"[PTYProcess] Killing: session_id={self.session_id}, pid={self.pid}")
        try:
            os.kill(self.pid, signal.SIGHUP)
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"[PTYProcess] kill failed for pid={self.pid}: {e}")

    async def wait_closed(self) -> None:
        """Wait until the read task has closed the fd and reaped the child"""
        if self._read_task is not None:
            await asyncio.shield(self._read_task)


class PTYBridge:
    """
    Spawns PTY processes that attach to named tmux sessions.

    Attributes:
        settings: Multiplexer settings (binary, socket, term, ...)
    """

    def __init__(self, settings: MultiplexerSettings):
        self.settings = settings

    def attach_command(self, session_id: str) -> list:
        cmd = [self.settings.binary]
        if self.settings.socket_name:
            cmd += ["-L", self.settings.socket_name]
        return cmd + ["attach-session", "-t", f"={session_id}"]

    async def spawn(
        self,
        session_id: str,
        cols: int,
        rows: int,
        listener: PTYListener,
    ) -> Optional[PTYProcess]:
        """
        Spawn `tmux attach-session` for a session on a new PTY.

        Args:
            session_id: tmux session name to attach
            cols: Initial width
            rows: Initial height
            listener: Receiver of output and exit events

        Returns:
            Started PTYProcess, or None if the process could not be spawned
        """
        if shutil.which(self.settings.binary) is None:
            logger.error(f"[PTYBridge] tmux binary not found: {self.settings.binary}")
            return None

        loop = asyncio.get_running_loop()
        try:
            pid, master_fd = await loop.run_in_executor(
                None, self._fork_pty, session_id, cols, rows
            )
        except OSError as e:
            logger.error(f"[PTYBridge] Failed to spawn PTY for {session_id}: {e}")
            return None

        process = PTYProcess(session_id, pid, master_fd, listener)
        process.start()

        logger.info(
            f"[PTYBridge] Spawned: session_id={session_id}, pid={pid}, size={cols}x{rows}"
        )
        return process

    def _fork_pty(self, session_id: str, cols: int, rows: int) -> Tuple[int, int]:
        """
        Fork the attaching process (blocking operation, runs in executor).

        Child Process:
        - Sets its terminal size
        - Execs: tmux [-L socket] attach-session -t =<session_id>

        Returns:
            Tuple of (pid, master_fd)
        """
        cmd = self.attach_command(session_id)
        env = build_environment(self.settings)

        pid, master_fd = pty.fork()

        if pid == 0:  # Child process
            try:
                set_winsize(pty.STDIN_FILENO, cols, rows)
                try:
                    os.chdir(self.settings.working_directory)
                except OSError:
                    pass
                os.execvpe(cmd[0], cmd, env)
            finally:
                os._exit(127)

        return pid, master_fd
