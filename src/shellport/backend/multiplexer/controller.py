"""tmux controller for named, persistent terminal sessions.

This module shells out to the tmux binary to:
- Check whether a named session exists
- Create a session with a clean interactive environment
- Kill a session
- Capture a session's scrollback for replay
- List sessions on the broker's tmux server

Every operation is best-effort: failures are logged and reported as
False / None / [], never raised. A missing session is a normal condition.
"""

import asyncio
import logging
import os
import re
import secrets
import subprocess
from datetime import datetime
from typing import List, Optional

from ..config import MultiplexerSettings
from ..schema.session import MultiplexerSession

logger = logging.getLogger(__name__)


def build_environment(settings: MultiplexerSettings) -> dict:
    """Minimal clean environment for tmux and the shell inside it

    TMUX is deliberately absent so attaching never nests inside an outer tmux.
    """
    return {
        "PATH": os.environ.get("PATH", "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"),
        "HOME": os.environ.get("HOME", str(settings.working_directory)),
        "USER": os.environ.get("USER", "shellport"),
        "SHELL": settings.shell,
        "TERM": settings.term,
        "COLORTERM": "truecolor",
        "LANG": os.environ.get("LANG", "en_US.UTF-8"),
    }


class TmuxController:
    """
    Manages named tmux sessions on a dedicated tmux server.

    Architecture:
    - Public methods are async and run `tmux` via subprocess.run in the
      default executor, so a slow tmux call never stalls other sessions
    - Commands target the server selected by `tmux -L <socket_name>`
    - Session targets use the "=" prefix for exact name matching

    Attributes:
        settings: Multiplexer settings (binary, socket, shell, ...)
    """

    def __init__(self, settings: MultiplexerSettings):
        self.settings = settings
        self._name_pattern = re.compile(
            rf"^{re.escape(settings.session_prefix)}-[A-Za-z0-9_-]+$"
        )

        logger.info(
            f"TmuxController initialized: binary={settings.binary}, "
            f"socket={settings.socket_name or '<default>'}"
        )

    # ==================== Naming ====================

    def generate_name(self) -> str:
        """Generate a new random session name, e.g. shell-3q2Zk0f1YbW9xTQa"""
        return f"{self.settings.session_prefix}-{secrets.token_urlsafe(12)}"

    def is_managed(self, name: Optional[str]) -> bool:
        """Check whether a name follows the broker's naming convention"""
        return bool(name) and self._name_pattern.match(name) is not None

    def base_command(self) -> List[str]:
        """tmux argv prefix selecting the broker's server socket"""
        cmd = [self.settings.binary]
        if self.settings.socket_name:
            cmd += ["-L", self.settings.socket_name]
        return cmd

    # ==================== Operations ====================

    async def exists(self, name: str) -> bool:
        """
        Check if a tmux session exists.

        Args:
            name: tmux session name

        Returns:
            True if the session exists, False if it does not or tmux failed
        """
        result = await self._run(["has-session", "-t", f"={name}"])
        exists = result is not None and result.returncode == 0
        logger.debug(f"[TmuxController] exists: name={name}, exists={exists}")
        return exists

    async def create(self, name: str, cols: int, rows: int) -> bool:
        """
        Create a detached tmux session.

        The server-wide options are set in the same invocation, before the
        session's first pane is created, so history-limit applies to it.

        Args:
            name: tmux session name
            cols: Initial width
            rows: Initial height

        Returns:
            True if the session was created, False otherwise
        """
        s = self.settings
        args = [
            "start-server", ";",
            "set-option", "-g", "history-limit", str(s.history_limit), ";",
            "set-option", "-g", "default-terminal", s.term, ";",
            "new-session", "-d", "-s", name,
            "-x", str(cols), "-y", str(rows),
            "-c", s.working_directory,
            s.shell, "-l", ";",
            "set-option", "-t", name, "status", "off", ";",
            "set-option", "-t", name, "mouse", "on" if s.mouse else "off",
        ]

        logger.info(
            f"[TmuxController] Creating session: name={name}, size={cols}x{rows}, "
            f"shell={s.shell}, cwd={s.working_directory}"
        )

        result = await self._run(args)
        if result is None:
            return False
        if result.returncode != 0:
            logger.error(
                f"[TmuxController] Failed to create session {name}: "
                f"rc={result.returncode}, stderr={result.stderr.strip()}"
            )
            return False

        logger.info(f"[TmuxController] Session created: name={name}")
        return True

    async def kill(self, name: str) -> None:
        """
        Kill a tmux session (safe to call if it does not exist).

        Args:
            name: tmux session name
        """
        result = await self._run(["kill-session", "-t", f"={name}"])
        if result is not None and result.returncode == 0:
            logger.info(f"[TmuxController] Session killed: name={name}")
        else:
            logger.debug(f"[TmuxController] kill-session found nothing to kill: name={name}")

    async def capture(self, name: str, lines: int) -> Optional[str]:
        """
        Capture a session's pane history and visible screen.

        Reads tmux's own scrollback (`capture-pane -e -J`, escape sequences
        kept, wrapped lines joined) so a reattaching client can refill its
        scrollback.

        Args:
            name: tmux session name
            lines: How many history lines above the visible screen to include

        Returns:
            Captured text with CRLF line endings, or None if there is nothing
            to replay or tmux failed
        """
        result = await self._run([
            "capture-pane", "-p", "-e", "-J",
            "-S", f"-{lines}",
            "-t", f"={name}:",
        ])
        if result is None or result.returncode != 0:
            logger.debug(f"[TmuxController] capture-pane failed: name={name}")
            return None

        rows = result.stdout.rstrip("\n").split("\n")
        # Blank rows below the cursor are not history
        while rows and not rows[-1].strip():
            rows.pop()
        if not rows:
            return None
        return "\r\n".join(rows) + "\r\n"

    async def list_sessions(self) -> List[MultiplexerSession]:
        """
        List sessions on the broker's tmux server.

        Returns:
            Sessions in tmux order; empty if no server is running
        """
        result = await self._run([
            "list-sessions", "-F",
            "#{session_name}|#{session_windows}|#{session_created}|#{session_attached}",
        ])
        if result is None or result.returncode != 0:
            return []

        sessions = []
        for line in result.stdout.splitlines():
            parts = line.split("|")
            if len(parts) != 4:
                continue
            name, windows, created, attached = parts
            try:
                sessions.append(MultiplexerSession(
                    name=name,
                    windows=int(windows),
                    created=datetime.fromtimestamp(int(created)),
                    attached=attached not in ("", "0"),
                ))
            except ValueError:
                logger.warning(f"[TmuxController] Unparseable list-sessions line: {line!r}")
        return sessions

    # ==================== Internals ====================

    async def _run(self, args: List[str]) -> Optional[subprocess.CompletedProcess]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._run_sync, args)

    def _run_sync(self, args: List[str]) -> Optional[subprocess.CompletedProcess]:
        """
        Run one tmux command (blocking, runs in executor).

        Returns:
            CompletedProcess, or None if tmux could not be run at all
        """
        cmd = self.base_command() + args
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.settings.command_timeout,
                env=build_environment(self.settings),
            )
        except FileNotFoundError:
            logger.error(f"[TmuxController] tmux binary not found: {self.settings.binary}")
        except subprocess.TimeoutExpired:
            logger.error(
                f"[TmuxController] tmux command timed out after "
                f"{self.settings.command_timeout}s: {' '.join(args[:3])}"
            )
        except OSError as e:
            logger.error(f"[TmuxController] Failed to run tmux: {e}")
        return None
