"""Process-start hook.

Runs a user-supplied callable once, in the background, when the application
starts (e.g. a data-sync job). The task has its own lifecycle: it never
touches terminal sessions, its failure is only logged, and it is cancelled at
shutdown if still running.

The hook is configured as a dotted path "package.module:callable". The
callable may be a coroutine function or a plain function; it receives the
application Settings if it accepts one positional argument.
"""

import asyncio
import importlib
import inspect
import logging
from typing import Any, Callable, Optional

from .config import Settings

logger = logging.getLogger(__name__)


def resolve_hook(path: str) -> Callable[..., Any]:
    """
    Import a callable from "package.module:callable".

    Raises:
        ValueError: If the path is malformed or does not name a callable
        ImportError: If the module cannot be imported
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Invalid hook path '{path}', expected 'package.module:callable'")

    module = importlib.import_module(module_name)
    target = module
    for part in attr.split("."):
        target = getattr(target, part, None)
        if target is None:
            raise ValueError(f"Hook '{path}' not found")

    if not callable(target):
        raise ValueError(f"Hook '{path}' is not callable")
    return target


class StartupTask:
    """
    Background task spawned once at process initialization.

    Attributes:
        path: Configured dotted path
        task: The running asyncio task (None before start or without a hook)
    """

    def __init__(self, path: Optional[str], settings: Settings):
        self.path = path
        self.settings = settings
        self.task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if not self.path:
            logger.debug("No startup hook configured")
            return

        try:
            hook = resolve_hook(self.path)
        except (ImportError, ValueError) as e:
            logger.error(f"Startup hook disabled: {e}")
            return

        self.task = asyncio.create_task(self._run(hook), name=f"startup-hook:{self.path}")

        def task_done_callback(t: asyncio.Task):
            if t.cancelled():
                return
            exc = t.exception()
            if exc:
                logger.error(
                    f"Startup hook {self.path} failed: {exc}",
                    exc_info=(type(exc), exc, exc.__traceback__)
                )
            else:
                logger.info(f"Startup hook {self.path} finished")

        self.task.add_done_callback(task_done_callback)
        logger.info(f"Startup hook {self.path} started")

    async def _run(self, hook: Callable[..., Any]) -> None:
        accepts_settings = _accepts_positional(hook)
        args = (self.settings,) if accepts_settings else ()

        if inspect.iscoroutinefunction(hook):
            await hook(*args)
        else:
            result = await asyncio.get_running_loop().run_in_executor(None, lambda: hook(*args))
            if inspect.isawaitable(result):
                await result

    async def stop(self) -> None:
        if self.task is None or self.task.done():
            return
        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            logger.debug(f"Startup hook {self.path} cancelled")
        except Exception:
            # Already reported by the done callback
            pass


def _accepts_positional(func: Callable[..., Any]) -> bool:
    try:
        params = inspect.signature(func).parameters.values()
    except (TypeError, ValueError):
        return False
    return any(
        p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.VAR_POSITIONAL)
        for p in params
    )
