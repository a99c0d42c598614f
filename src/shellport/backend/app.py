"""FastAPI application factory and configuration"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from .api import session_router, create_websocket_router
from .config import Settings
from .exception import ShellportException, NotFoundError, CapacityError
from .logging import setup_logging
from .multiplexer.controller import TmuxController
from .schema.response import ErrorResponse
from .startup import StartupTask
from .terminal.pty_bridge import PTYBridge
from .terminal.registry import SessionRegistry
from .websocket.handler import ProtocolHandler

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    instance_path: Optional[Path] = None,
    controller: Optional[TmuxController] = None,
    bridge: Optional[PTYBridge] = None,
) -> FastAPI:
    """Create and configure FastAPI application instance

    This is the application factory function that initializes logging,
    builds the session broker, creates the FastAPI app, configures
    middleware, registers exception handlers, and includes routers.

    Args:
        settings: Application settings
        instance_path: Instance directory for log files; None leaves logging
            configuration to the caller
        controller: tmux controller (defaults to one built from settings)
        bridge: PTY bridge (defaults to one built from settings)

    Returns:
        Configured FastAPI application instance
    """
    if instance_path is not None:
        setup_logging(instance_path, settings.logging)

    # ==================== Session Broker ====================

    controller = controller or TmuxController(settings.multiplexer)
    bridge = bridge or PTYBridge(settings.multiplexer)
    registry = SessionRegistry(controller, bridge, settings.session)
    protocol_handler = ProtocolHandler(registry, settings)
    startup_task = StartupTask(settings.startup_hook, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifecycle management"""
        logger.info(
            f"{settings.app_name} {settings.app_version} starting: "
            f"ws_path={settings.server.ws_path}"
        )
        startup_task.start()

        yield

        logger.info("Shutting down startup hook...")
        await startup_task.stop()

        logger.info("Shutting down terminal sessions...")
        try:
            await registry.shutdown()
        except Exception as e:
            logger.error(f"Session registry shutdown failed: {e}", exc_info=True)

        logger.info("Application shut down")

    app = FastAPI(
        title=f"{settings.app_name} API",
        version=settings.app_version,
        description="Persistent browser terminals backed by tmux sessions",
        lifespan=lifespan,
    )

    # Store in app state for endpoints
    app.state.settings = settings
    app.state.instance_path = instance_path
    app.state.registry = registry
    app.state.protocol_handler = protocol_handler
    app.state.startup_task = startup_task

    # ==================== CORS Configuration ====================

    if settings.server.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.server.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # ==================== Exception Handlers ====================

    @app.exception_handler(ShellportException)
    async def shellport_exception_handler(request: Request, exc: ShellportException) -> JSONResponse:
        """Handle all Shellport exceptions with the unified ErrorResponse format"""
        status_code = 400
        if isinstance(exc, NotFoundError):
            status_code = 404
        elif isinstance(exc, CapacityError):
            status_code = 503

        logger.warning(f"ShellportException: {exc.message} (code: {exc.code})")
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse.from_exception(exc).model_dump()
        )

    # ==================== Router Registration ====================

    app.include_router(session_router, prefix="/api")
    app.include_router(create_websocket_router(settings.server.ws_path))

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "ok",
            "version": settings.app_version,
            "sessions": len(registry),
            "connections": protocol_handler.active_connections,
        }

    return app
