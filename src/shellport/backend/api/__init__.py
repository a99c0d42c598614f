"""
API package for HTTP and WebSocket endpoints.
"""

from .session import router as session_router
from .websocket import create_router as create_websocket_router

__all__ = [
    "session_router",
    "create_websocket_router",
]
