"""WebSocket transport for terminal sessions.

- ClientConnection: bounded outbound queue and close/terminate handling
- ProtocolHandler (websocket.handler): frame dispatch for one connection
"""

from .connection import ClientConnection

__all__ = ['ClientConnection']
