"""Custom exceptions for Shellport"""


class ShellportException(Exception):
    """Base exception for all Shellport errors

    All custom exceptions should inherit from this class.
    The global exception handler will catch this and return ErrorResponse,
    and the terminal WebSocket handler reports it as an `error` frame.

    Attributes:
        message: Human-readable error message
        code: Error code for client-side error handling
    """

    def __init__(self, message: str, code: str):
        """Initialize Shellport exception

        Args:
            message: Human-readable error message
            code: Error code (e.g., "PROCESS_ERROR", "CAPACITY_EXCEEDED")
        """
        self.message = message
        self.code = code
        super().__init__(message)


class ProcessError(ShellportException):
    """Terminal process could not be started

    Examples:
        - tmux new-session failed or tmux is not installed
        - PTY fork/exec of the attaching client failed
    """

    def __init__(self, message: str):
        super().__init__(message, "PROCESS_ERROR")


class ProtocolError(ShellportException):
    """Malformed inbound WebSocket frame

    Examples:
        - Frame is not valid JSON
        - Unknown frame type
        - Missing or ill-typed fields (e.g. resize without cols)
    """

    def __init__(self, message: str):
        super().__init__(message, "PROTOCOL_ERROR")


class CapacityError(ShellportException):
    """Broker-wide resource limit reached

    Examples:
        - Too many terminal sessions
        - Too many concurrent WebSocket connections
    """

    def __init__(self, message: str):
        super().__init__(message, "CAPACITY_EXCEEDED")


class NotFoundError(ShellportException):
    """Resource not found error

    Examples:
        - Terminal session not found
    """

    def __init__(self, message: str):
        super().__init__(message, "NOT_FOUND")
