"""
Response envelopes for the HTTP endpoints.

Every JSON body is `{"success", "message", "data"}`; failures add
`error.code`, one of the codes carried by ShellportException subclasses.
"""

from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, Field

from ..exception import ShellportException


T = TypeVar('T')

ErrorCode = Literal["PROCESS_ERROR", "PROTOCOL_ERROR", "CAPACITY_EXCEEDED", "NOT_FOUND"]


class SuccessResponse(BaseModel, Generic[T]):
    """Successful response carrying `data`."""

    success: Literal[True] = True
    message: Optional[str] = None
    data: T


class ErrorDetail(BaseModel):
    """Machine-readable part of an error response."""

    code: ErrorCode = Field(..., description="Stable error code for client-side handling")


class ErrorResponse(BaseModel):
    """Error response; `data` is always null."""

    success: Literal[False] = False
    message: str
    data: None = None
    error: ErrorDetail

    @classmethod
    def from_exception(cls, exc: ShellportException) -> "ErrorResponse":
        return cls(message=exc.message, error=ErrorDetail(code=exc.code))
