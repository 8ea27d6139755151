"""Uniform response envelope returned by every endpoint."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorCode(str, Enum):
    """Failure codes the engine recognises and handles distinctly."""

    SESSION_EXPIRED = "SESSION_EXPIRED"
    EMPTY_RESPONSE = "EMPTY_RESPONSE"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    JSON_PARSE_ERROR = "JSON_PARSE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


class Envelope(BaseModel):
    """`{success, data?, error?, code?, message?}` plus the HTTP status seen.

    `http_status` is local bookkeeping and is not part of the wire shape; it
    is None when no response was received at all.
    """

    model_config = ConfigDict(extra="ignore")

    success: bool = False
    data: Any = None
    error: str | None = None
    code: str | None = None
    message: str | None = None
    http_status: int | None = Field(default=None, exclude=True)

    @classmethod
    def failure(
        cls,
        error: str,
        code: ErrorCode | str | None = None,
        message: str | None = None,
        http_status: int | None = None,
    ) -> "Envelope":
        """Build a failed envelope without a server round trip."""

        if isinstance(code, ErrorCode):
            code = code.value
        return cls(success=False, error=error, code=code, message=message, http_status=http_status)

    @property
    def unauthorized(self) -> bool:
        return self.http_status == 401
