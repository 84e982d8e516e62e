from typing import Any

from pydantic import BaseModel


class ErrorInfo(BaseModel):
    code: str
    message: str
    retryable: bool = False
    suggested_fix: str | None = None  # Human-readable fix suggestion


class ApiResponse(BaseModel):
    success: bool
    message: str
    data: Any | None = None
    error: ErrorInfo | None = None
