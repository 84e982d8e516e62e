"""Custom exceptions for the scenepipe service.

Every error the compiler, the engine runner or the job machinery raises
derives from ``ScenePipeError`` so the API layer can render it with a
machine-readable code and the job layer can turn it into a FAILED event.
"""

from scenepipe.constants.error_codes import get_error_spec
from scenepipe.schemas.envelope import ErrorInfo


class ScenePipeError(Exception):
    """Base exception for all scenepipe application errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API response."""
        spec = get_error_spec(self.code)
        return ErrorInfo(
            code=self.code,
            message=self.message,
            retryable=spec.get("retryable", False),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
        )


# =============================================================================
# Request errors (4xx)
# =============================================================================


class ValidationFailedError(ScenePipeError):
    """Malformed request that slipped past schema validation."""

    code = "VALIDATION_ERROR"
    status_code = 422
    message = "Request validation failed"


class JobNotFoundError(ScenePipeError):
    """Job id is unknown or its record was already released."""

    code = "JOB_NOT_FOUND"
    status_code = 404
    message = "Job not found"

    def __init__(self, job_id: str | None = None):
        message = f"Job with ID {job_id} not found" if job_id else self.message
        super().__init__(message)


# =============================================================================
# Asset resolution errors
# =============================================================================


class AssetNotFoundError(ScenePipeError):
    """Sticker or font logical name has no file behind it."""

    code = "MISSING_ASSET"
    status_code = 404
    message = "Asset not found"

    def __init__(self, message: str | None = None, *, asset_name: str | None = None):
        self.asset_name = asset_name
        super().__init__(message)


class InvalidAssetNameError(ScenePipeError):
    """Asset name contains characters outside the allowed token set."""

    code = "INVALID_ASSET_NAME"
    status_code = 400
    message = "Invalid asset name"

    def __init__(self, name: str, kind: str = "asset"):
        self.asset_name = name
        super().__init__(f"Invalid {kind} name: {name}")


# =============================================================================
# Compilation errors
# =============================================================================


class GraphIntegrityError(ScenePipeError):
    """A filter statement consumes a pad no earlier statement produced."""

    code = "INTERNAL_ERROR"
    status_code = 500
    message = "Filter graph references an unknown pad"


# =============================================================================
# Processing errors
# =============================================================================


class MediaDownloadError(ScenePipeError):
    """Source media could not be fetched."""

    code = "DOWNLOAD_FAILED"
    status_code = 502
    message = "Media download failed"


class EngineInvocationError(ScenePipeError):
    """One engine invocation failed: non-zero exit, spawn failure or timeout."""

    code = "ENGINE_FAILED"
    status_code = 500
    message = "FFmpeg processing failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        returncode: int | None = None,
        timed_out: bool = False,
        stderr_tail: str = "",
    ):
        self.returncode = returncode
        self.timed_out = timed_out
        self.stderr_tail = stderr_tail
        super().__init__(message)


class EncodingExhaustedError(ScenePipeError):
    """Every encoding profile in the fallback chain failed."""

    code = "ENCODING_EXHAUSTED"
    status_code = 500
    message = "All encoding attempts exhausted"

    def __init__(self, attempts: list[str] | None = None, last_error: Exception | None = None):
        self.attempts = attempts or []
        self.last_error = last_error
        message = self.message
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)
