"""Error codes dictionary for the media processor API.

Single source of truth for every error code the service emits, whether it
is worth retrying, and a short hint for the caller.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Request errors
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
        "suggested_fix": "Fix the reported field and resubmit the request",
    },
    "BAD_REQUEST": {
        "retryable": False,
    },
    "NOT_FOUND": {
        "retryable": False,
    },
    "JOB_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Job ids are only valid for the lifetime of the server process",
    },
    # ==========================================================================
    # Asset errors
    # ==========================================================================
    "MISSING_ASSET": {
        "retryable": False,
        "suggested_fix": "List available assets via GET /api/assets/stickers or GET /api/assets/fonts",
    },
    "INVALID_ASSET_NAME": {
        "retryable": False,
        "suggested_fix": "Asset names may only contain letters, digits, '_' and '-'",
    },
    # ==========================================================================
    # Processing errors
    # ==========================================================================
    "DOWNLOAD_FAILED": {
        "retryable": True,
        "suggested_fix": "Check that the source URL is reachable and returns media",
    },
    "ENGINE_FAILED": {
        "retryable": True,
    },
    "ENCODING_EXHAUSTED": {
        "retryable": True,
        "suggested_fix": "Inspect the raw filter expression and source media for problems",
    },
    "INTERNAL_ERROR": {
        "retryable": True,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested fix
    """
    return ERROR_CODES.get(code, {"retryable": False})
