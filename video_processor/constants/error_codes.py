"""Error codes dictionary for the video processor API.

This is the single source of truth for all error codes, their retryability,
and suggested fixes. Used by the exception handlers to generate
machine-readable error responses. Nothing in the service retries on its own;
``retryable`` is a hint for the caller only.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


# Error codes dictionary - single source of truth
ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Validation errors (not retryable, fix input)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    "MISSING_REQUIRED_FIELD": {
        "retryable": False,
        "suggested_fix": "Send every required multipart field and the videoFile part",
    },
    "INVALID_FIELD_VALUE": {
        "retryable": False,
    },
    # ==========================================================================
    # Authentication errors
    # ==========================================================================
    "NO_TOKEN": {
        "retryable": False,
        "suggested_fix": "Connect the shop in Auth Hub so a Tekmetric token is available",
    },
    "CREDENTIAL_PROVIDER_UNAVAILABLE": {
        "retryable": True,
    },
    # ==========================================================================
    # Resource errors
    # ==========================================================================
    "EXPLAINER_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Check explainerVideoId against the explainer_videos table",
    },
    "RO_NOT_FOUND": {
        "retryable": False,
    },
    # ==========================================================================
    # Pipeline errors
    # ==========================================================================
    "FETCH_FAILED": {
        "retryable": True,
    },
    "PROCESS_FAILED": {
        "retryable": False,
    },
    "MERGE_FAILED": {
        "retryable": False,
        "suggested_fix": "Verify both inputs are decodable video files with a non-zero duration",
    },
    "UPLOAD_TARGET_FAILED": {
        "retryable": True,
    },
    "UPLOAD_FAILED": {
        "retryable": True,
        "suggested_fix": "Presigned targets expire; request a new upload target and try again",
    },
    "METADATA_PATCH_FAILED": {
        "retryable": True,
    },
    # ==========================================================================
    # Upstream (Tekmetric) errors
    # ==========================================================================
    "RO_SEARCH_FAILED": {
        "retryable": True,
    },
    "INSPECTIONS_FETCH_FAILED": {
        "retryable": True,
    },
    # ==========================================================================
    # System errors
    # ==========================================================================
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


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    spec = get_error_spec(code)
    return spec.get("retryable", False)
