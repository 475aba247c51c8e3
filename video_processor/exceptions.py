"""Custom exceptions for the video processor.

Every error kind carries a machine-readable code, an HTTP status and a
``Severity``. The pipeline degrades gracefully only on ``Severity.SOFT``
errors; anything ``FATAL`` aborts the request after cleanup.
"""

from enum import Enum
from typing import Any

from video_processor.constants.error_codes import get_error_spec
from video_processor.schemas.envelope import ErrorResponse


class Severity(str, Enum):
    """How the pipeline treats an error."""

    SOFT = "soft"
    FATAL = "fatal"


class VideoProcessorError(Exception):
    """Base exception for all video processor errors.

    Provides structured error information for API responses.
    """

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"
    severity: Severity = Severity.FATAL

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

    def to_error_response(self, request_id: str | None = None) -> ErrorResponse:
        """Convert exception to ErrorResponse for the API."""
        spec = get_error_spec(self.code)
        return ErrorResponse(
            error=self.code,
            details=self.message,
            request_id=request_id,
            retryable=spec.get("retryable", False),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
            upstream_status=getattr(self, "upstream_status", None),
            upstream_body=getattr(self, "upstream_body", None),
        )


def _truncate(body: str | None, limit: int = 1000) -> str | None:
    if body is None:
        return None
    return body if len(body) <= limit else body[:limit] + "..."


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(VideoProcessorError):
    """Base class for validation errors."""

    code = "VALIDATION_ERROR"
    status_code = 400
    message = "Invalid request"


class MissingRequiredFieldError(ValidationError):
    """One or more required fields are missing."""

    code = "MISSING_REQUIRED_FIELD"
    message = "Required field is missing"

    def __init__(self, *fields: str):
        self.fields = list(fields)
        message = f"Missing required fields: {', '.join(fields)}" if fields else self.message
        super().__init__(message)


class InvalidFieldValueError(ValidationError):
    """Field value is invalid."""

    code = "INVALID_FIELD_VALUE"
    message = "Invalid field value"

    def __init__(self, field: str, value: Any = None, reason: str | None = None):
        self.field = field
        msg = f"Invalid value for field '{field}'"
        if value is not None:
            msg += f": {value!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


# =============================================================================
# Credential Errors (401)
# =============================================================================


class CredentialError(VideoProcessorError):
    """No usable bearer credential for the tenant."""

    code = "NO_TOKEN"
    status_code = 401
    message = "No JWT token available for this shop"


class NoCredentialError(CredentialError):
    """The provider has no credential for the tenant."""

    def __init__(self, tenant_id: str | None = None, reason: str | None = None):
        message = self.message
        if tenant_id:
            message = f"No JWT token available for shop {tenant_id}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class CredentialProviderUnavailableError(CredentialError):
    """The credential provider could not be reached or answered badly."""

    code = "CREDENTIAL_PROVIDER_UNAVAILABLE"
    status_code = 500
    message = "Auth Hub request failed"


# =============================================================================
# Not Found Errors (404)
# =============================================================================


class ExplainerNotFoundError(VideoProcessorError):
    """Explainer id did not resolve to a usable source URL."""

    code = "EXPLAINER_NOT_FOUND"
    status_code = 404
    message = "Explainer video not found"
    severity = Severity.SOFT

    def __init__(self, explainer_id: str | None = None):
        message = f"Explainer video not found: {explainer_id}" if explainer_id else self.message
        super().__init__(message)


class RepairOrderNotFoundError(VideoProcessorError):
    """Repair order number has no exact match."""

    code = "RO_NOT_FOUND"
    status_code = 404
    message = "Repair order not found"

    def __init__(self, ro_number: str | None = None):
        message = f"RO {ro_number} not found" if ro_number else self.message
        super().__init__(message)


# =============================================================================
# Pipeline Errors (500)
# =============================================================================


class FetchError(VideoProcessorError):
    """Remote download failed (status, network or local write)."""

    code = "FETCH_FAILED"
    message = "Download failed"
    severity = Severity.SOFT

    def __init__(self, message: str | None = None, *, url: str | None = None, status: int | None = None):
        self.url = url
        self.status = status
        if message is None and status is not None:
            message = f"Download failed: {status}"
        super().__init__(message)


class ProcessError(VideoProcessorError):
    """External process failed to start, exited non-zero or timed out."""

    code = "PROCESS_FAILED"
    message = "External process failed"

    def __init__(
        self,
        returncode: int | None,
        tail: str = "",
        *,
        binary: str = "ffmpeg",
        timed_out: bool = False,
    ):
        self.returncode = returncode
        self.tail = tail
        self.timed_out = timed_out
        if timed_out:
            message = f"{binary} timed out: {tail}"
        elif returncode is None:
            message = f"{binary} could not be started: {tail}"
        else:
            message = f"{binary} failed (code {returncode}): {tail}"
        super().__init__(message)


class MergeError(VideoProcessorError):
    """A merge stage failed; carries the diagnostic tail."""

    code = "MERGE_FAILED"
    message = "Video merge failed"

    def __init__(self, stage: str, detail: str = ""):
        self.stage = stage
        self.detail = detail
        super().__init__(f"Video merge failed at {stage}: {detail}" if detail else f"Video merge failed at {stage}")


class UploadTargetError(VideoProcessorError):
    """Presigned upload target could not be obtained."""

    code = "UPLOAD_TARGET_FAILED"
    message = "Failed to get presigned URL"

    def __init__(self, message: str | None = None, *, status: int | None = None, body: str | None = None):
        self.upstream_status = status
        self.upstream_body = _truncate(body)
        if message is None:
            message = f"Failed to get presigned URL ({status}): {_truncate(body, 300)}"
        super().__init__(message)


class UploadError(VideoProcessorError):
    """Object store rejected (or never received) the upload."""

    code = "UPLOAD_FAILED"
    message = "Upload failed"

    def __init__(self, message: str | None = None, *, status: int | None = None, body: str | None = None):
        self.upstream_status = status
        self.upstream_body = _truncate(body)
        if message is None:
            message = f"Upload failed: {status} - {_truncate(body, 300)}"
        super().__init__(message)


class MetadataPatchError(VideoProcessorError):
    """Inspection task update failed after a successful upload."""

    code = "METADATA_PATCH_FAILED"
    message = "Inspection task update failed"
    severity = Severity.SOFT

    def __init__(self, message: str | None = None, *, status: int | None = None, body: str | None = None):
        self.upstream_status = status
        self.upstream_body = _truncate(body)
        if message is None:
            message = f"Inspection task update failed: {status}"
        super().__init__(message)


# =============================================================================
# Upstream / System Errors
# =============================================================================


class UpstreamError(VideoProcessorError):
    """Tekmetric lookup failed in transport or answered with a non-success status."""

    message = "Upstream request failed"

    def __init__(
        self,
        code: str,
        status: int | None,
        body: str | None = None,
        *,
        message: str | None = None,
    ):
        self.upstream_status = status
        self.upstream_body = _truncate(body)
        # Mirrors the upstream status; no status or a non-error one becomes 502
        status_code = status if status is not None and status >= 400 else 502
        super().__init__(message or f"TM API returned {status}", code=code, status_code=status_code)


class InternalError(VideoProcessorError):
    """Internal server error."""

    code = "INTERNAL_ERROR"
    status_code = 500
    message = "Internal server error"
