"""Pipeline error taxonomy.

Every terminal failure of an extraction run is one of these exceptions.
Each carries a stable machine-readable ``code``, the HTTP status the API
layer maps it to, and a ``user_message`` that is safe to show end users
(distinct from the internal classification and never containing raw
model output).
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for classified pipeline failures.

    Attributes:
        code: Stable machine-readable error code.
        status_code: HTTP status returned to the caller.
        user_message: Human-readable message for end users.
    """

    code = "UNEXPECTED_ERROR"
    status_code = 500
    user_message = "An unexpected error occurred while processing the transcript."

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.user_message
        super().__init__(self.detail)


# ── Input / Ownership ────────────────────────────────────────────────────────


class BadRequest(PipelineError):
    code = "BAD_REQUEST"
    status_code = 400
    user_message = "The request is missing required fields."


class EmptyTranscript(PipelineError):
    """Normalized transcript is too short to process."""

    code = "EMPTY_TRANSCRIPT"
    status_code = 400
    user_message = "The transcript is empty or too short to extract tasks from."


class Unauthorized(PipelineError):
    code = "UNAUTHORIZED"
    status_code = 401
    user_message = "Unauthorized"


class MeetingNotFound(PipelineError):
    """Explicit meeting id does not exist or belongs to another user."""

    code = "MEETING_NOT_FOUND"
    status_code = 404
    user_message = "Meeting not found or unauthorized"


class RunInProgress(PipelineError):
    """Another run with the same idempotency key has not finished yet."""

    code = "RUN_IN_PROGRESS"
    status_code = 409
    user_message = "This request is already being processed."


class RequestIdReused(PipelineError):
    """An idempotency key was reused for a different meeting or run mode."""

    code = "REQUEST_ID_REUSED"
    status_code = 409
    user_message = "This request id was already used for a different request."


# ── Recording Platform ───────────────────────────────────────────────────────


class RecordingNotFound(PipelineError):
    code = "RECORDING_NOT_FOUND"
    status_code = 404
    user_message = "Zoom meeting not found"


class IntegrationNotConnected(PipelineError):
    code = "ZOOM_NOT_CONNECTED"
    status_code = 400
    user_message = "Zoom account not connected"


class IntegrationTokenExpired(PipelineError):
    code = "ZOOM_TOKEN_EXPIRED"
    status_code = 401
    user_message = "Zoom token expired. Please reconnect your account."


class NoRecordingFiles(PipelineError):
    code = "NO_RECORDING_FILES"
    status_code = 400
    user_message = "No recording files found for this meeting"


class TranscriptFileMissing(PipelineError):
    code = "NO_TRANSCRIPT_FILE"
    status_code = 400
    user_message = "No transcript file found in this recording"


class TranscriptDownloadFailed(PipelineError):
    code = "DOWNLOAD_ERROR"
    status_code = 502
    user_message = "Failed to download transcript file"


class PlatformError(PipelineError):
    """Recording platform API call failed (other than a file download)."""

    code = "ZOOM_API_ERROR"
    status_code = 502
    user_message = "Failed to fetch meetings from Zoom"


# ── Model Provider ───────────────────────────────────────────────────────────


class RateLimited(PipelineError):
    code = "RATE_LIMITED"
    status_code = 429
    user_message = (
        "The AI service is busy with too many requests. "
        "Please wait a few minutes and try again."
    )


class InvalidCredentials(PipelineError):
    code = "INVALID_API_KEY"
    status_code = 500
    user_message = "The AI service is misconfigured. Please contact support."


class Forbidden(PipelineError):
    code = "FORBIDDEN"
    status_code = 500
    user_message = "The AI service refused the request. Please contact support."


class ServiceError(PipelineError):
    code = "SERVICE_ERROR"
    status_code = 503
    user_message = "AI service is temporarily unavailable. Please try again in a few minutes."


class ApiError(PipelineError):
    """Non-retryable, unclassified provider response."""

    code = "API_ERROR"
    status_code = 503
    user_message = "AI service returned an unexpected error. Please try again later."

    def __init__(self, provider_status: int, detail: str | None = None) -> None:
        self.provider_status = provider_status
        super().__init__(detail or f"Provider returned HTTP {provider_status}")


class InvalidSchema(PipelineError):
    """Model output failed structural validation on every attempt.

    Attributes:
        raw_output: The last invalid model output, kept for the audit log.
        attempts: Number of validation attempts made.
    """

    code = "INVALID_SCHEMA"
    status_code = 422
    user_message = "AI response could not be parsed. Please try again with a clearer transcript."

    def __init__(self, raw_output: str | None, attempts: int, detail: str | None = None) -> None:
        self.raw_output = raw_output
        self.attempts = attempts
        super().__init__(detail or f"Model output invalid after {attempts} attempt(s)")


# ── Storage ──────────────────────────────────────────────────────────────────


class PersistenceError(PipelineError):
    code = "DB_ERROR"
    status_code = 500
    user_message = "Failed to save extracted tasks."
