"""
Domain exceptions for the application pipeline.

The hierarchy follows how failures are surfaced to the candidate: blocking
errors stop a stage from advancing, soft errors are logged and reported as
warnings while the pipeline carries on.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    #: Whether the failure blocks the current stage.
    blocking: bool = True


# Access / lookup


class AuthenticationRequiredError(PipelineError):
    """Raised when no signed-in candidate is available."""


class JobNotFoundError(PipelineError):
    """Raised when the job being applied for does not exist."""


class ApplicationNotFoundError(PipelineError):
    """Raised when an application row cannot be found."""


# Pipeline flow


class PipelineBusyError(PipelineError):
    """Raised when a stage operation is triggered while another is in flight."""


class PipelineStateError(PipelineError):
    """Raised when an operation's preconditions on the current stage do not hold."""


class InvalidResumeError(PipelineError):
    """Raised when a resume file is empty or not an accepted document type."""


class ApplicationWriteError(PipelineError):
    """Raised when an application row could not be created or updated."""


class StatusRegressionError(ApplicationWriteError):
    """Raised when a write would move an application back in pipeline order."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot move application status from {current!r} back to {requested!r}")
        self.current = current
        self.requested = requested


# Storage


class StorageError(PipelineError):
    """Raised when the storage API rejects or fails a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UploadError(StorageError):
    """Raised when an artifact upload fails. The stage does not advance."""


class ArtifactUnavailableError(PipelineError):
    """Raised when an artifact is requested that was never submitted."""


# Analysis


class AnalysisError(PipelineError):
    """Raised when an analysis function fails. Always treated as soft."""

    blocking = False

    def __init__(self, function: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{function}: {message}")
        self.function = function
        self.status_code = status_code


# Media


class MediaCaptureError(PipelineError):
    """Raised on a generic camera/microphone failure."""


class MediaPermissionError(MediaCaptureError):
    """Raised when access to the camera or microphone is denied."""


class MediaDeviceUnavailableError(MediaCaptureError):
    """Raised when no usable camera or microphone is present."""


# Realtime session


class SessionError(PipelineError):
    """Base class for realtime interview session errors."""

    retryable: bool = True


class SessionConfigurationError(SessionError):
    """Missing or invalid agent credentials. Needs an operator fix."""

    retryable = False


class SessionConnectionError(SessionError):
    """Transient connection failure. The candidate may restart the session."""


class SessionActiveError(SessionError):
    """Raised when an interview session is already running for the application."""
