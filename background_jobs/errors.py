"""Exception types for the background jobs engine."""

from typing import Any, Iterable, Optional


class BackgroundJobsError(Exception):
    """Base exception for all background jobs errors."""

    pass


class SubmissionError(BackgroundJobsError, ValueError):
    """Raised synchronously by submit() when job options are malformed."""

    def __init__(self, message: str, errors: Optional[list] = None):
        self.errors = errors or []
        super().__init__(message)


class NoHandlerError(BackgroundJobsError):
    """Raised when a job type has no registered handler at dispatch time."""

    def __init__(self, job_type: str, message: str = None):
        self.job_type = job_type
        if message is None:
            message = f"No handler registered for job type {job_type}"
        super().__init__(message)


class HandlerError(BackgroundJobsError):
    """Raised when a handler returns an error instead of raising it."""

    def __init__(self, job_id: Any, job_type: str, original: BaseException = None):
        self.job_id = job_id
        self.job_type = job_type
        self.original = original
        message = str(original) if original is not None else "Handler reported failure"
        super().__init__(message)


class MissingHandlersError(BackgroundJobsError):
    """Raised by start() when required job types have no handler."""

    def __init__(self, missing: Iterable[str], message: str = None):
        self.missing = sorted(missing)
        if message is None:
            message = f"No handlers registered for job types: {', '.join(self.missing)}"
        super().__init__(message)


class JobNotFoundError(BackgroundJobsError):
    """Raised when a job is not known to the engine."""

    def __init__(self, job_id: Any, message: str = None):
        self.job_id = job_id
        if message is None:
            message = f"Job {job_id} not found"
        super().__init__(message)


class WebhookDeliveryError(BackgroundJobsError):
    """Raised when an outgoing webhook POST fails."""

    def __init__(self, status_code: int, message: str, response_body: str = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(f"HTTP {status_code}: {message}")
