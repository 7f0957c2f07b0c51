"""In-process background job engine for asyncio applications."""

from background_jobs.backoff import BackoffPolicy, calculate_backoff_seconds
from background_jobs.config import BackgroundJobsConfig
from background_jobs.dead_letters import DeadLetterBuffer
from background_jobs.engine import JobEngine
from background_jobs.engine_main import run_engine
from background_jobs.errors import (
    BackgroundJobsError,
    HandlerError,
    JobNotFoundError,
    MissingHandlersError,
    NoHandlerError,
    SubmissionError,
    WebhookDeliveryError,
)
from background_jobs.models import Job, JobOptions, JobStatus, JobType
from background_jobs.queue import TypeQueue
from background_jobs.registry import JobRegistry, job_registry
from background_jobs.webhooks import enqueue_webhook, sign_payload, verify_signature

__version__ = "0.1.0"

__all__ = [
    "BackoffPolicy",
    "calculate_backoff_seconds",
    "BackgroundJobsConfig",
    "DeadLetterBuffer",
    "JobEngine",
    "run_engine",
    "BackgroundJobsError",
    "HandlerError",
    "JobNotFoundError",
    "MissingHandlersError",
    "NoHandlerError",
    "SubmissionError",
    "WebhookDeliveryError",
    "Job",
    "JobOptions",
    "JobStatus",
    "JobType",
    "TypeQueue",
    "JobRegistry",
    "job_registry",
    "enqueue_webhook",
    "sign_payload",
    "verify_signature",
]
