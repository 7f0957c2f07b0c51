"""Configuration for the background jobs engine."""

import json
import os
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from background_jobs.backoff import BackoffPolicy
from background_jobs.models import type_tag


class BackgroundJobsConfig:
    """Configuration object for the job engine."""

    def __init__(
        self,
        concurrency: int = 5,
        tick_interval_seconds: float = 1.0,
        backoff_policy: Union[BackoffPolicy, Dict[str, Any], None] = None,
        dead_letter_size: int = 100,
        webhook_timeout_seconds: float = 10.0,
        required_job_types: Optional[Iterable[str]] = None,
        handlers_module: Optional[str] = None,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        if tick_interval_seconds <= 0:
            raise ValueError(
                f"tick_interval_seconds must be > 0, got {tick_interval_seconds}"
            )
        if dead_letter_size < 0:
            raise ValueError(f"dead_letter_size must be >= 0, got {dead_letter_size}")

        if backoff_policy is None:
            backoff_policy = BackoffPolicy()
        elif isinstance(backoff_policy, dict):
            backoff_policy = BackoffPolicy(**backoff_policy)

        self.concurrency = concurrency
        self.tick_interval_seconds = tick_interval_seconds
        self.backoff_policy = backoff_policy
        self.dead_letter_size = dead_letter_size
        self.webhook_timeout_seconds = webhook_timeout_seconds
        self.required_job_types: List[str] = [
            type_tag(t) for t in (required_job_types or [])
        ]
        self.handlers_module = handlers_module

    @classmethod
    def from_env(cls) -> "BackgroundJobsConfig":
        """Create config from environment variables."""
        concurrency = _int_env("BACKGROUND_JOBS_CONCURRENCY", "5")
        if concurrency < 1:
            raise ValueError("BACKGROUND_JOBS_CONCURRENCY must be >= 1")

        tick_interval_seconds = _float_env("BACKGROUND_JOBS_TICK_INTERVAL_SECONDS", "1.0")
        if tick_interval_seconds <= 0:
            raise ValueError("BACKGROUND_JOBS_TICK_INTERVAL_SECONDS must be > 0")

        dead_letter_size = _int_env("BACKGROUND_JOBS_DEAD_LETTER_SIZE", "100")
        if dead_letter_size < 0:
            raise ValueError("BACKGROUND_JOBS_DEAD_LETTER_SIZE must be >= 0")

        webhook_timeout_seconds = _float_env(
            "BACKGROUND_JOBS_WEBHOOK_TIMEOUT_SECONDS", "10"
        )

        backoff_policy = None
        backoff_policy_str = os.getenv("BACKGROUND_JOBS_BACKOFF_POLICY")
        if backoff_policy_str:
            try:
                backoff_policy = BackoffPolicy(**json.loads(backoff_policy_str))
            except (json.JSONDecodeError, TypeError, ValidationError) as e:
                raise ValueError(
                    f"Invalid BACKGROUND_JOBS_BACKOFF_POLICY: {e}"
                ) from e

        required_types_str = os.getenv("BACKGROUND_JOBS_REQUIRED_TYPES", "")
        required_job_types = [t.strip() for t in required_types_str.split(",") if t.strip()]

        return cls(
            concurrency=concurrency,
            tick_interval_seconds=tick_interval_seconds,
            backoff_policy=backoff_policy,
            dead_letter_size=dead_letter_size,
            webhook_timeout_seconds=webhook_timeout_seconds,
            required_job_types=required_job_types,
            handlers_module=os.getenv("BACKGROUND_JOBS_HANDLERS_MODULE") or None,
        )


def _int_env(name: str, default: str) -> int:
    value = os.getenv(name, default)
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def _float_env(name: str, default: str) -> float:
    value = os.getenv(name, default)
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e
