"""Retry backoff policy."""

from datetime import datetime, timedelta
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field

MAX_EXPONENT = 1023


class BackoffPolicy(BaseModel):
    """How long a failed job waits before its next attempt."""

    type: Literal["exponential", "linear", "constant"] = "exponential"
    base_seconds: float = Field(default=1.0, ge=0)
    max_seconds: Optional[float] = Field(default=None, ge=0)


def calculate_backoff_seconds(
    policy: Union[BackoffPolicy, Dict[str, Any], None], attempt: int
) -> float:
    """
    Calculate backoff delay based on policy and attempt number.

    Args:
        policy: Backoff policy, either a BackoffPolicy or a plain dict
        attempt: Number of attempts already made (1-indexed)

    Returns:
        Backoff delay in seconds
    """
    if policy is None:
        policy = BackoffPolicy()
    elif isinstance(policy, dict):
        policy_type = policy.get("type", "exponential")
        if policy_type not in ("exponential", "linear", "constant"):
            # Unknown types fall back to exponential
            policy = dict(policy, type="exponential")
        policy = BackoffPolicy(**policy)

    attempt = max(1, attempt)
    base_seconds = policy.base_seconds

    if policy.type == "linear":
        delay = base_seconds * attempt
    elif policy.type == "constant":
        delay = base_seconds
    else:
        # Exponential backoff: base * 2^(attempt-1), exponent kept within float range
        delay = base_seconds * (2 ** min(attempt - 1, MAX_EXPONENT))

    if policy.max_seconds is not None:
        delay = min(delay, policy.max_seconds)
    return delay


def next_run_at(
    policy: Union[BackoffPolicy, Dict[str, Any], None], attempt: int, now: datetime
) -> datetime:
    """Time at which a job that just failed its attempt-th attempt may run again."""
    return now + timedelta(seconds=calculate_backoff_seconds(policy, attempt))
