"""Pytest configuration and fixtures."""

import asyncio

import pytest

from background_jobs.config import BackgroundJobsConfig
from background_jobs.engine import JobEngine
from background_jobs.registry import JobRegistry


@pytest.fixture
def registry():
    """A fresh handler registry, isolated from the global one."""
    return JobRegistry()


@pytest.fixture
def fast_config():
    """Config with short ticks and backoff so tests run quickly."""
    return BackgroundJobsConfig(
        concurrency=5,
        tick_interval_seconds=0.05,
        backoff_policy={"type": "exponential", "base_seconds": 0.01},
    )


@pytest.fixture
def make_engine(registry, fast_config):
    """Factory for engines sharing the test registry."""

    def factory(**overrides):
        config = overrides.pop("config", None)
        if config is None and overrides:
            config = BackgroundJobsConfig(
                concurrency=overrides.pop("concurrency", fast_config.concurrency),
                tick_interval_seconds=overrides.pop(
                    "tick_interval_seconds", fast_config.tick_interval_seconds
                ),
                backoff_policy=overrides.pop("backoff_policy", fast_config.backoff_policy),
                dead_letter_size=overrides.pop("dead_letter_size", 100),
            )
        return JobEngine(config=config or fast_config, registry=registry)

    return factory


@pytest.fixture
def wait_until():
    """Poll a predicate until it is true or the timeout expires."""

    async def _wait_until(predicate, timeout=2.0, interval=0.005):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(interval)

    return _wait_until


@pytest.fixture
def sample_webhook_payload():
    """Sample send_webhook job payload."""
    return {
        "url": "https://hooks.example.com/orders",
        "payload": {"event": "order.created", "data": {"order_id": 42}},
        "headers": {"X-Webhook-Event": "order.created"},
    }
