"""Simple standalone example of the in-process job engine."""

import asyncio
import logging
import random

from background_jobs import BackgroundJobsConfig, JobEngine, JobRegistry, JobType

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

registry = JobRegistry()


@registry.handler(JobType.SEND_EMAIL)
async def send_email(payload, job):
    """Pretend to send an email, failing now and then."""
    await asyncio.sleep(0.2)
    if random.random() < 0.3:
        raise ConnectionError("SMTP server unavailable")
    logger.info(f"Email to {payload['to']} sent (attempt {job.attempts})")


@registry.handler(JobType.UPDATE_STATS)
async def update_stats(payload, job):
    logger.info(f"Stats updated for {job.tenant_tag}")


async def main():
    """Main function to demonstrate the library."""
    config = BackgroundJobsConfig(
        concurrency=2,
        backoff_policy={"type": "exponential", "base_seconds": 0.5},
    )
    engine = JobEngine(config=config, registry=registry)

    async with engine:
        for i in range(5):
            engine.submit(
                JobType.SEND_EMAIL,
                {"to": f"customer{i}@example.com"},
                retries=3,
                tenant_tag="store-1",
            )
        engine.submit(JobType.UPDATE_STATS, {}, priority=10, delay=1, tenant_tag="store-1")

        await engine.drain()
        logger.info(f"Final stats: {engine.get_stats()}")


if __name__ == "__main__":
    asyncio.run(main())
