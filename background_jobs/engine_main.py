"""CLI entrypoint and programmatic interface for running the engine."""

import argparse
import asyncio
import importlib
import logging
import os
import signal
import sys
from typing import Optional

from background_jobs.config import BackgroundJobsConfig
from background_jobs.engine import JobEngine
from background_jobs.models import JobType
from background_jobs.registry import JobRegistry, job_registry

DEFAULT_HANDLERS_MODULE = "background_jobs.handlers"


def setup_logging():
    """Setup logging configuration."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def load_handlers(handlers_module: Optional[str], logger: logging.Logger) -> None:
    """Import the module whose import registers the job handlers."""
    module_name = handlers_module or DEFAULT_HANDLERS_MODULE
    importlib.import_module(module_name)
    logger.info(f"Loaded handlers from {module_name}")


async def run_engine(
    config: Optional[BackgroundJobsConfig] = None,
    registry: Optional[JobRegistry] = None,
    logger: Optional[logging.Logger] = None,
    shutdown_event: Optional[asyncio.Event] = None,
    handlers_module: Optional[str] = None,
    engine: Optional[JobEngine] = None,
) -> JobEngine:
    """
    Run a job engine until shutdown_event is set.

    Args:
        config: BackgroundJobsConfig instance. If None, will load from environment.
        registry: JobRegistry instance. If None, will use global job_registry.
        logger: Logger instance. If None, will create default logger.
        shutdown_event: Event that ends the run. If None, runs until cancelled.
        handlers_module: Module path to load handlers from. If None, uses
            config.handlers_module, then the built-in handlers.
        engine: Prebuilt engine, for callers that submit jobs themselves.

    Returns:
        The engine, stopped.
    """
    if config is None:
        config = engine.config if engine is not None else BackgroundJobsConfig.from_env()

    if logger is None:
        logger = logging.getLogger(__name__)

    if registry is None:
        registry = engine.registry if engine is not None else job_registry

    if shutdown_event is None:
        shutdown_event = asyncio.Event()

    module_name = handlers_module or config.handlers_module or DEFAULT_HANDLERS_MODULE
    load_handlers(module_name, logger)

    if module_name == DEFAULT_HANDLERS_MODULE and registry is job_registry:
        from background_jobs.handlers.webhooks import create_webhook_handler

        # Default webhook delivery honours the configured timeout.
        registry.register(
            JobType.SEND_WEBHOOK,
            create_webhook_handler(config.webhook_timeout_seconds),
            warn_on_replace=False,
        )

    if engine is None:
        engine = JobEngine(config=config, registry=registry, logger=logger)

    await engine.start()
    try:
        await shutdown_event.wait()
    finally:
        await engine.stop()

    return engine


def main():
    """Main entrypoint for the engine process."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Background Jobs Engine")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum number of jobs processed at once (default: from env or 5)",
    )
    parser.add_argument(
        "--tick-interval",
        type=float,
        default=None,
        help="Seconds between safety-net dispatch ticks (default: from env or 1.0)",
    )
    parser.add_argument(
        "--handlers-module",
        default=None,
        help="Module that registers job handlers on import",
    )

    args = parser.parse_args()

    try:
        config = BackgroundJobsConfig.from_env()
        if args.concurrency is not None or args.tick_interval is not None:
            config = BackgroundJobsConfig(
                concurrency=args.concurrency or config.concurrency,
                tick_interval_seconds=args.tick_interval or config.tick_interval_seconds,
                backoff_policy=config.backoff_policy,
                dead_letter_size=config.dead_letter_size,
                webhook_timeout_seconds=config.webhook_timeout_seconds,
                required_job_types=config.required_job_types,
                handlers_module=config.handlers_module,
            )
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    async def run():
        """Async main function."""
        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(signum, shutdown_event.set)

        try:
            logger.info("Starting background jobs engine...")
            await run_engine(
                config=config,
                registry=job_registry,
                logger=logger,
                shutdown_event=shutdown_event,
                handlers_module=args.handlers_module,
            )
        except Exception as e:
            logger.error(f"Fatal error in engine: {e}", exc_info=True)
            sys.exit(1)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
