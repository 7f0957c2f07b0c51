"""Job handler registry."""

import logging
from collections.abc import Callable, Iterable
from typing import Optional

from background_jobs.models import type_tag

logger = logging.getLogger(__name__)


class JobRegistry:
    """Registry for job handlers."""

    def __init__(self):
        self._handlers: dict[str, Callable] = {}

    def register(
        self, job_type: str, func: Callable, warn_on_replace: bool = True
    ) -> Callable:
        """Bind a handler to a job type. The last registration wins."""
        job_type = type_tag(job_type)
        if warn_on_replace and job_type in self._handlers:
            logger.warning(f"Replacing handler for job type {job_type}")
        self._handlers[job_type] = func
        logger.info(f"Job handler registered for {job_type}")
        return func

    def handler(self, job_type: str):
        """
        Decorator to register a job handler.

        Usage:
            @registry.handler("send_notification")
            async def send_notification(payload, job):
                ...
        """

        def decorator(func: Callable):
            return self.register(job_type, func)

        return decorator

    def get_handler(self, job_type: str) -> Optional[Callable]:
        """Get a handler by job type."""
        return self._handlers.get(type_tag(job_type))

    def all_handlers(self) -> dict[str, Callable]:
        """Get all registered handlers."""
        return self._handlers.copy()

    def missing(self, job_types: Iterable[str]) -> list[str]:
        """Job types from the given list that have no handler."""
        return sorted({type_tag(t) for t in job_types} - set(self._handlers))

    def __contains__(self, job_type: str) -> bool:
        return type_tag(job_type) in self._handlers


# Global registry instance
job_registry = JobRegistry()
