"""In-memory dead letter buffer for jobs that failed permanently."""

import logging
from collections import OrderedDict
from typing import Any, List, Optional
from uuid import UUID

from background_jobs.errors import JobNotFoundError
from background_jobs.models import Job

logger = logging.getLogger(__name__)


class DeadLetterBuffer:
    """
    Bounded buffer of failed jobs, oldest evicted first.

    The buffer lives in process memory only. A max_size of 0 keeps nothing.
    """

    def __init__(self, max_size: int = 100):
        if max_size < 0:
            raise ValueError(f"max_size must be >= 0, got {max_size}")
        self.max_size = max_size
        self._jobs: "OrderedDict[UUID, Job]" = OrderedDict()

    def add(self, job: Job) -> None:
        if self.max_size == 0:
            return
        self._jobs[job.id] = job
        while len(self._jobs) > self.max_size:
            evicted_id, _ = self._jobs.popitem(last=False)
            logger.debug(f"Evicted job {evicted_id} from dead letter buffer")

    def get(self, job_id: UUID) -> Job:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise JobNotFoundError(job_id) from None

    def pop(self, job_id: UUID) -> Job:
        try:
            return self._jobs.pop(job_id)
        except KeyError:
            raise JobNotFoundError(job_id) from None

    def list(
        self,
        job_type: Optional[str] = None,
        tenant_tag: Optional[Any] = None,
    ) -> List[Job]:
        """List dead letters, oldest first, with optional filters."""
        jobs = list(self._jobs.values())
        if job_type is not None:
            jobs = [j for j in jobs if j.type == job_type]
        if tenant_tag is not None:
            jobs = [j for j in jobs if j.tenant_tag == tenant_tag]
        return jobs

    def clear(self) -> int:
        count = len(self._jobs)
        self._jobs.clear()
        return count

    def __contains__(self, job_id: UUID) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)
