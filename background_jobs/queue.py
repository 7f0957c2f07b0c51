"""Per-type job queues."""

import bisect
from datetime import datetime
from typing import Iterator, List, Optional

from background_jobs.models import Job, JobStatus


class TypeQueue:
    """
    Ordered collection of the live jobs of one job type.

    Jobs are kept sorted by priority (highest first) and then run_at
    (earliest first). Jobs with equal keys keep their insertion order.
    Only pending and processing jobs live here; terminal jobs are removed.
    """

    def __init__(self, job_type: str):
        self.job_type = job_type
        self._jobs: List[Job] = []

    def insert(self, job: Job) -> None:
        """Insert a job at its priority/run_at position."""
        bisect.insort_right(self._jobs, job, key=Job.sort_key)

    def remove(self, job: Job) -> bool:
        """Remove a job. Returns False if it was not queued."""
        try:
            self._jobs.remove(job)
        except ValueError:
            return False
        return True

    def reschedule(self, job: Job) -> None:
        """Move a job to the position matching its (new) run_at."""
        self.remove(job)
        self.insert(job)

    def next_ready(self, now: datetime) -> Optional[Job]:
        """The first pending job whose run_at has elapsed, if any."""
        for job in self._jobs:
            if job.is_ready(now):
                return job
        return None

    def count(self, status: JobStatus) -> int:
        return sum(1 for job in self._jobs if job.status == status)

    def __iter__(self) -> Iterator[Job]:
        return iter(list(self._jobs))

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job: Job) -> bool:
        return job in self._jobs
