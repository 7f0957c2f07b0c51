"""Default statistics handler."""

import logging

from background_jobs.models import JobType
from background_jobs.registry import job_registry

logger = logging.getLogger(__name__)


@job_registry.handler(JobType.UPDATE_STATS)
async def update_stats(payload, job):
    """Recompute statistics for a tenant. The recomputation itself is external."""
    tenant_tag = payload.get("tenant_tag", job.tenant_tag)

    logger.info(f"Updating stats for tenant {tenant_tag} (job {job.id})")
