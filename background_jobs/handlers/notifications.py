"""Default notification handlers.

The real senders (push provider, SMTP, WhatsApp gateway) live outside this
library; these handlers only log what would be sent.
"""

import logging

from background_jobs.models import JobType
from background_jobs.registry import job_registry

logger = logging.getLogger(__name__)


@job_registry.handler(JobType.SEND_NOTIFICATION)
async def send_notification(payload, job):
    """
    Send a push notification.

    Args:
        payload: Dict with user_id, title and optional body
        job: The job record being processed
    """
    user_id = payload.get("user_id")
    title = payload.get("title")

    logger.info(f"Sending notification to user {user_id}: {title} (job {job.id})")


@job_registry.handler(JobType.SEND_EMAIL)
async def send_email(payload, job):
    """Send an email. Payload: to, subject, optional body/template."""
    to = payload.get("to")
    subject = payload.get("subject")

    logger.info(f"Sending email to {to}: {subject} (job {job.id})")


@job_registry.handler(JobType.SEND_WHATSAPP)
async def send_whatsapp(payload, job):
    to = payload.get("to")

    logger.info(f"Sending WhatsApp message to {to} (job {job.id})")
