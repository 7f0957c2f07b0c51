"""Outgoing webhook delivery handler."""

import logging
from typing import Any, Dict, Optional

import aiohttp

from background_jobs.errors import WebhookDeliveryError
from background_jobs.models import JobType
from background_jobs.registry import job_registry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


async def deliver_webhook(
    url: str,
    payload: Any,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> int:
    """
    POST a JSON payload to a webhook URL.

    Returns:
        The HTTP status code of the response

    Raises:
        WebhookDeliveryError: On a non-2xx response or a network error
    """
    request_headers = {"Content-Type": "application/json"}
    request_headers.update(headers or {})

    async with aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=timeout)
    ) as session:
        try:
            async with session.post(url, json=payload, headers=request_headers) as resp:
                if resp.status < 200 or resp.status >= 300:
                    response_body = await resp.text()
                    raise WebhookDeliveryError(
                        status_code=resp.status,
                        message=f"Webhook failed: {response_body}",
                        response_body=response_body,
                    )
                return resp.status

        except aiohttp.ClientError as e:
            raise WebhookDeliveryError(
                status_code=0,
                message=f"Network error: {str(e)}",
            ) from e


def create_webhook_handler(timeout: float = DEFAULT_TIMEOUT_SECONDS):
    """Build a send_webhook handler using the given request timeout."""

    async def send_webhook(payload, job):
        """
        Deliver a webhook.

        Args:
            payload: Dict with url, payload (the JSON body) and optional headers
            job: The job record being processed
        """
        url = payload["url"]
        status = await deliver_webhook(
            url,
            payload.get("payload"),
            headers=payload.get("headers"),
            timeout=timeout,
        )
        logger.info(f"Webhook sent to {url} with status {status} (job {job.id})")

    return send_webhook


send_webhook = job_registry.register(JobType.SEND_WEBHOOK, create_webhook_handler())
