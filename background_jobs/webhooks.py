"""Helpers for queueing signed outgoing webhooks."""

import hashlib
import hmac
import json
import logging
from typing import Any, Optional
from uuid import UUID

from background_jobs.models import JobType, utcnow

logger = logging.getLogger(__name__)


def _canonical_json(payload: Any) -> bytes:
    return json.dumps(payload, separators=(",", ":"), default=str).encode("utf-8")


def sign_payload(payload: Any, secret: Optional[str]) -> str:
    """HMAC-SHA256 signature of the JSON payload, as ``sha256=<hex>``."""
    if not secret:
        return ""
    digest = hmac.new(secret.encode("utf-8"), _canonical_json(payload), hashlib.sha256)
    return f"sha256={digest.hexdigest()}"


def verify_signature(payload: Any, signature: str, secret: Optional[str]) -> bool:
    """Check a signature produced by sign_payload in constant time."""
    expected = sign_payload(payload, secret)
    return hmac.compare_digest(signature or "", expected)


def enqueue_webhook(
    engine,
    *,
    url: str,
    event: str,
    data: Any,
    tenant_tag: Optional[str] = None,
    secret: Optional[str] = None,
    webhook_id: Optional[str] = None,
    retries: int = 3,
    priority: int = 0,
) -> UUID:
    """
    Queue delivery of one webhook event.

    Args:
        engine: JobEngine to submit to
        url: Destination URL
        event: Event name, e.g. "order.created"
        data: Event data, sent as the "data" field of the body
        tenant_tag: Tenant the event belongs to
        secret: Shared secret used to sign the body
        webhook_id: Identifier of the webhook subscription, for tracing
        retries: Retry budget for the delivery

    Returns:
        UUID: The id of the send_webhook job
    """
    body = {
        "event": event,
        "timestamp": utcnow().isoformat(),
        "tenant_tag": tenant_tag,
        "data": data,
    }
    headers = {
        "X-Webhook-Event": event,
        "X-Webhook-Signature": sign_payload(data, secret),
    }
    if tenant_tag is not None:
        headers["X-Tenant-Id"] = str(tenant_tag)

    job_id = engine.submit(
        JobType.SEND_WEBHOOK,
        {"url": url, "payload": body, "headers": headers, "webhook_id": webhook_id},
        retries=retries,
        priority=priority,
        tenant_tag=tenant_tag,
    )
    logger.info(f"Webhook event {event} queued for {url} as job {job_id}")
    return job_id
