"""Default job handlers.

Importing this package registers the handlers on the global job_registry.
"""

from background_jobs.handlers.notifications import (
    send_email,
    send_notification,
    send_whatsapp,
)
from background_jobs.handlers.stats import update_stats
from background_jobs.handlers.webhooks import (
    create_webhook_handler,
    deliver_webhook,
    send_webhook,
)

__all__ = [
    "send_email",
    "send_notification",
    "send_whatsapp",
    "update_stats",
    "create_webhook_handler",
    "deliver_webhook",
    "send_webhook",
]
