import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_notification_task(self, user_id: int, title: str, body: str) -> None:
    """Log the notification; push delivery is handled by an external service."""
    logger.info({"event": "notification", "user_id": user_id, "title": title, "body": body})
