import os
import logging
from celery import Celery
from celery.schedules import crontab
from celery.signals import task_failure, task_retry, setup_logging

broker_url = os.environ.get("CELERY_BROKER_URL", "memory://")
backend_url = os.environ.get("CELERY_RESULT_BACKEND", "cache+memory://")

celery_app = Celery(
    "storelink",
    broker=broker_url,
    backend=backend_url,
    include=[
        "app.tasks.payouts",
        "app.tasks.orders",
        "app.tasks.ledger",
        "app.tasks.notifications",
    ],
)
celery_app.conf.task_always_eager = os.environ.get("CELERY_TASK_ALWAYS_EAGER", "0") == "1"
celery_app.conf.task_eager_propagates = True
celery_app.conf.task_store_eager_result = False
celery_app.conf.beat_schedule = {
    "scan-payouts": {
        "task": "payouts.scan",
        "schedule": float(os.environ.get("PAYOUT_SCAN_INTERVAL_SECONDS", 300)),
    },
    "auto-complete-orders": {
        "task": "orders.auto_complete",
        "schedule": crontab(minute=0),
    },
    "reconcile-coin-ledger": {
        "task": "coins.reconcile",
        "schedule": crontab(hour=3, minute=15),
    },
}

logger = logging.getLogger(__name__)


def init_celery(app):
    """Align task execution mode with the Flask config."""
    if app.config.get("CELERY_TASK_ALWAYS_EAGER"):
        celery_app.conf.task_always_eager = True


@setup_logging.connect
def _configure_logging(**kwargs):
    from app.logging import configure_worker_logging
    configure_worker_logging()


@task_failure.connect
def _log_failure(sender=None, task_id=None, exception=None, **kwargs):
    logger.error("Task %s failed: %s", getattr(sender, 'name', task_id), exception)


@task_retry.connect
def _log_retry(sender=None, request=None, reason=None, **kwargs):
    logger.warning("Task %s retry due to: %s", getattr(sender, 'name', ''), reason)
