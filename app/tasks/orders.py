import logging
from celery import shared_task
from app.services import order_lifecycle
from app.tasks.context import app_context

logger = logging.getLogger(__name__)


@shared_task(name="orders.auto_complete")
def auto_complete_orders_task() -> dict:
    with app_context():
        return order_lifecycle.auto_complete()
