import logging
from celery import shared_task
from app.services import payouts
from app.telemetry import tracer
from app.tasks.context import app_context

logger = logging.getLogger(__name__)


@shared_task(name="payouts.scan")
def scan_payouts_task() -> dict:
    """Periodic settlement pass; dispatches one execution task per payout."""
    with app_context(), tracer.start_as_current_span("payouts.scan"):
        return payouts.scan_payouts()


@shared_task(name="payouts.execute", bind=True, max_retries=3, default_retry_delay=60)
def execute_payout_task(self, payout_id: int) -> str:
    with app_context(), tracer.start_as_current_span("payouts.execute") as span:
        span.set_attribute("payout.id", payout_id)
        outcome = payouts.execute_payout(payout_id)
        span.set_attribute("payout.outcome", outcome)
        logger.info({"event": "payout_task_done", "payout_id": payout_id, "outcome": outcome})
        return outcome
