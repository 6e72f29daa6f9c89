import logging
from celery import shared_task
from flask import current_app
from models import db
from models.user import UserProfile
from app.services.coin_ledger import CoinLedgerService
from app.tasks.context import app_context
from app.utils import transactional

logger = logging.getLogger(__name__)


def reconcile_all(repair=False) -> dict:
    """Compare every cached coin balance with its ledger; flag orders without a SPEND row."""
    summary = {"users": 0, "drifted": 0, "repaired": 0, "orders_missing_spend": []}
    user_ids = [uid for (uid,) in db.session.query(UserProfile.id).order_by(UserProfile.id).all()]
    for uid in user_ids:
        with transactional("Coin ledger reconciliation failed"):
            result = CoinLedgerService.reconcile(uid, repair=repair)
        summary["users"] += 1
        if result["drift"]:
            summary["drifted"] += 1
        if result["repaired"]:
            summary["repaired"] += 1
    missing = CoinLedgerService.orders_missing_spend()
    summary["orders_missing_spend"] = [o.id for o in missing]
    for order in missing:
        logger.error({"event": "order_missing_coin_debit", "order_id": order.id, "buyer_id": order.buyer_id, "coin_redeemed": order.coin_redeemed})
    logger.info({"event": "coin_reconciliation", **{k: v for k, v in summary.items() if k != "orders_missing_spend"}})
    return summary


@shared_task(name="coins.reconcile")
def reconcile_coin_ledger_task(repair=None) -> dict:
    with app_context():
        if repair is None:
            repair = bool(current_app.config.get("COIN_LEDGER_AUTO_REPAIR"))
        return reconcile_all(repair=repair)
