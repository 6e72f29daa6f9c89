import logging
from datetime import datetime, timedelta
from flask import current_app
from models import db
from models.order import Order, OrderStatusLog, Dispute
from models.product import Product
from models.user import UserProfile
from app.errors import (
    CommerceError,
    ConcurrentTransition,
    InvalidTransition,
    NotFound,
    OwnershipConflict,
    ValidationError,
)
from app.metrics import ORDER_TRANSITIONS
from app.services import chat_anchor
from app.services.coin_ledger import CoinLedgerService, loyalty_reward
from app.services.payouts import schedule_payout
from app.utils.db import conditional_add, expire_row

logger = logging.getLogger(__name__)

STATUSES = ("pending", "confirmed", "shipped", "delivered", "completed", "cancelled")
TERMINAL = ("completed", "cancelled")
PARTIES = frozenset({"buyer", "seller"})

# (from, to) -> roles allowed to apply it; None means "see confirmation policy"
TRANSITIONS = {
    ("pending", "confirmed"): None,
    ("confirmed", "shipped"): frozenset({"seller"}),
    ("shipped", "delivered"): frozenset({"buyer"}),
    ("delivered", "completed"): frozenset({"buyer", "seller", "system"}),
    ("pending", "cancelled"): PARTIES,
    ("confirmed", "cancelled"): PARTIES,
}

DISPUTABLE = ("shipped", "delivered")
# completed orders stay disputable until their payout has been created
PRE_PAYOUT = (None, "pending")
MIN_DISPUTE_DESCRIPTION = 10


def _confirmation_actors():
    policy = (current_app.config.get("ORDER_CONFIRMATION_ACTOR") or "seller").lower()
    if policy == "either":
        return PARTIES
    return frozenset({policy})


def allowed_actors(from_status, to_status):
    if (from_status, to_status) not in TRANSITIONS:
        return frozenset()
    actors = TRANSITIONS[(from_status, to_status)]
    return _confirmation_actors() if actors is None else actors


def _get_order(order_id) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found")
    return order


def open_dispute_exists(order_id) -> bool:
    return db.session.query(Dispute.id).filter_by(order_id=order_id, status="open").first() is not None


def _on_completed(order, now):
    schedule_payout(order, now)
    seller = db.session.get(UserProfile, order.seller_id)
    if seller is not None and seller.loyalty_enabled:
        reward = loyalty_reward(order.total_amount, seller.loyalty_percentage)
        if reward > 0:
            CoinLedgerService.credit(order.buyer_id, reward, type="EARN", order_id=order.id, note=f"Loyalty reward for order #{order.id}")


def _on_cancelled(order):
    if order.coin_redeemed:
        CoinLedgerService.credit(order.buyer_id, order.coin_redeemed, type="REFUND", order_id=order.id, note=f"Order #{order.id} cancelled")
    stock = Product.__table__.c.stock_quantity
    for item in order.items:
        conditional_add(stock, Product.__table__.c.id, item.product_id, item.quantity)
        expire_row(Product, item.product_id, "stock_quantity")


def transition(order_id, to_status, actor_id=None, now=None) -> Order:
    """Move an order along one edge of the lifecycle.

    ``actor_id=None`` acts as the system. The update is conditional on the
    status and version read here; losing that race raises
    ``ConcurrentTransition`` and changes nothing. Does NOT commit.
    """
    if to_status not in STATUSES:
        raise ValidationError(f"Unknown order status: {to_status}")
    order = _get_order(order_id)
    role = "system" if actor_id is None else order.role_of(actor_id)
    if role is None:
        raise OwnershipConflict("You are not a party to this order")

    from_status = order.status
    if from_status in TERMINAL:
        raise InvalidTransition(f"Order is already {from_status}")
    allowed = allowed_actors(from_status, to_status)
    if not allowed:
        raise InvalidTransition(f"Cannot move order from {from_status} to {to_status}")
    if role not in allowed:
        raise InvalidTransition(f"The {role} cannot move this order from {from_status} to {to_status}")
    if to_status == "completed" and open_dispute_exists(order.id):
        raise InvalidTransition("Resolve the open dispute before completing this order")

    now = now or datetime.utcnow()
    values = {"status": to_status, "version": Order.__table__.c.version + 1, "updated_at": now}
    if to_status == "completed":
        values["completed_at"] = now
    table = Order.__table__
    stmt = (
        table.update()
        .where(table.c.id == order.id, table.c.status == from_status, table.c.version == order.version)
        .values(values)
    )
    db.session.flush()
    if db.session.execute(stmt).rowcount != 1:
        raise ConcurrentTransition("Order was updated by someone else; reload and try again")
    expire_row(Order, order.id)

    db.session.add(
        OrderStatusLog(order_id=order.id, from_status=from_status, to_status=to_status, actor_id=actor_id, actor_role=role)
    )
    if order.chat_id:
        chat_anchor.append_message(
            order.chat_id,
            actor_id or order.seller_id,
            f"ORDER STATUS: {to_status.upper()}",
            is_system=True,
        )

    if to_status == "completed":
        _on_completed(order, now)
    elif to_status == "cancelled":
        _on_cancelled(order)

    ORDER_TRANSITIONS.labels(from_status, to_status, role).inc()
    logger.info({"event": "order_transition", "order_id": order.id, "from": from_status, "to": to_status, "actor_role": role})
    return order


def raise_dispute(order_id, user_id, reason, description) -> Dispute:
    """Buyer-only. Allowed while shipped or delivered, and on a completed order
    until its payout is created. Blocks completion, auto-completion, payout and
    withdrawal of the held proceeds while open. Does NOT commit.
    """
    order = _get_order(order_id)
    role = order.role_of(user_id)
    if role is None:
        raise OwnershipConflict("You are not a party to this order")
    if role != "buyer":
        raise OwnershipConflict("Only the buyer can open a dispute")
    disputable = order.status in DISPUTABLE or (order.status == "completed" and order.payout_status in PRE_PAYOUT)
    if not disputable:
        raise InvalidTransition(f"Cannot dispute an order that is {order.status}")
    reason = (reason or "").strip()
    description = (description or "").strip()
    if not reason:
        raise ValidationError("A reason is required")
    if len(description) < MIN_DISPUTE_DESCRIPTION:
        raise ValidationError(f"Description must be at least {MIN_DISPUTE_DESCRIPTION} characters")
    if open_dispute_exists(order.id):
        raise InvalidTransition("A dispute is already open for this order")

    dispute = Dispute(order_id=order.id, raised_by=user_id, reason=reason, description=description, status="open")
    db.session.add(dispute)
    if order.chat_id:
        chat_anchor.append_message(order.chat_id, user_id, f"DISPUTE OPENED: {reason}", is_system=True)
    db.session.flush()
    logger.info({"event": "dispute_opened", "order_id": order.id, "dispute_id": dispute.id})
    return dispute


def orders_for(user_id, role=None):
    q = Order.query
    if role == "buyer":
        q = q.filter(Order.buyer_id == user_id)
    elif role == "seller":
        q = q.filter(Order.seller_id == user_id)
    else:
        q = q.filter((Order.buyer_id == user_id) | (Order.seller_id == user_id))
    return q.order_by(Order.id.desc()).all()


def order_for_party(order_id, user_id) -> Order:
    order = _get_order(order_id)
    if order.role_of(user_id) is None:
        raise NotFound("Order not found")
    return order


def auto_complete(now=None) -> dict:
    """Complete orders left in ``delivered`` past the timeout with no open dispute."""
    now = now or datetime.utcnow()
    days = int(current_app.config.get("ORDER_AUTO_COMPLETE_DAYS", 3))
    cutoff = now - timedelta(days=days)
    open_dispute = Order.disputes.any(Dispute.status == "open")
    ids = [
        oid
        for (oid,) in db.session.query(Order.id)
        .filter(Order.status == "delivered", Order.updated_at <= cutoff, ~open_dispute)
        .order_by(Order.id)
        .all()
    ]
    summary = {"scanned": len(ids), "completed": 0, "skipped": 0, "errors": 0}
    for oid in ids:
        try:
            transition(oid, "completed", actor_id=None, now=now)
            db.session.commit()
            summary["completed"] += 1
        except CommerceError as e:
            db.session.rollback()
            logger.info({"event": "auto_complete_skipped", "order_id": oid, "reason": e.message})
            summary["skipped"] += 1
        except Exception:
            db.session.rollback()
            logger.exception("Auto-complete failed for order %s", oid)
            summary["errors"] += 1
    logger.info({"event": "auto_complete", **summary})
    return summary
