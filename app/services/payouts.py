"""Escrow settlement: completion-driven payout scheduling, the periodic scan,
per-payout execution with retry, and seller withdrawals.

Scheduling runs inside the caller's transaction. ``scan_payouts`` and
``execute_payout`` own their transactions: each order or payout is committed
or rolled back on its own so one bad row never stalls the rest.
"""
import logging
import uuid
from collections import Counter
from datetime import datetime, timedelta
from decimal import InvalidOperation
from flask import current_app
from sqlalchemy import and_, func, or_
from models import db
from models.order import Order, Dispute
from models.payout import Payout
from models.user import UserProfile
from app.errors import InsufficientFunds, NotFound, PayoutFailure, ValidationError
from app.integrations.payouts import build_gateway
from app.metrics import PAYOUT_OUTCOMES
from app.services.escrow import credit_escrow, debit_escrow, escrow_balance, to_money
from app.utils.db import expire_row

logger = logging.getLogger(__name__)

SUCCESS = "success"
RETRYABLE_FAILURE = "retryable_failure"
PERMANENT_FAILURE = "permanent_failure"
SKIPPED = "skipped"


def _cfg(key, default):
    return current_app.config.get(key, default)


def _reference(prefix, owner_id):
    return f"{prefix}-{owner_id}-{uuid.uuid4().hex[:12]}"


def retry_delay(attempts) -> timedelta:
    base = int(_cfg("PAYOUT_RETRY_BASE_SECONDS", 3600))
    cap = int(_cfg("PAYOUT_RETRY_MAX_SECONDS", 6 * 3600))
    return timedelta(seconds=min(base * 2 ** max(attempts - 1, 0), cap))


def _dispatch(payout_id):
    from app.tasks.payouts import execute_payout_task
    execute_payout_task.delay(payout_id)


def dispatch_payout(payout_id):
    """Hand one payout to the worker queue."""
    _dispatch(payout_id)


# scheduling

def schedule_payout(order, now=None):
    """Called when an order enters ``completed``: hold the proceeds in escrow
    and start the holding period."""
    now = now or datetime.utcnow()
    hours = float(_cfg("PAYOUT_HOLDING_PERIOD_HOURS", 1))
    order.completed_at = order.completed_at or now
    order.payout_eligible_at = order.completed_at + timedelta(hours=hours)
    amount = to_money(order.total_amount)
    if amount <= 0:
        order.payout_status = "settled"
        return order
    order.payout_status = None
    credit_escrow(order.seller_id, amount, type="hold", reference=f"order:{order.id}")
    logger.info({"event": "payout_scheduled", "order_id": order.id, "eligible_at": order.payout_eligible_at.isoformat()})
    return order


def _open_dispute(order_id) -> bool:
    return db.session.query(Dispute.id).filter_by(order_id=order_id, status="open").first() is not None


def disputed_hold(user_id):
    """Proceeds in escrow for completed orders that are disputed and not yet paid out."""
    total = (
        db.session.query(func.coalesce(func.sum(Order.total_amount), 0))
        .filter(
            Order.seller_id == user_id,
            Order.status == "completed",
            or_(Order.payout_status.is_(None), Order.payout_status == "pending"),
            Order.disputes.any(Dispute.status == "open"),
        )
        .scalar()
    )
    return to_money(total)


def withdrawable_balance(user_id):
    return max(escrow_balance(user_id) - disputed_hold(user_id), to_money(0))


def _due_orders(now, limit):
    open_dispute = Order.disputes.any(Dispute.status == "open")
    return (
        Order.query.filter(
            Order.status == "completed",
            Order.payout_eligible_at <= now,
            or_(Order.payout_status.is_(None), Order.payout_status == "pending"),
            ~open_dispute,
        )
        .order_by(Order.payout_eligible_at, Order.id)
        .limit(limit)
        .all()
    )


def _prepare_order_payout(order_id, now) -> str:
    order = Order.query.filter_by(id=order_id).with_for_update().first()
    if order is None or order.status != "completed" or order.payout_status not in (None, "pending"):
        return "skipped"
    if _open_dispute(order.id) or (order.payout_eligible_at and order.payout_eligible_at > now):
        return "skipped"

    seller = db.session.get(UserProfile, order.seller_id)
    if not seller.has_bank_details:
        if order.payout_status != "pending":
            order.payout_status = "pending"
            order.payout_error_log = "Seller has no bank details on file"
            logger.info({"event": "payout_awaiting_bank", "order_id": order.id, "seller_id": seller.id})
        return "awaiting_bank"

    amount = min(to_money(order.total_amount), escrow_balance(seller.id))
    if amount <= 0:
        # proceeds already drawn by a withdrawal
        order.payout_status = "settled"
        return "settled"

    reference = _reference("PO", order.id)
    if not debit_escrow(seller.id, amount, type="payout", reference=reference):
        return "skipped"
    db.session.add(
        Payout(
            kind="order",
            order_id=order.id,
            user_id=seller.id,
            amount=amount,
            status="pending",
            reference=reference,
            **seller.bank_snapshot(),
        )
    )
    order.payout_status = "processing"
    order.payout_error_log = None
    logger.info({"event": "payout_created", "order_id": order.id, "amount": str(amount), "reference": reference})
    return "queued"


def _release_stale_claims(now) -> int:
    """Put payouts left in ``processing`` past the lease back on the retry queue.

    The transfer reuses the payout reference, so the gateway can reject a
    duplicate if the earlier attempt did go through.
    """
    lease = timedelta(seconds=int(_cfg("PAYOUT_PROCESSING_LEASE_SECONDS", 900)))
    stale = (
        Payout.query.filter(Payout.status == "processing", Payout.updated_at <= now - lease)
        .order_by(Payout.id)
        .all()
    )
    for payout in stale:
        message = "Processing lease expired before the transfer was recorded"
        payout.status = "retry_queued"
        payout.next_attempt_at = now
        payout.last_error = message
        payout.updated_at = now
        _mirror_order(payout, "retry_queued", message, eligible_at=now)
        logger.warning({"event": "payout_claim_expired", "payout_id": payout.id, "attempts": payout.attempts})
    return len(stale)


def _dispatchable_payouts(now, limit):
    return [
        pid
        for (pid,) in db.session.query(Payout.id)
        .filter(
            or_(
                Payout.status == "pending",
                and_(Payout.status == "retry_queued", Payout.next_attempt_at <= now),
            )
        )
        .order_by(Payout.id)
        .limit(limit)
        .all()
    ]


def scan_payouts(now=None) -> dict:
    """One pass of the settlement loop. Returns a summary of what happened."""
    now = now or datetime.utcnow()
    limit = int(_cfg("PAYOUT_SCAN_LIMIT", 200))
    summary = Counter()

    order_ids = [o.id for o in _due_orders(now, limit)]
    summary["orders_scanned"] = len(order_ids)
    for order_id in order_ids:
        try:
            outcome = _prepare_order_payout(order_id, now)
            db.session.commit()
            summary[outcome] += 1
        except Exception:
            db.session.rollback()
            logger.exception("Payout preparation failed for order %s", order_id)
            summary["errors"] += 1

    try:
        released = _release_stale_claims(now)
        db.session.commit()
        if released:
            summary["requeued"] = released
    except Exception:
        db.session.rollback()
        logger.exception("Releasing stale payout claims failed")
        summary["errors"] += 1

    for payout_id in _dispatchable_payouts(now, limit):
        try:
            _dispatch(payout_id)
            summary["dispatched"] += 1
        except Exception:
            db.session.rollback()
            logger.exception("Payout dispatch failed for payout %s", payout_id)
            summary["errors"] += 1

    result = dict(summary)
    logger.info({"event": "payout_scan", **result})
    return result


# execution

def _is_executable(payout, now) -> bool:
    if payout.status == "pending":
        return True
    return payout.status == "retry_queued" and payout.next_attempt_at is not None and payout.next_attempt_at <= now


def _claim(payout, now) -> bool:
    table = Payout.__table__
    stmt = (
        table.update()
        .where(table.c.id == payout.id, table.c.status == payout.status)
        .values(status="processing", attempts=table.c.attempts + 1, updated_at=now)
    )
    claimed = db.session.execute(stmt).rowcount == 1
    expire_row(Payout, payout.id)
    return claimed


def _mirror_order(payout, status, error=None, eligible_at=None):
    if payout.kind != "order" or payout.order is None:
        return
    order = payout.order
    order.payout_status = status
    order.payout_error_log = error
    if eligible_at is not None:
        order.payout_eligible_at = eligible_at


def _notify(user_id, title, body):
    from app.tasks.notifications import send_notification_task
    send_notification_task.delay(user_id, title, body)


def execute_payout(payout_id, now=None, gateway=None) -> str:
    """Attempt one transfer.

    Returns ``success``, ``retryable_failure``, ``permanent_failure`` or
    ``skipped`` when the payout is not executable right now.
    """
    now = now or datetime.utcnow()
    payout = db.session.get(Payout, payout_id)
    if payout is None:
        raise NotFound("Payout not found")
    if not _is_executable(payout, now) or not _claim(payout, now):
        db.session.rollback()
        return SKIPPED
    db.session.commit()

    reason = f"Order #{payout.order_id} payout" if payout.kind == "order" else "Seller withdrawal"
    try:
        gateway = gateway or build_gateway(current_app.config)
        gateway.transfer(
            amount=payout.amount,
            recipient_code=payout.recipient_code,
            reference=payout.reference,
            reason=reason,
        )
    except Exception as e:
        if isinstance(e, PayoutFailure):
            retryable, message = e.retryable, e.message
        else:
            logger.exception("Unexpected gateway error for payout %s", payout.id)
            retryable, message = True, str(e)
        outcome = _record_failure(payout, message, retryable, now)
    else:
        payout.status = "success"
        payout.last_error = None
        payout.next_attempt_at = None
        _mirror_order(payout, "paid")
        outcome = SUCCESS
        logger.info({"event": "payout_success", "payout_id": payout.id, "amount": str(payout.amount), "reference": payout.reference})
    db.session.commit()

    PAYOUT_OUTCOMES.labels(payout.kind, outcome).inc()
    if outcome == SUCCESS:
        _notify(payout.user_id, "Payout sent", f"{payout.amount} has been sent to your bank account.")
    elif outcome == PERMANENT_FAILURE:
        _notify(payout.user_id, "Payout failed", "Your payout could not be completed; the funds are back in escrow.")
    return outcome


def _record_failure(payout, message, retryable, now) -> str:
    max_attempts = int(_cfg("PAYOUT_MAX_ATTEMPTS", 5))
    payout.last_error = message
    if retryable and payout.attempts < max_attempts:
        next_at = now + retry_delay(payout.attempts)
        payout.status = "retry_queued"
        payout.next_attempt_at = next_at
        _mirror_order(payout, "retry_queued", message, eligible_at=next_at)
        logger.warning({"event": "payout_retry_queued", "payout_id": payout.id, "attempts": payout.attempts, "next_attempt_at": next_at.isoformat(), "error": message})
        return RETRYABLE_FAILURE

    payout.status = "failed"
    payout.next_attempt_at = None
    credit_escrow(payout.user_id, payout.amount, type="release_back", reference=payout.reference)
    _mirror_order(payout, "failed", message)
    logger.error({"event": "payout_failed", "payout_id": payout.id, "attempts": payout.attempts, "error": message})
    return PERMANENT_FAILURE


# withdrawals

def request_withdrawal(user, amount) -> Payout:
    """Debit escrow and queue a withdrawal payout. Does NOT commit or dispatch."""
    try:
        amount = to_money(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Amount must be a number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be positive")
    minimum = to_money(_cfg("MIN_WITHDRAWAL_AMOUNT", "500"))
    if amount < minimum:
        raise ValidationError(f"Minimum withdrawal is {minimum}", minimum=float(minimum))
    if not user.has_bank_details:
        raise ValidationError("Add your bank details before withdrawing")

    available = withdrawable_balance(user.id)
    if amount > available:
        raise InsufficientFunds("Withdrawal exceeds your withdrawable escrow balance", limit=available)

    reference = _reference("WD", user.id)
    if not debit_escrow(user.id, amount, type="withdrawal", reference=reference):
        raise InsufficientFunds("Withdrawal exceeds your withdrawable escrow balance", limit=withdrawable_balance(user.id))
    payout = Payout(
        kind="withdrawal",
        user_id=user.id,
        amount=amount,
        status="pending",
        reference=reference,
        **user.bank_snapshot(),
    )
    db.session.add(payout)
    db.session.flush()
    logger.info({"event": "withdrawal_requested", "payout_id": payout.id, "amount": str(amount)})
    return payout


def payouts_for(user_id, limit=50):
    return Payout.query.filter_by(user_id=user_id).order_by(Payout.id.desc()).limit(limit).all()
