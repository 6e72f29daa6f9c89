import logging
from decimal import Decimal, ROUND_FLOOR
from flask import current_app
from sqlalchemy import func, case, select
from models import db
from models.user import UserProfile
from models.coin import CoinTransaction
from models.order import Order
from app.errors import InsufficientFunds, NotFound, ValidationError
from app.utils.db import conditional_add, expire_row

logger = logging.getLogger(__name__)

DEFAULT_DISCOUNT_RATE = Decimal("0.05")
CREDIT_TYPES = ("EARN", "REFUND", "ADJUSTMENT")


def _rate():
    try:
        return Decimal(str(current_app.config.get("COIN_DISCOUNT_RATE", DEFAULT_DISCOUNT_RATE)))
    except RuntimeError:
        # outside an app context
        return DEFAULT_DISCOUNT_RATE


def max_discount(subtotal, rate=None) -> int:
    """Largest number of coins a single vendor group may redeem."""
    rate = _rate() if rate is None else Decimal(str(rate))
    cap = (Decimal(str(subtotal)) * rate).to_integral_value(rounding=ROUND_FLOOR)
    return max(int(cap), 0)


def compute_discount(subtotal, coin_balance, apply_coins, rate=None) -> int:
    if not apply_coins:
        return 0
    balance = max(int(coin_balance or 0), 0)
    return min(balance, max_discount(subtotal, rate))


def loyalty_reward(total_amount, percentage) -> int:
    pct = int(percentage or 0)
    if pct <= 0:
        return 0
    reward = (Decimal(str(total_amount)) * pct / Decimal(100)).to_integral_value(rounding=ROUND_FLOOR)
    return max(int(reward), 0)


_coin_column = UserProfile.__table__.c.coin_balance
_user_pk = UserProfile.__table__.c.id


class CoinLedgerService:
    """Applies coin movements: cached balance and ledger row in the caller's transaction.

    Nothing here commits.
    """

    @staticmethod
    def balance(user_id) -> int:
        value = db.session.query(UserProfile.coin_balance).filter(UserProfile.id == user_id).scalar()
        return int(value or 0)

    @classmethod
    def conditional_debit(cls, user_id, amount, order_id=None, note=None) -> int:
        amount = int(amount)
        if amount <= 0:
            raise ValidationError("Debit amount must be positive")
        if not conditional_add(_coin_column, _user_pk, user_id, -amount):
            current = cls.balance(user_id)
            raise InsufficientFunds(
                f"Insufficient coin balance: {current} available, {amount} required",
                limit=current,
            )
        db.session.add(
            CoinTransaction(
                user_id=user_id,
                amount=amount,
                type="SPEND",
                direction="debit",
                reference_order_id=order_id,
                note=note,
            )
        )
        expire_row(UserProfile, user_id, "coin_balance")
        logger.info({"event": "coins_debited", "user_id": user_id, "amount": amount, "order_id": order_id})
        return cls.balance(user_id)

    @classmethod
    def credit(cls, user_id, amount, type="EARN", order_id=None, note=None) -> int:
        amount = int(amount)
        if type not in CREDIT_TYPES:
            raise ValidationError(f"Unsupported coin credit type: {type}")
        if amount <= 0:
            raise ValidationError("Credit amount must be positive")
        if not conditional_add(_coin_column, _user_pk, user_id, amount):
            raise NotFound("User not found")
        db.session.add(
            CoinTransaction(
                user_id=user_id,
                amount=amount,
                type=type,
                direction="credit",
                reference_order_id=order_id,
                note=note,
            )
        )
        expire_row(UserProfile, user_id, "coin_balance")
        logger.info({"event": "coins_credited", "user_id": user_id, "amount": amount, "type": type, "order_id": order_id})
        return cls.balance(user_id)

    @staticmethod
    def ledger_balance(user_id) -> int:
        signed = case(
            (CoinTransaction.direction == "credit", CoinTransaction.amount),
            else_=-CoinTransaction.amount,
        )
        total = db.session.query(func.coalesce(func.sum(signed), 0)).filter(
            CoinTransaction.user_id == user_id
        ).scalar()
        return int(total or 0)

    @classmethod
    def reconcile(cls, user_id, repair=False) -> dict:
        """Compare the cached balance with the ledger sum.

        With ``repair`` an ADJUSTMENT row is written so the ledger matches the
        cached balance. The cached balance is the one checkout debits against,
        so it is treated as authoritative.
        """
        cached = cls.balance(user_id)
        ledger = cls.ledger_balance(user_id)
        drift = cached - ledger
        result = {"user_id": user_id, "cached": cached, "ledger": ledger, "drift": drift, "repaired": False}
        if drift == 0:
            return result
        logger.warning({"event": "coin_ledger_drift", **result})
        if repair:
            db.session.add(
                CoinTransaction(
                    user_id=user_id,
                    amount=abs(drift),
                    type="ADJUSTMENT",
                    direction="credit" if drift > 0 else "debit",
                    note="ledger reconciliation",
                )
            )
            result["repaired"] = True
        return result

    @staticmethod
    def orders_missing_spend():
        """Orders that redeemed coins but have no SPEND row."""
        spend = select(CoinTransaction.reference_order_id).where(
            CoinTransaction.type == "SPEND", CoinTransaction.reference_order_id.isnot(None)
        )
        return (
            Order.query.filter(Order.coin_redeemed > 0, ~Order.id.in_(spend))
            .order_by(Order.id)
            .all()
        )
