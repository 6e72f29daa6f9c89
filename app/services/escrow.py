from decimal import Decimal, ROUND_HALF_UP
from models import db
from models.user import UserProfile
from models.payout import EscrowLedgerEntry
from app.errors import NotFound, ValidationError
from app.utils.db import conditional_add, expire_row

TWOPLACES = Decimal("0.01")

_escrow_column = UserProfile.__table__.c.escrow_balance
_user_pk = UserProfile.__table__.c.id


def to_money(value) -> Decimal:
    d = Decimal(str(value))
    return d.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def escrow_balance(user_id) -> Decimal:
    value = db.session.query(UserProfile.escrow_balance).filter(UserProfile.id == user_id).scalar()
    return to_money(value or 0)


def credit_escrow(user_id, amount, *, type: str, reference: str = None) -> Decimal:
    """
    Add ``amount`` to the user's escrow balance and record a ledger entry.
    Returns the new balance. Does NOT commit.
    """
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Escrow credit must be positive")
    if not conditional_add(_escrow_column, _user_pk, user_id, amount):
        raise NotFound("User not found")
    db.session.add(
        EscrowLedgerEntry(user_id=user_id, amount=amount, direction="credit", type=type, reference=reference)
    )
    expire_row(UserProfile, user_id, "escrow_balance")
    return escrow_balance(user_id)


def debit_escrow(user_id, amount, *, type: str, reference: str = None) -> bool:
    """
    Compare-and-set debit; returns False (and writes nothing) when the
    balance cannot cover ``amount``. Does NOT commit.
    """
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Escrow debit must be positive")
    if not conditional_add(_escrow_column, _user_pk, user_id, -amount):
        return False
    db.session.add(
        EscrowLedgerEntry(user_id=user_id, amount=amount, direction="debit", type=type, reference=reference)
    )
    expire_row(UserProfile, user_id, "escrow_balance")
    return True


def escrow_history(user_id, limit=50):
    return (
        EscrowLedgerEntry.query.filter_by(user_id=user_id)
        .order_by(EscrowLedgerEntry.id.desc())
        .limit(limit)
        .all()
    )
