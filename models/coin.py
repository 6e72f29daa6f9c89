from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from models import db, BIGINT


class CoinTransaction(db.Model):
    """Append-only coin ledger. ``amount`` is always positive; the sign comes from ``type``/``direction``."""

    __tablename__ = "coin_transaction"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_coin_transaction_amount_positive"),
    )

    id = Column(BIGINT, primary_key=True)
    user_id = Column(BIGINT, ForeignKey("user_profile.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    type = Column(String(20), nullable=False)  # EARN, SPEND, REFUND, ADJUSTMENT
    direction = Column(String(6), nullable=False)  # credit, debit
    reference_order_id = Column(BIGINT, ForeignKey("orders.id"), nullable=True, index=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())

    @property
    def signed_amount(self) -> int:
        return self.amount if self.direction == "credit" else -self.amount

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "type": self.type,
            "direction": self.direction,
            "reference_order_id": self.reference_order_id,
            "note": self.note,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
