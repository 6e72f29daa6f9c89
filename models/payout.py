from sqlalchemy import Column, Integer, String, Numeric, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from models import db, BIGINT


class Payout(db.Model):
    __tablename__ = "payout"
    __table_args__ = (
        db.Index("ix_payout_status_next_attempt", "status", "next_attempt_at"),
    )

    id = Column(BIGINT, primary_key=True)
    kind = Column(String(12), nullable=False)  # order, withdrawal
    order_id = Column(BIGINT, ForeignKey("orders.id"), nullable=True, index=True)
    user_id = Column(BIGINT, ForeignKey("user_profile.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)

    # Bank snapshot at request time
    bank_name = Column(String(100), nullable=True)
    account_number = Column(String(20), nullable=True)
    account_name = Column(String(120), nullable=True)
    recipient_code = Column(String(64), nullable=True)

    status = Column(String(20), nullable=False, default="pending")  # pending, processing, success, failed, retry_queued
    reference = Column(String(64), unique=True, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    order = db.relationship("Order", backref="payouts")

    def to_dict(self):
        return {
            "id": self.id,
            "kind": self.kind,
            "order_id": self.order_id,
            "amount": float(self.amount),
            "bank_name": self.bank_name,
            "account_name": self.account_name,
            "account_number": f"****{(self.account_number or '')[-4:]}",
            "status": self.status,
            "reference": self.reference,
            "attempts": self.attempts,
            "next_attempt_at": self.next_attempt_at.isoformat() if self.next_attempt_at else None,
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class EscrowLedgerEntry(db.Model):
    __tablename__ = "escrow_ledger_entry"

    id = Column(BIGINT, primary_key=True)
    user_id = Column(BIGINT, ForeignKey("user_profile.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    direction = Column(String(6), nullable=False)  # credit, debit
    type = Column(String(20), nullable=False)  # hold, payout, withdrawal, release_back
    reference = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "amount": float(self.amount),
            "direction": self.direction,
            "type": self.type,
            "reference": self.reference,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
