from datetime import datetime
from models import db, BIGINT


class UserProfile(db.Model):
    __tablename__ = "user_profile"

    id = db.Column(BIGINT, primary_key=True)
    display_name = db.Column(db.String(100), nullable=True)
    full_name = db.Column(db.String(100), nullable=True)

    # Coins & escrow
    coin_balance = db.Column(db.Integer, nullable=False, default=0)
    escrow_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Seller loyalty program
    loyalty_enabled = db.Column(db.Boolean, default=False)
    loyalty_percentage = db.Column(db.Integer, default=0)  # 0-100

    # Payout destination
    bank_name = db.Column(db.String(100), nullable=True)
    bank_code = db.Column(db.String(20), nullable=True)
    account_number = db.Column(db.String(20), nullable=True)
    account_name = db.Column(db.String(120), nullable=True)
    recipient_code = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint("coin_balance >= 0", name="ck_user_coin_balance_non_negative"),
        db.CheckConstraint("escrow_balance >= 0", name="ck_user_escrow_balance_non_negative"),
    )

    @property
    def has_bank_details(self) -> bool:
        return bool((self.recipient_code or "").strip() and (self.account_number or "").strip())

    def bank_snapshot(self) -> dict:
        return {
            "bank_name": self.bank_name,
            "account_number": self.account_number,
            "account_name": self.account_name,
            "recipient_code": self.recipient_code,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "display_name": self.display_name,
            "coin_balance": int(self.coin_balance or 0),
            "escrow_balance": float(self.escrow_balance or 0),
            "loyalty_enabled": bool(self.loyalty_enabled),
            "loyalty_percentage": int(self.loyalty_percentage or 0),
            "payout_setup_completed": self.has_bank_details,
        }

    def __repr__(self):
        return f"<User id={self.id} name={self.display_name}>"
