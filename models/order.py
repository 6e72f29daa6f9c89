from sqlalchemy import Column, Integer, String, Numeric, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from models import db, BIGINT
from datetime import datetime


class Order(db.Model):
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_seller_status", "seller_id", "status"),
        db.Index("ix_orders_payout_due", "status", "payout_status", "payout_eligible_at"),
        db.UniqueConstraint("buyer_id", "idempotency_key", name="uq_orders_buyer_idempotency"),
        db.CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
    )
    id = Column(BIGINT, primary_key=True)
    buyer_id = Column(BIGINT, ForeignKey("user_profile.id"), nullable=False, index=True)
    seller_id = Column(BIGINT, ForeignKey("user_profile.id"), nullable=False)
    chat_id = Column(BIGINT, ForeignKey("chat_thread.id"), nullable=True)
    status = Column(String(20), nullable=False, default="pending")  # pending, confirmed, shipped, delivered, completed, cancelled
    version = Column(Integer, nullable=False, default=1)
    total_amount = Column(Numeric(12, 2), nullable=False)
    coin_redeemed = Column(Integer, nullable=False, default=0)
    delivery_address = Column(Text, nullable=False)
    idempotency_key = Column(String(80), nullable=True)

    # Escrow / settlement
    completed_at = Column(DateTime, nullable=True)
    payout_eligible_at = Column(DateTime, nullable=True)
    payout_status = Column(String(20), nullable=True)  # NULL, pending, processing, retry_queued, paid, failed, settled
    payout_error_log = Column(Text, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    items = db.relationship("OrderItem", backref="order", cascade="all, delete-orphan", lazy=True)
    status_logs = db.relationship("OrderStatusLog", backref="order", lazy=True, order_by="OrderStatusLog.id")
    disputes = db.relationship("Dispute", backref="order", lazy=True)
    buyer = db.relationship("UserProfile", foreign_keys=[buyer_id])
    seller = db.relationship("UserProfile", foreign_keys=[seller_id])

    def role_of(self, user_id):
        if user_id == self.buyer_id:
            return "buyer"
        if user_id == self.seller_id:
            return "seller"
        return None

    def to_dict(self, with_items=True):
        data = {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "chat_id": self.chat_id,
            "status": self.status,
            "total_amount": float(self.total_amount),
            "coin_redeemed": int(self.coin_redeemed or 0),
            "delivery_address": self.delivery_address,
            "payout_status": self.payout_status,
            "payout_eligible_at": self.payout_eligible_at.isoformat() if self.payout_eligible_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if with_items:
            data["items"] = [i.to_dict() for i in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_item"
    id = db.Column(BIGINT, primary_key=True)
    order_id = db.Column(BIGINT, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(BIGINT, db.ForeignKey("product.id"), nullable=False)

    # Price snapshot at purchase time
    name = db.Column(db.String(150))
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)

    def to_dict(self):
        return {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": float(self.unit_price),
            "quantity": self.quantity,
            "subtotal": float(self.subtotal),
        }


class OrderStatusLog(db.Model):
    __tablename__ = "order_status_log"
    id = Column(BIGINT, primary_key=True)
    order_id = Column(BIGINT, ForeignKey("orders.id"), nullable=False, index=True)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    actor_id = Column(BIGINT, nullable=True)  # NULL for system
    actor_role = Column(String(10), nullable=False)  # buyer, seller, system
    created_at = Column(DateTime, default=func.now())

    def to_dict(self):
        return {
            "order_id": self.order_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Dispute(db.Model):
    __tablename__ = "dispute"
    id = db.Column(BIGINT, primary_key=True)
    order_id = db.Column(BIGINT, db.ForeignKey("orders.id"), nullable=False, index=True)
    raised_by = db.Column(BIGINT, db.ForeignKey("user_profile.id"), nullable=False)
    reason = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), default="open")  # open, resolved, rejected
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "raised_by": self.raised_by,
            "reason": self.reason,
            "description": self.description,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
