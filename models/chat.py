from datetime import datetime
from models import db, BIGINT


class ChatThread(db.Model):
    __tablename__ = "chat_thread"
    # one thread per ordered (buyer, seller) pair
    __table_args__ = (
        db.UniqueConstraint("buyer_id", "seller_id", name="uq_chat_thread_buyer_seller"),
    )

    id = db.Column(BIGINT, primary_key=True)
    buyer_id = db.Column(BIGINT, db.ForeignKey("user_profile.id"), nullable=False)
    seller_id = db.Column(BIGINT, db.ForeignKey("user_profile.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    messages = db.relationship(
        "Message", backref="thread", lazy=True, order_by="Message.id"
    )

    def has_participant(self, user_id) -> bool:
        return user_id in (self.buyer_id, self.seller_id)

    def to_dict(self):
        return {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Message(db.Model):
    __tablename__ = "message"

    id = db.Column(BIGINT, primary_key=True)
    chat_id = db.Column(BIGINT, db.ForeignKey("chat_thread.id"), nullable=False, index=True)
    sender_id = db.Column(BIGINT, db.ForeignKey("user_profile.id"), nullable=False)
    content = db.Column(db.Text, nullable=False)
    is_system = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "chat_id": self.chat_id,
            "sender_id": self.sender_id,
            "content": self.content,
            "is_system": bool(self.is_system),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
