from models import db, BIGINT
from datetime import datetime


class CartState(db.Model):
    """Serialized cart for one buyer, stored under a versioned key."""

    __tablename__ = "cart_state"

    id = db.Column(db.Integer, primary_key=True)
    storage_key = db.Column(db.String(120), unique=True, nullable=False)
    user_id = db.Column(BIGINT, db.ForeignKey("user_profile.id"), nullable=False, index=True)
    version = db.Column(db.Integer, nullable=False)
    payload = db.Column(db.Text, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
