from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import BigInteger, Integer

# Use BigInteger in production but fall back to Integer for SQLite
BIGINT = BigInteger().with_variant(Integer, "sqlite")

db = SQLAlchemy()

# Re-export common models for convenience
from .user import UserProfile  # noqa: F401,E402
from .product import Product  # noqa: F401,E402
from .cart import CartState  # noqa: F401,E402
from .chat import ChatThread, Message  # noqa: F401,E402
from .order import Order, OrderItem, OrderStatusLog, Dispute  # noqa: F401,E402
from .coin import CoinTransaction  # noqa: F401,E402
from .payout import Payout, EscrowLedgerEntry  # noqa: F401,E402
