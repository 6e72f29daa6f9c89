from .cart import cart_bp
from .orders import order_bp
from .chats import chat_bp
from .wallet import wallet_bp


__all__ = [
    'cart_bp',
    'order_bp',
    'chat_bp',
    'wallet_bp',
]
