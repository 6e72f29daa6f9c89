from decimal import Decimal
from models import db
from models.order import Order, OrderItem, OrderStatusLog
from models.product import Product
from app.errors import ValidationError
from app.utils.db import conditional_add, expire_row

_stock_column = Product.__table__.c.stock_quantity
_product_pk = Product.__table__.c.id


def _add_order_items(order, items):
    for it in items:
        unit_price = Decimal(str(it["unit_price"]))
        quantity = int(it["quantity"])
        db.session.add(
            OrderItem(
                order_id=order.id,
                product_id=it["product_id"],
                name=it.get("name"),
                unit_price=unit_price,
                quantity=quantity,
                subtotal=unit_price * quantity,
            )
        )
        if not conditional_add(_stock_column, _product_pk, it["product_id"], -quantity):
            raise ValidationError(f"Not enough stock for {it.get('name') or it['product_id']}")
        expire_row(Product, it["product_id"], "stock_quantity")


def create_order_atomic(seller_id, buyer_id, total, coin_redeemed, delivery_address, chat_id, items, idempotency_key=None) -> Order:
    """Insert the order, its item snapshots and the opening status log; decrement stock.

    ``items`` is a list of dicts with product_id, name, unit_price and quantity.
    Runs inside the caller's transaction and does NOT commit.
    """
    if not items:
        raise ValidationError("Order has no items")
    gross = sum((Decimal(str(it["unit_price"])) * int(it["quantity"]) for it in items), Decimal("0"))
    total = Decimal(str(total))
    if total != gross - int(coin_redeemed or 0) or total < 0:
        raise ValidationError("Order total does not match its items")

    order = Order(
        buyer_id=buyer_id,
        seller_id=seller_id,
        chat_id=chat_id,
        status="pending",
        version=1,
        total_amount=total,
        coin_redeemed=int(coin_redeemed or 0),
        delivery_address=delivery_address,
        idempotency_key=idempotency_key,
    )
    db.session.add(order)
    db.session.flush()

    _add_order_items(order, items)
    db.session.add(
        OrderStatusLog(order_id=order.id, from_status=None, to_status="pending", actor_id=buyer_id, actor_role="buyer")
    )
    db.session.flush()
    return order


def find_by_idempotency_key(buyer_id, key):
    if not key:
        return None
    return Order.query.filter_by(buyer_id=buyer_id, idempotency_key=key).first()
