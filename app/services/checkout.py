import logging
from dataclasses import dataclass
from decimal import Decimal
from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from models import db
from models.chat import ChatThread
from models.product import Product
from models.user import UserProfile
from app.errors import (
    AtomicityFailure,
    CommerceError,
    IncompleteDeliveryInfo,
    NotFound,
    OwnershipConflict,
    TransientError,
    ValidationError,
)
from app.metrics import CHECKOUT_OUTCOMES
from app.services import chat_anchor
from app.services.cart import group_by_seller
from app.services.coin_ledger import CoinLedgerService, compute_discount
from app.services.order_repository import create_order_atomic, find_by_idempotency_key

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    order_id: int
    chat_id: int
    seller_id: int
    seller_display_name: str
    total: Decimal
    discount: int

    def to_dict(self):
        return {
            "order_id": self.order_id,
            "chat_id": self.chat_id,
            "seller_id": self.seller_id,
            "seller_display_name": self.seller_display_name,
            "total": float(self.total),
            "discount": self.discount,
        }


def _result_for(order, seller) -> CheckoutResult:
    return CheckoutResult(
        order_id=order.id,
        chat_id=order.chat_id,
        seller_id=order.seller_id,
        seller_display_name=seller.display_name or "",
        total=Decimal(str(order.total_amount)),
        discount=int(order.coin_redeemed or 0),
    )


def _guard(buyer, seller_id, items, delivery_address):
    if seller_id == buyer.id:
        raise OwnershipConflict("You cannot buy your own products")
    if not (delivery_address or "").strip():
        raise IncompleteDeliveryInfo("Delivery address is required")
    if not items:
        raise ValidationError("No items to check out for this seller")
    for it in items:
        if int(it.get("quantity") or 0) < 1:
            raise ValidationError("Quantity must be at least 1")


def _priced_lines(seller_id, items):
    """Re-read every product under lock; the current price becomes the snapshot."""
    lines = []
    for it in items:
        product = Product.query.filter_by(id=it["product_id"]).with_for_update().first()
        quantity = int(it["quantity"])
        if product is None or not product.is_active:
            raise ValidationError(f"Product {it['product_id']} is no longer available")
        if product.seller_id != seller_id:
            raise ValidationError(f"Product {product.id} is not sold by this seller")
        if (product.stock_quantity or 0) < quantity:
            raise ValidationError(f"Not enough stock for {product.name}")
        lines.append(
            {
                "product_id": product.id,
                "name": product.name,
                "unit_price": Decimal(str(product.price)),
                "quantity": quantity,
            }
        )
    return lines


def _replayable(buyer_id, seller_id, idempotency_key):
    existing = find_by_idempotency_key(buyer_id, idempotency_key)
    if existing is not None and existing.seller_id != seller_id:
        raise ValidationError("Idempotency key already used for another seller")
    return existing


def checkout_vendor_group(buyer, seller_id, items, delivery_address, apply_coins, idempotency_key=None) -> CheckoutResult:
    """Check out one seller's items as an order.

    Guards run before any write. The chat thread is resolved and committed on
    its own; order, items, coin debit and receipt message then commit together
    or not at all.
    """
    _guard(buyer, seller_id, items, delivery_address)
    seller = db.session.get(UserProfile, seller_id)
    if seller is None:
        raise NotFound("Seller not found")

    existing = _replayable(buyer.id, seller_id, idempotency_key)
    if existing is not None:
        logger.info({"event": "checkout_replayed", "order_id": existing.id, "seller_id": seller_id})
        CHECKOUT_OUTCOMES.labels("replayed").inc()
        return _result_for(existing, seller)

    try:
        thread = chat_anchor.resolve_thread(buyer.id, seller_id)
        db.session.commit()
    except OperationalError as e:
        db.session.rollback()
        CHECKOUT_OUTCOMES.labels("transient").inc()
        raise TransientError("Chat service unavailable, please retry") from e

    chat_id = thread.id
    try:
        # serializes checkouts for the same (buyer, seller) pair
        ChatThread.query.filter_by(id=chat_id).with_for_update().one()
        lines = _priced_lines(seller_id, items)
        subtotal = sum((li["unit_price"] * li["quantity"] for li in lines), Decimal("0"))
        discount = compute_discount(subtotal, CoinLedgerService.balance(buyer.id), apply_coins)
        total = subtotal - discount

        order = create_order_atomic(
            seller_id=seller_id,
            buyer_id=buyer.id,
            total=total,
            coin_redeemed=discount,
            delivery_address=delivery_address.strip(),
            chat_id=chat_id,
            items=lines,
            idempotency_key=idempotency_key,
        )
        if discount > 0:
            CoinLedgerService.conditional_debit(buyer.id, discount, order_id=order.id, note=f"Order #{order.id}")
        count = sum(li["quantity"] for li in lines)
        chat_anchor.append_message(
            chat_id,
            buyer.id,
            f"ORDER #{order.id} PLACED: {count} item(s), total {total:.2f}"
            + (f" ({discount} coins applied)" if discount else ""),
            is_system=True,
        )
        db.session.commit()
    except CommerceError as e:
        db.session.rollback()
        logger.info({"event": "checkout_rejected", "seller_id": seller_id, "error": type(e).__name__, "reason": e.message})
        CHECKOUT_OUTCOMES.labels("rejected").inc()
        raise
    except IntegrityError as e:
        db.session.rollback()
        existing = _replayable(buyer.id, seller_id, idempotency_key)
        if existing is not None:
            CHECKOUT_OUTCOMES.labels("replayed").inc()
            return _result_for(existing, seller)
        logger.exception("Checkout failed for seller %s", seller_id)
        CHECKOUT_OUTCOMES.labels("atomicity_failure").inc()
        raise AtomicityFailure("Order could not be created", seller_id=seller_id) from e
    except OperationalError as e:
        db.session.rollback()
        logger.warning({"event": "checkout_transient", "seller_id": seller_id, "error": str(e)})
        CHECKOUT_OUTCOMES.labels("transient").inc()
        raise TransientError("Order service unavailable, please retry", seller_id=seller_id) from e
    except Exception as e:
        db.session.rollback()
        logger.exception("Checkout failed for seller %s", seller_id)
        CHECKOUT_OUTCOMES.labels("atomicity_failure").inc()
        raise AtomicityFailure("Order could not be created", seller_id=seller_id) from e

    logger.info({"event": "order_created", "order_id": order.id, "seller_id": seller_id, "total": str(total), "discount": discount})
    CHECKOUT_OUTCOMES.labels("created").inc()
    return _result_for(order, seller)


def checkout_seller(buyer, repo, seller_id, delivery_address, idempotency_key=None) -> CheckoutResult:
    """Check out the cart lines of one seller and drop them from the cart.

    By default lines are removed only after the order exists. With
    ``CHECKOUT_OPTIMISTIC_CART_REMOVAL`` they are removed first and restored
    if the checkout fails.
    """
    cart = repo.load()
    group = next((g for g in group_by_seller(cart, buyer.id) if g.seller.id == seller_id), None)
    if group is None:
        raise ValidationError("Your cart has no items from this seller")
    items = [{"product_id": line.product.id, "quantity": line.quantity} for line in group.items]

    try:
        if current_app.config.get("CHECKOUT_OPTIMISTIC_CART_REMOVAL"):
            with repo.optimistic(lambda r: r.remove_seller(seller_id)):
                result = checkout_vendor_group(buyer, seller_id, items, delivery_address, cart.apply_coins, idempotency_key)
        else:
            result = checkout_vendor_group(buyer, seller_id, items, delivery_address, cart.apply_coins, idempotency_key)
            repo.remove_seller(seller_id)
        if not repo.load().items:
            repo.clear()
    finally:
        db.session.commit()
    return result


def checkout_cart(buyer, repo, delivery_address, seller_ids=None, idempotency_key=None) -> dict:
    """Check out each seller group of the cart independently, in cart order.

    Later groups see the coin balance left by earlier ones. A failed group
    keeps its items in the cart and does not affect the others.
    """
    groups = group_by_seller(repo.load(), buyer.id)
    if seller_ids:
        wanted = set(seller_ids)
        groups = [g for g in groups if g.seller.id in wanted]
    if not groups:
        raise ValidationError("Cart has no items for checkout")

    orders, failures = [], []
    for group in groups:
        seller_id = group.seller.id
        key = f"{idempotency_key}:{seller_id}" if idempotency_key else None
        try:
            orders.append(checkout_seller(buyer, repo, seller_id, delivery_address, key).to_dict())
        except CommerceError as e:
            failures.append({"seller_id": seller_id, "code": type(e).__name__, "message": e.message, **e.payload()})
    return {"orders": orders, "failures": failures}
