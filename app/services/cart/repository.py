import json
import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import List, Optional
from flask import current_app
from pydantic import BaseModel, Field, ValidationError as SchemaValidationError, model_validator
from models import db
from models.cart import CartState
from app.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_VERSION = 79


class SellerRef(BaseModel):
    id: int
    display_name: Optional[str] = None


class ProductSnapshot(BaseModel):
    id: int
    seller_id: int
    name: str
    price: Decimal = Field(ge=0)
    image_url: Optional[str] = None


class CartLine(BaseModel):
    product: ProductSnapshot
    seller: SellerRef
    quantity: int = Field(ge=1)

    @model_validator(mode="after")
    def _seller_matches_product(self):
        if self.product.seller_id != self.seller.id:
            raise ValueError("product seller does not match seller reference")
        return self

    @property
    def line_total(self) -> Decimal:
        return self.product.price * self.quantity


class Cart(BaseModel):
    items: List[CartLine] = Field(default_factory=list)
    apply_coins: bool = False

    def find(self, product_id) -> Optional[CartLine]:
        return next((line for line in self.items if line.product.id == product_id), None)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.items)


def schema_version() -> int:
    try:
        return int(current_app.config.get("CART_SCHEMA_VERSION", DEFAULT_SCHEMA_VERSION))
    except RuntimeError:
        return DEFAULT_SCHEMA_VERSION


def storage_key(user_id, version=None) -> str:
    return f"storelink-v{version or schema_version()}-cart:{user_id}"


class CartRepository:
    """Durable cart for one buyer.

    Every mutation persists immediately (flush only; the caller commits).
    Payloads stored under an older serialization version are discarded.
    """

    def __init__(self, user_id, version=None):
        self.user_id = user_id
        self.version = version or schema_version()
        self.key = storage_key(user_id, self.version)
        self._cart = None

    # persistence

    def _row(self) -> Optional[CartState]:
        return CartState.query.filter_by(user_id=self.user_id).first()

    def load(self) -> Cart:
        if self._cart is not None:
            return self._cart
        row = self._row()
        cart = Cart()
        if row is not None:
            if row.version != self.version or row.storage_key != self.key:
                logger.info({"event": "cart_discarded", "user_id": self.user_id, "stored_version": row.version})
                db.session.delete(row)
                db.session.flush()
            else:
                try:
                    cart = Cart.model_validate(json.loads(row.payload))
                except (ValueError, SchemaValidationError):
                    logger.warning({"event": "cart_payload_invalid", "user_id": self.user_id})
                    cart = Cart()
        self._cart = cart
        return cart

    def save(self, cart: Cart = None) -> Cart:
        cart = cart if cart is not None else self.load()
        payload = cart.model_dump_json()
        row = self._row()
        if row is None:
            row = CartState(user_id=self.user_id, storage_key=self.key, version=self.version, payload=payload)
            db.session.add(row)
        else:
            row.storage_key = self.key
            row.version = self.version
            row.payload = payload
        db.session.flush()
        self._cart = cart
        return cart

    # mutations

    def add_item(self, product, quantity=1) -> Cart:
        """Add ``product`` (a Product row) or bump its quantity."""
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        cart = self.load()
        line = cart.find(product.id)
        if line is not None:
            line.quantity += quantity
        else:
            seller = product.seller
            cart.items.append(
                CartLine(
                    product=ProductSnapshot(
                        id=product.id,
                        seller_id=product.seller_id,
                        name=product.name,
                        price=Decimal(str(product.price)),
                        image_url=product.image_url,
                    ),
                    seller=SellerRef(id=product.seller_id, display_name=seller.display_name if seller else None),
                    quantity=quantity,
                )
            )
        return self.save(cart)

    def update_quantity(self, product_id, quantity) -> Cart:
        cart = self.load()
        line = cart.find(product_id)
        if line is None:
            raise ValidationError("Item is not in the cart")
        if quantity < 1:
            return self.remove_item(product_id)
        line.quantity = quantity
        return self.save(cart)

    def remove_item(self, product_id) -> Cart:
        cart = self.load()
        cart.items = [line for line in cart.items if line.product.id != product_id]
        return self.save(cart)

    def remove_seller(self, seller_id) -> Cart:
        cart = self.load()
        cart.items = [line for line in cart.items if line.seller.id != seller_id]
        if not cart.items:
            cart.apply_coins = False
        return self.save(cart)

    def set_apply_coins(self, enabled) -> Cart:
        cart = self.load()
        cart.apply_coins = bool(enabled)
        return self.save(cart)

    def clear(self) -> Cart:
        return self.save(Cart())

    @contextmanager
    def optimistic(self, mutate):
        """Apply ``mutate(repo)`` now and restore the previous cart if the block raises."""
        snapshot = self.load().model_copy(deep=True)
        mutate(self)
        try:
            yield self.load()
        except Exception:
            self.save(snapshot)
            raise
