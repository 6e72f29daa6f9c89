from flask import Blueprint, request, current_app
from flask_limiter.util import get_remote_address
from extensions import limiter
from models import db
from models.product import Product
from app.errors import NotFound, ValidationError
from app.schemas.cart import AddCartItemRequest, UpdateCartItemRequest, ApplyCoinsRequest, CheckoutRequest
from app.services.cart import CartRepository, summarize
from app.services.checkout import checkout_cart, checkout_seller
from app.services.coin_ledger import CoinLedgerService
from app.utils import auth_required, ok, error, transactional, validate_schema
from app.version import API_PREFIX

cart_bp = Blueprint("cart", __name__, url_prefix=f"{API_PREFIX}/cart")


@cart_bp.before_request
@auth_required
def _require_user():
    return None


def _cart_view(repo, user_id):
    cart = repo.load()
    balance = CoinLedgerService.balance(user_id)
    return {
        "storage_key": repo.key,
        "apply_coins": cart.apply_coins,
        "item_count": cart.item_count,
        "coin_balance": balance,
        "groups": summarize(cart, user_id, balance),
    }


def _checkout_limit():
    return current_app.config["CHECKOUT_LIMIT_PER_IP"]


@cart_bp.route("", methods=["GET"])
def get_cart():
    """
    View the cart grouped per seller with per-group totals
    ---
    tags:
      - Cart
    responses:
      200:
        description: Cart grouped by seller
    """
    repo = CartRepository(request.user.id)
    with transactional("Failed to load cart"):
        data = _cart_view(repo, request.user.id)
    return ok(data)


@cart_bp.route("/items", methods=["POST"])
@validate_schema(AddCartItemRequest)
def add_item():
    """
    Add a product to the cart
    ---
    tags:
      - Cart
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [product_id]
          properties:
            product_id: {type: integer}
            quantity: {type: integer, minimum: 1}
    responses:
      200:
        description: Updated cart
      404:
        description: Product not found
    """
    data = request.validated_data
    product = db.session.get(Product, data.product_id)
    if product is None or not product.is_active:
        raise NotFound("Product not found")
    repo = CartRepository(request.user.id)
    existing = repo.load().find(product.id)
    wanted = data.quantity + (existing.quantity if existing else 0)
    if (product.stock_quantity or 0) < wanted:
        raise ValidationError(f"Only {product.stock_quantity or 0} of {product.name} in stock")
    with transactional("Failed to add cart item"):
        repo.add_item(product, data.quantity)
        view = _cart_view(repo, request.user.id)
    return ok(view, message="Item added")


@cart_bp.route("/items/<int:product_id>", methods=["PATCH"])
@validate_schema(UpdateCartItemRequest)
def update_item(product_id):
    """
    Change the quantity of a cart line (0 removes it)
    ---
    tags:
      - Cart
    """
    repo = CartRepository(request.user.id)
    with transactional("Failed to update cart item"):
        repo.update_quantity(product_id, request.validated_data.quantity)
        view = _cart_view(repo, request.user.id)
    return ok(view, message="Cart updated")


@cart_bp.route("/items/<int:product_id>", methods=["DELETE"])
def remove_item(product_id):
    """
    Remove a product from the cart
    ---
    tags:
      - Cart
    """
    repo = CartRepository(request.user.id)
    with transactional("Failed to remove cart item"):
        repo.remove_item(product_id)
        view = _cart_view(repo, request.user.id)
    return ok(view, message="Item removed")


@cart_bp.route("/coins", methods=["POST"])
@validate_schema(ApplyCoinsRequest)
def toggle_coins():
    """
    Turn coin redemption on or off for checkout
    ---
    tags:
      - Cart
    """
    repo = CartRepository(request.user.id)
    with transactional("Failed to update coin preference"):
        repo.set_apply_coins(request.validated_data.apply_coins)
        view = _cart_view(repo, request.user.id)
    return ok(view)


@cart_bp.route("/clear", methods=["POST"])
def clear_cart():
    repo = CartRepository(request.user.id)
    with transactional("Failed to clear cart"):
        repo.clear()
        view = _cart_view(repo, request.user.id)
    return ok(view, message="Cart cleared")


@cart_bp.route("/checkout", methods=["POST"])
@limiter.limit(_checkout_limit, key_func=get_remote_address, error_message="Too many checkouts from this IP")
@validate_schema(CheckoutRequest)
def checkout_all():
    """
    Check out every seller group in the cart (or the listed sellers)
    ---
    tags:
      - Cart
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [delivery_address]
          properties:
            delivery_address: {type: string}
            seller_ids: {type: array, items: {type: integer}}
            idempotency_key: {type: string}
    responses:
      201:
        description: At least one order was placed
      400:
        description: No order could be placed
    """
    data = request.validated_data
    repo = CartRepository(request.user.id)
    result = checkout_cart(
        request.user,
        repo,
        data.delivery_address,
        seller_ids=data.seller_ids,
        idempotency_key=data.idempotency_key,
    )
    if not result["orders"]:
        return error("No orders were placed", status=400, code="CheckoutFailed", failures=result["failures"])
    message = "Checkout complete" if not result["failures"] else "Checkout partially complete"
    return ok(result, message=message, status=201)


@cart_bp.route("/checkout/<int:seller_id>", methods=["POST"])
@limiter.limit(_checkout_limit, key_func=get_remote_address, error_message="Too many checkouts from this IP")
@validate_schema(CheckoutRequest)
def checkout_one(seller_id):
    """
    Check out a single seller's items
    ---
    tags:
      - Cart
    responses:
      201:
        description: Order placed
      403:
        description: Self-purchase
      400:
        description: Missing delivery address or insufficient coins
    """
    data = request.validated_data
    repo = CartRepository(request.user.id)
    result = checkout_seller(request.user, repo, seller_id, data.delivery_address, data.idempotency_key)
    return ok(result.to_dict(), message="Order placed", status=201)
