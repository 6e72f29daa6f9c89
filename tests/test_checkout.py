from decimal import Decimal
import pytest
from sqlalchemy.exc import OperationalError
from models import db
from models.chat import ChatThread, Message
from models.coin import CoinTransaction
from models.order import Order, OrderItem, OrderStatusLog
from models.product import Product
from models.user import UserProfile
from app.errors import (
    AtomicityFailure,
    IncompleteDeliveryInfo,
    InsufficientFunds,
    NotFound,
    OwnershipConflict,
    TransientError,
    ValidationError,
)
from app.services import checkout
from app.services.cart import CartRepository
from app.services.coin_ledger import CoinLedgerService


ADDRESS = "12 Marina Road, Lagos"


@pytest.fixture()
def two_sellers(make_user, make_product):
    buyer = make_user(1, coins=1000)
    make_user(2, name="Lamp House")
    make_user(3, name="Rug Corner")
    lamp = make_product(2, "5000", stock=10, name="Lamp")
    rug = make_product(3, "3000", stock=10, name="Rug")
    repo = CartRepository(1)
    repo.add_item(lamp, 2)
    repo.add_item(rug, 1)
    repo.set_apply_coins(True)
    db.session.commit()
    return buyer, repo, lamp, rug


def _balance(user_id):
    return db.session.query(UserProfile.coin_balance).filter_by(id=user_id).scalar()


def test_multi_vendor_checkout_uses_remaining_balance(two_sellers):
    buyer, repo, lamp, rug = two_sellers

    result = checkout.checkout_cart(buyer, repo, ADDRESS)

    assert result["failures"] == []
    first, second = result["orders"]
    assert (first["seller_id"], first["discount"], first["total"]) == (2, 500, 9500.0)
    assert (second["seller_id"], second["discount"], second["total"]) == (3, 150, 2850.0)
    assert first["seller_display_name"] == "Lamp House"
    assert _balance(1) == 350

    spends = CoinTransaction.query.filter_by(user_id=1, type="SPEND").order_by(CoinTransaction.id).all()
    assert [s.amount for s in spends] == [500, 150]
    assert [s.reference_order_id for s in spends] == [first["order_id"], second["order_id"]]
    assert CartRepository(1).load().items == []
    assert db.session.get(Product, lamp.id).stock_quantity == 8


def test_order_snapshot_log_and_receipt_message(two_sellers):
    buyer, repo, lamp, _ = two_sellers
    result = checkout.checkout_seller(buyer, repo, 2, ADDRESS)

    order = db.session.get(Order, result.order_id)
    assert order.status == "pending"
    assert order.version == 1
    assert order.delivery_address == ADDRESS
    item = OrderItem.query.filter_by(order_id=order.id).one()
    assert (item.name, item.quantity, item.unit_price, item.subtotal) == ("Lamp", 2, Decimal("5000.00"), Decimal("10000.00"))
    log = OrderStatusLog.query.filter_by(order_id=order.id).one()
    assert (log.from_status, log.to_status, log.actor_role) == (None, "pending", "buyer")

    msg = Message.query.filter_by(chat_id=result.chat_id).one()
    assert msg.is_system is True
    assert msg.content == f"ORDER #{order.id} PLACED: 2 item(s), total 9500.00 (500 coins applied)"
    # the rug seller's lines stay in the cart
    assert [line.seller.id for line in CartRepository(1).load().items] == [3]


def test_checkout_reuses_existing_chat_thread(two_sellers):
    buyer, repo, _, _ = two_sellers
    thread = ChatThread(buyer_id=1, seller_id=2)
    db.session.add(thread)
    db.session.commit()
    result = checkout.checkout_seller(buyer, repo, 2, ADDRESS)
    assert result.chat_id == thread.id
    assert ChatThread.query.filter_by(buyer_id=1, seller_id=2).count() == 1


def test_self_purchase_is_rejected_before_any_write(make_user, make_product):
    seller = make_user(2, coins=100)
    product = make_product(2, "100")
    repo = CartRepository(2)
    repo.add_item(product, 1)
    db.session.commit()

    with pytest.raises(OwnershipConflict):
        checkout.checkout_seller(seller, repo, 2, ADDRESS)
    assert ChatThread.query.count() == 0
    assert Order.query.count() == 0
    assert len(repo.load().items) == 1


def test_blank_address_is_incomplete_delivery_info(two_sellers):
    buyer, repo, _, _ = two_sellers
    with pytest.raises(IncompleteDeliveryInfo):
        checkout.checkout_seller(buyer, repo, 2, "   ")
    assert ChatThread.query.count() == 0


def test_unknown_seller_and_missing_group(two_sellers):
    buyer, repo, _, _ = two_sellers
    with pytest.raises(NotFound):
        checkout.checkout_vendor_group(buyer, 99, [{"product_id": 1, "quantity": 1}], ADDRESS, False)
    with pytest.raises(ValidationError):
        checkout.checkout_seller(buyer, repo, 99, ADDRESS)
    with pytest.raises(ValidationError):
        checkout.checkout_vendor_group(buyer, 2, [{"product_id": 1, "quantity": 0}], ADDRESS, False)


def test_failure_after_order_insert_rolls_everything_back(two_sellers, monkeypatch):
    buyer, repo, lamp, _ = two_sellers

    def explode(order, items):
        raise RuntimeError("disk full")

    monkeypatch.setattr("app.services.order_repository._add_order_items", explode)
    with pytest.raises(AtomicityFailure):
        checkout.checkout_seller(buyer, repo, 2, ADDRESS)

    assert Order.query.count() == 0
    assert OrderItem.query.count() == 0
    assert CoinTransaction.query.count() == 0
    assert _balance(1) == 1000
    assert db.session.get(Product, lamp.id).stock_quantity == 10
    # the thread was committed on its own and carries no receipt
    thread = ChatThread.query.filter_by(buyer_id=1, seller_id=2).one()
    assert Message.query.filter_by(chat_id=thread.id).count() == 0
    assert len(CartRepository(1).load().items) == 2


def test_stale_balance_read_cannot_overdraw(two_sellers, monkeypatch):
    buyer, repo, _, _ = two_sellers
    UserProfile.query.filter_by(id=1).update({"coin_balance": 100})
    db.session.commit()
    # the discount is computed from a balance that has since been spent
    monkeypatch.setattr(CoinLedgerService, "balance", staticmethod(lambda user_id: 1000))

    with pytest.raises(InsufficientFunds):
        checkout.checkout_vendor_group(buyer, 2, [{"product_id": 1, "quantity": 2}], ADDRESS, True)

    assert Order.query.count() == 0
    assert _balance(1) == 100
    assert CoinTransaction.query.count() == 0


def test_checkout_prices_from_current_product_row(two_sellers):
    buyer, repo, lamp, _ = two_sellers
    lamp.price = Decimal("4000")
    db.session.commit()
    result = checkout.checkout_seller(buyer, repo, 2, ADDRESS)
    assert result.total == Decimal("7600")
    assert result.discount == 400


def test_insufficient_stock_creates_nothing(two_sellers):
    buyer, repo, lamp, _ = two_sellers
    lamp.stock_quantity = 1
    db.session.commit()
    with pytest.raises(ValidationError):
        checkout.checkout_seller(buyer, repo, 2, ADDRESS)
    assert Order.query.count() == 0
    assert _balance(1) == 1000


def test_idempotency_key_replays_the_same_order(two_sellers):
    buyer, repo, _, _ = two_sellers
    items = [{"product_id": 1, "quantity": 2}]
    first = checkout.checkout_vendor_group(buyer, 2, items, ADDRESS, True, idempotency_key="abc")
    second = checkout.checkout_vendor_group(buyer, 2, items, ADDRESS, True, idempotency_key="abc")
    assert first.order_id == second.order_id
    assert Order.query.count() == 1
    assert _balance(1) == 500


def test_idempotency_key_is_bound_to_its_seller(two_sellers):
    buyer, repo, lamp, rug = two_sellers
    first = checkout.checkout_seller(buyer, repo, 2, ADDRESS, idempotency_key="abc")
    assert first.seller_display_name == "Lamp House"

    with pytest.raises(ValidationError) as exc:
        checkout.checkout_seller(buyer, repo, 3, ADDRESS, idempotency_key="abc")
    assert "another seller" in exc.value.message
    assert Order.query.count() == 1
    assert [line.product.id for line in repo.load().items] == [rug.id]


def test_chat_outage_is_transient(two_sellers, monkeypatch):
    buyer, repo, _, _ = two_sellers

    def unavailable(buyer_id, seller_id):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(checkout.chat_anchor, "resolve_thread", unavailable)
    with pytest.raises(TransientError) as exc:
        checkout.checkout_seller(buyer, repo, 2, ADDRESS)
    assert exc.value.retryable is True
    assert Order.query.count() == 0


def test_one_failing_group_does_not_block_the_others(two_sellers):
    buyer, repo, _, rug = two_sellers
    rug.is_active = False
    db.session.commit()

    result = checkout.checkout_cart(buyer, repo, ADDRESS)
    assert [o["seller_id"] for o in result["orders"]] == [2]
    assert result["failures"][0]["seller_id"] == 3
    assert result["failures"][0]["code"] == "ValidationError"
    assert [line.seller.id for line in CartRepository(1).load().items] == [3]


def test_optimistic_removal_restores_lines_on_failure(two_sellers, monkeypatch, app):
    buyer, repo, _, _ = two_sellers
    monkeypatch.setitem(app.config, "CHECKOUT_OPTIMISTIC_CART_REMOVAL", True)
    monkeypatch.setattr("app.services.order_repository._add_order_items", lambda order, items: 1 / 0)

    with pytest.raises(AtomicityFailure):
        checkout.checkout_seller(buyer, repo, 2, ADDRESS)
    assert len(CartRepository(1).load().items) == 2


def test_optimistic_removal_clears_lines_on_success(two_sellers, monkeypatch, app):
    buyer, repo, _, _ = two_sellers
    monkeypatch.setitem(app.config, "CHECKOUT_OPTIMISTIC_CART_REMOVAL", True)
    checkout.checkout_seller(buyer, repo, 2, ADDRESS)
    assert [line.seller.id for line in CartRepository(1).load().items] == [3]


# -------------------- HTTP --------------------

def _fill_cart(client, headers, *product_ids):
    for pid in product_ids:
        client.post("/api/v1/cart/items", json={"product_id": pid, "quantity": 1}, headers=headers)


def test_checkout_api_places_orders(client, auth_header, make_user, make_product):
    make_user(2)
    make_user(3)
    headers = auth_header(1, coin_balance=40)
    a = make_product(2, "400")
    b = make_product(3, "600")
    _fill_cart(client, headers, a.id, b.id)
    client.post("/api/v1/cart/coins", json={"apply_coins": True}, headers=headers)

    resp = client.post("/api/v1/cart/checkout", json={"delivery_address": ADDRESS, "idempotency_key": "k1"}, headers=headers)
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert [o["discount"] for o in data["orders"]] == [20, 20]
    assert client.get("/api/v1/cart", headers=headers).get_json()["data"]["item_count"] == 0
    assert client.get("/api/v1/orders?role=buyer", headers=headers).get_json()["data"][0]["total_amount"] == 580.0


def test_checkout_api_errors(client, auth_header, make_user, make_product):
    headers = auth_header(1)
    own = make_product(1, "50")
    _fill_cart(client, headers, own.id)

    resp = client.post("/api/v1/cart/checkout/1", json={"delivery_address": ADDRESS}, headers=headers)
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "OwnershipConflict"

    resp = client.post("/api/v1/cart/checkout", json={"delivery_address": ADDRESS}, headers=headers)
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["code"] == "CheckoutFailed"
    assert body["failures"][0]["code"] == "OwnershipConflict"

    make_user(2)
    other = make_product(2, "50")
    _fill_cart(client, headers, other.id)
    resp = client.post("/api/v1/cart/checkout/2", json={"delivery_address": ""}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "IncompleteDeliveryInfo"
