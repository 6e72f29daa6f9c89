import json
from decimal import Decimal
import pytest
from models import db
from models.cart import CartState
from app.errors import ValidationError
from app.services.cart import (
    CartRepository,
    compute_totals,
    group_by_seller,
    storage_key,
    summarize,
)


def test_storage_key_is_versioned(app):
    assert storage_key(7) == "storelink-v79-cart:7"
    assert CartRepository(7).key == "storelink-v79-cart:7"


def test_add_item_persists_and_merges_quantity(make_user, make_product):
    make_user(1)
    make_user(2, name="Ada's Shop")
    product = make_product(2, "25.00")

    repo = CartRepository(1)
    repo.add_item(product, 2)
    repo.add_item(product, 1)
    db.session.commit()

    row = CartState.query.filter_by(user_id=1).one()
    assert row.version == 79
    payload = json.loads(row.payload)
    assert payload["items"][0]["quantity"] == 3
    assert payload["items"][0]["seller"]["display_name"] == "Ada's Shop"

    fresh = CartRepository(1).load()
    assert fresh.item_count == 3
    assert fresh.items[0].line_total == Decimal("75.00")


def test_update_quantity_zero_removes_line(make_user, make_product):
    make_user(1)
    make_user(2)
    p1 = make_product(2, "10")
    p2 = make_product(2, "5", name="Gadget")
    repo = CartRepository(1)
    repo.add_item(p1, 1)
    repo.add_item(p2, 1)

    repo.update_quantity(p1.id, 4)
    assert repo.load().find(p1.id).quantity == 4
    repo.update_quantity(p1.id, 0)
    assert repo.load().find(p1.id) is None
    with pytest.raises(ValidationError):
        repo.update_quantity(999, 1)


def test_stale_version_payload_is_discarded(make_user, make_product):
    make_user(1)
    make_user(2)
    product = make_product(2, "10")
    old = CartRepository(1, version=78)
    old.add_item(product, 1)
    db.session.commit()

    cart = CartRepository(1).load()
    assert cart.items == []
    assert CartState.query.filter_by(user_id=1).count() == 0


def test_corrupt_payload_loads_as_empty(make_user):
    make_user(1)
    db.session.add(CartState(user_id=1, storage_key=storage_key(1), version=79, payload="{not json"))
    db.session.commit()
    assert CartRepository(1).load().items == []


def test_remove_seller_resets_coin_toggle_when_empty(make_user, make_product):
    make_user(1)
    make_user(2)
    product = make_product(2, "10")
    repo = CartRepository(1)
    repo.add_item(product, 1)
    repo.set_apply_coins(True)
    repo.remove_seller(2)
    assert repo.load().items == []
    assert repo.load().apply_coins is False


def test_optimistic_restores_cart_on_failure(make_user, make_product):
    make_user(1)
    make_user(2)
    product = make_product(2, "10")
    repo = CartRepository(1)
    repo.add_item(product, 2)

    with pytest.raises(RuntimeError):
        with repo.optimistic(lambda r: r.remove_seller(2)):
            assert repo.load().items == []
            raise RuntimeError("checkout failed")
    assert repo.load().find(product.id).quantity == 2


def test_grouping_and_totals(make_user, make_product):
    make_user(1, coins=1000)
    make_user(2)
    make_user(3)
    a = make_product(2, "4000", name="Lamp")
    b = make_product(3, "3000", name="Rug")
    c = make_product(2, "2000", name="Shade")
    repo = CartRepository(1)
    repo.add_item(a, 2)
    repo.add_item(b, 1)
    repo.add_item(c, 1)
    repo.set_apply_coins(True)

    groups = group_by_seller(repo.load(), current_user_id=1)
    assert [g.seller.id for g in groups] == [2, 3]
    assert groups[0].subtotal == Decimal("10000")
    assert not groups[0].is_self_purchase

    totals = compute_totals(groups[0], coin_balance=1000, apply_coins=True)
    assert totals.discount == 500
    assert totals.final == Decimal("9500")
    assert totals.count == 3

    view = summarize(repo.load(), 1, 1000)
    assert [g["totals"]["discount"] for g in view] == [500, 150]


def test_self_purchase_group_is_flagged(make_user, make_product):
    make_user(2)
    product = make_product(2, "10")
    repo = CartRepository(2)
    repo.add_item(product, 1)
    groups = group_by_seller(repo.load(), current_user_id=2)
    assert groups[0].is_self_purchase is True


def test_cart_api_round_trip(client, auth_header, make_user, make_product):
    make_user(2)
    headers = auth_header(1, coin_balance=200)
    product = make_product(2, "100", stock=3)

    resp = client.post("/api/v1/cart/items", json={"product_id": product.id, "quantity": 2}, headers=headers)
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["item_count"] == 2
    assert data["coin_balance"] == 200
    assert data["groups"][0]["totals"]["subtotal"] == 200.0

    resp = client.post("/api/v1/cart/items", json={"product_id": product.id, "quantity": 2}, headers=headers)
    assert resp.status_code == 400

    resp = client.post("/api/v1/cart/coins", json={"apply_coins": True}, headers=headers)
    assert resp.get_json()["data"]["groups"][0]["totals"]["discount"] == 10

    resp = client.patch(f"/api/v1/cart/items/{product.id}", json={"quantity": 0}, headers=headers)
    assert resp.get_json()["data"]["item_count"] == 0


def test_cart_api_rejects_unknown_product_and_bad_quantity(client, auth_header):
    headers = auth_header(1)
    assert client.post("/api/v1/cart/items", json={"product_id": 999}, headers=headers).status_code == 404
    assert client.post("/api/v1/cart/items", json={"product_id": 1, "quantity": 0}, headers=headers).status_code == 400
