import mongomock
import pytest
from bson import ObjectId

import cart as carts
from errors import Forbidden, InvalidInput, InvalidState, NotFound

from conftest import make_product


def _product(price, sale=0):
    return {"_id": ObjectId(), "price": price, "priceAfterDiscount": price - price * sale / 100}


def _expected_total(cart):
    return sum(i["quantity"] * i["price"] for i in cart["items"])


def test_adding_same_product_twice_accumulates_one_line():
    cart = {"items": []}
    p = _product(10)
    carts.add_item(cart, p, 2)
    carts.add_item(cart, p, 2)
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 4
    assert cart["totalPrice"] == 40


def test_re_adding_refreshes_unit_price_only_for_that_line():
    cart = {"items": []}
    shoe, sock = _product(100), _product(5)
    carts.add_item(cart, shoe, 1)
    carts.add_item(cart, sock, 1)

    shoe["priceAfterDiscount"] = 80
    sock["priceAfterDiscount"] = 4
    carts.add_item(cart, shoe, 1)

    lines = {i["product"]: i for i in cart["items"]}
    assert lines[str(shoe["_id"])]["price"] == 80
    assert lines[str(shoe["_id"])]["quantity"] == 2
    assert lines[str(sock["_id"])]["price"] == 5
    assert cart["totalPrice"] == 165


def test_decrease_to_zero_removes_line():
    cart = {"items": []}
    p = _product(10)
    carts.add_item(cart, p, 1)
    carts.decrease_item(cart, str(p["_id"]))
    assert cart["items"] == []
    assert cart["totalPrice"] == 0


def test_decrease_missing_line_is_not_found():
    with pytest.raises(NotFound):
        carts.decrease_item({"items": []}, str(ObjectId()))


def test_remove_missing_line_is_a_no_op():
    cart = {"items": []}
    carts.add_item(cart, _product(3), 2)
    before = list(cart["items"])
    carts.remove_item(cart, str(ObjectId()))
    assert cart["items"] == before
    assert cart["totalPrice"] == 6


def test_add_requires_positive_quantity():
    with pytest.raises(InvalidInput):
        carts.add_item({"items": []}, _product(3), 0)


def test_total_stays_consistent_over_mixed_operations():
    cart = {"items": []}
    products = [_product(p, s) for p, s in [(19.99, 10), (5.5, 0), (120, 33), (0.3, 0)]]
    ops = [
        ("add", 0, 3), ("add", 1, 1), ("add", 2, 2), ("dec", 0), ("add", 3, 7),
        ("rm", 1), ("add", 0, 1), ("dec", 2), ("dec", 2), ("add", 1, 4), ("rm", 3),
    ]
    for op in ops:
        p = products[op[1]]
        if op[0] == "add":
            carts.add_item(cart, p, op[2])
        elif op[0] == "dec":
            carts.decrease_item(cart, str(p["_id"]))
        else:
            carts.remove_item(cart, str(p["_id"]))
        assert cart["totalPrice"] == _expected_total(cart)
        assert len({i["product"] for i in cart["items"]}) == len(cart["items"])
        assert all(i["quantity"] >= 1 for i in cart["items"])


def test_checkout_snapshots_cart_and_clears_it(db, category):
    user_id = str(ObjectId())
    first = make_product(db, category, title="First item", price=30)
    second = make_product(db, category, title="Second item", price=20)
    carts.add_to_cart(db, user_id, str(first["_id"]), 2)
    carts.add_to_cart(db, user_id, str(second["_id"]), 2)
    before = db["cart"].find_one({"user": user_id})
    assert before["totalPrice"] == 100

    order = carts.checkout(db, user_id)

    stored = db["order"].find_one({"_id": order["_id"]})
    assert stored["items"] == before["items"]
    assert stored["totalPrice"] == 100
    assert stored["paymentMethod"] == "cash"
    after = db["cart"].find_one({"user": user_id})
    assert after["items"] == []
    assert after["totalPrice"] == 0

    with pytest.raises(InvalidState):
        carts.checkout(db, user_id)
    assert db["order"].count_documents({"user": user_id}) == 1


def test_order_is_not_affected_by_later_cart_changes(db, category, product):
    user_id = str(ObjectId())
    carts.add_to_cart(db, user_id, str(product["_id"]), 1)
    order = carts.checkout(db, user_id, "card")
    carts.add_to_cart(db, user_id, str(product["_id"]), 5)

    stored = db["order"].find_one({"_id": order["_id"]})
    assert stored["items"][0]["quantity"] == 1
    assert stored["paymentMethod"] == "card"


def test_checkout_rolls_back_order_when_cart_clear_fails(db, category, product, monkeypatch):
    user_id = str(ObjectId())
    carts.add_to_cart(db, user_id, str(product["_id"]), 1)

    def broken_update(*args, **kwargs):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(mongomock.Collection, "update_one", broken_update)
    with pytest.raises(RuntimeError):
        carts.checkout(db, user_id)

    assert db["order"].count_documents({}) == 0
    assert len(db["cart"].find_one({"user": user_id})["items"]) == 1


def test_checkout_without_cart_is_invalid_state(db):
    with pytest.raises(InvalidState):
        carts.checkout(db, str(ObjectId()))


def test_cancel_order_requires_owner(db, category, product):
    owner = str(ObjectId())
    carts.add_to_cart(db, owner, str(product["_id"]), 1)
    order = carts.checkout(db, owner)

    with pytest.raises(Forbidden):
        carts.cancel_order(db, str(order["_id"]), str(ObjectId()))
    carts.cancel_order(db, str(order["_id"]), owner)

    assert db["order"].count_documents({}) == 0
    assert db["cart"].find_one({"user": owner})["items"] == []
    with pytest.raises(NotFound):
        carts.cancel_order(db, str(order["_id"]), owner)


def test_user_locks_are_released_after_use(db, product):
    user_id = str(ObjectId())
    with carts.user_lock(user_id):
        assert user_id in carts._locks
    assert user_id not in carts._locks

    carts.add_to_cart(db, user_id, str(product["_id"]), 1)
    carts.checkout(db, user_id)
    assert carts._locks == {}


def test_user_lock_is_released_when_the_body_raises():
    user_id = str(ObjectId())
    with pytest.raises(InvalidInput):
        with carts.user_lock(user_id):
            raise InvalidInput("boom")
    assert user_id not in carts._locks
