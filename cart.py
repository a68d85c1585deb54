"""
Cart and order handling.

A user owns at most one cart, created on the first add. Each product appears
on at most one line, whose ``price`` is a snapshot of the product's discounted
price taken at the last add. ``totalPrice`` is recomputed after every change.

Checkout turns the cart into an order (a value copy of its lines and total)
and empties the cart. Cart writes for one user are serialized with a
per-user lock and checkout undoes the order insert if the cart cannot be
cleared, so an order never coexists with the cart it was taken from.
"""
import logging
import threading
from contextlib import contextmanager
from copy import deepcopy
from typing import Any, Dict, Iterator, List, Optional

from pymongo.database import Database

from database import create_document, get_by_id, parse_object_id, utcnow
from errors import Forbidden, InvalidInput, InvalidState, NotFound
from schemas import Cart, CartItem, Order

logger = logging.getLogger(__name__)

# user id -> [lock, number of callers holding or waiting on it]
_locks: Dict[str, List[Any]] = {}
_locks_guard = threading.Lock()


@contextmanager
def user_lock(user_id: str) -> Iterator[None]:
    with _locks_guard:
        entry = _locks.setdefault(user_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _locks_guard:
            entry[1] -= 1
            if not entry[1]:
                del _locks[user_id]


# Pure cart operations

def unit_price(product: Dict[str, Any]) -> float:
    price = product.get("priceAfterDiscount")
    return product.get("price", 0) if price is None else price


def recompute_total(cart: Dict[str, Any]) -> float:
    cart["totalPrice"] = sum(item["quantity"] * item["price"] for item in cart.get("items", []))
    return cart["totalPrice"]


def _find_line(cart: Dict[str, Any], product_id: str) -> Optional[Dict[str, Any]]:
    for item in cart.get("items", []):
        if str(item["product"]) == product_id:
            return item
    return None


def add_item(cart: Dict[str, Any], product: Dict[str, Any], quantity: int = 1) -> Dict[str, Any]:
    if quantity < 1:
        raise InvalidInput("Quantity must be at least 1")
    product_id = str(product["_id"])
    price = unit_price(product)
    line = _find_line(cart, product_id)
    if line is not None:
        line["quantity"] += quantity
        line["price"] = price
    else:
        cart.setdefault("items", []).append(
            CartItem(product=product_id, quantity=quantity, price=price).model_dump(by_alias=True)
        )
    recompute_total(cart)
    return cart


def remove_item(cart: Dict[str, Any], product_id: str) -> Dict[str, Any]:
    cart["items"] = [i for i in cart.get("items", []) if str(i["product"]) != product_id]
    recompute_total(cart)
    return cart


def decrease_item(cart: Dict[str, Any], product_id: str) -> Dict[str, Any]:
    line = _find_line(cart, product_id)
    if line is None:
        raise NotFound("Product not in cart")
    if line["quantity"] > 1:
        line["quantity"] -= 1
    else:
        remove_item(cart, product_id)
    recompute_total(cart)
    return cart


# Store-backed operations

def get_cart(db: Database, user_id: str) -> Dict[str, Any]:
    cart = db["cart"].find_one({"user": user_id})
    if not cart:
        raise NotFound("Cart not found")
    return cart


def _save(db: Database, cart: Dict[str, Any]) -> Dict[str, Any]:
    if "_id" not in cart:
        return create_document(db, "cart", cart)
    cart["updatedAt"] = utcnow()
    db["cart"].update_one(
        {"_id": cart["_id"]},
        {"$set": {"items": cart["items"], "totalPrice": cart["totalPrice"], "updatedAt": cart["updatedAt"]}},
    )
    return cart


def add_to_cart(db: Database, user_id: str, product_id: str, quantity: int = 1) -> Dict[str, Any]:
    product = get_by_id(db, "product", product_id, "Product")
    with user_lock(user_id):
        cart = db["cart"].find_one({"user": user_id})
        if not cart:
            cart = Cart(user=user_id).model_dump(by_alias=True)
        add_item(cart, product, quantity)
        return _save(db, cart)


def remove_from_cart(db: Database, user_id: str, product_id: str) -> Dict[str, Any]:
    with user_lock(user_id):
        cart = get_cart(db, user_id)
        remove_item(cart, product_id)
        return _save(db, cart)


def decrease_in_cart(db: Database, user_id: str, product_id: str) -> Dict[str, Any]:
    with user_lock(user_id):
        cart = get_cart(db, user_id)
        decrease_item(cart, product_id)
        return _save(db, cart)


def checkout(db: Database, user_id: str, payment_method: Optional[str] = None) -> Dict[str, Any]:
    with user_lock(user_id):
        cart = db["cart"].find_one({"user": user_id})
        if not cart or not cart.get("items"):
            raise InvalidState("Cart is empty")
        order = Order(
            user=user_id,
            items=deepcopy(cart["items"]),
            total_price=cart.get("totalPrice", 0),
            payment_method=payment_method or "cash",
        )
        order_doc = create_document(db, "order", order)
        try:
            result = db["cart"].update_one(
                {"_id": cart["_id"]},
                {"$set": {"items": [], "totalPrice": 0, "updatedAt": utcnow()}},
            )
            if result.matched_count != 1:
                raise InvalidState("Cart changed during checkout")
        except Exception:
            logger.error("Clearing cart for user %s failed, rolling back order %s", user_id, order_doc["_id"])
            db["order"].delete_one({"_id": order_doc["_id"]})
            raise
    logger.info("User %s checked out order %s (total %s)", user_id, order_doc["_id"], order_doc["totalPrice"])
    return order_doc


def cancel_order(db: Database, order_id: str, requester_id: str) -> Dict[str, Any]:
    oid = parse_object_id(order_id, "Order ID")
    order = db["order"].find_one({"_id": oid})
    if not order:
        raise NotFound("Order not found")
    if order["user"] != requester_id:
        raise Forbidden("Only the owner can remove this order")
    db["order"].delete_one({"_id": oid})
    logger.info("User %s removed order %s", requester_id, order_id)
    return order
